import hmac
import re
from typing import List, Optional
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from eventrelay.core.config import settings
from eventrelay.core.logger import get_logger

logger = get_logger("api_key_auth_middleware")

whitelisted_routes = [
    "/api/health", "/docs", "/openapi.json", "/redoc", "/favicon.ico",
]

# Signed provider webhooks authenticate with their own signature
PROVIDER_WEBHOOK_PATH = re.compile(r"^/api/integrations/[^/]+/webhook/?$")


def extract_api_key(request: Request) -> Optional[str]:
    """Key from ``X-API-Key``, ``Api-Key`` or ``Authorization: Bearer <key>``."""
    api_key = request.headers.get("X-API-Key") or request.headers.get("Api-Key")
    if api_key:
        return api_key

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return None


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"success": False, "error": True, "message": message},
    )


class ApiKeyAuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, whitelisted_routes: List[str] = None, api_key: Optional[str] = None):
        super().__init__(app)
        self.whitelisted_routes = whitelisted_routes or []
        self.api_key = api_key

    def _is_whitelisted(self, path: str) -> bool:
        """Check if the route is public"""
        if PROVIDER_WEBHOOK_PATH.match(path):
            return True
        for route in self.whitelisted_routes:
            if path == route or path.startswith(route.rstrip("/") + "/"):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        if self._is_whitelisted(request.url.path):
            logger.debug(f"Whitelisted route: {request.url.path}")
            return await call_next(request)

        # CORS preflight
        if request.method == "OPTIONS":
            return await call_next(request)

        expected_key = self.api_key or settings.API_KEY
        if not expected_key:
            if settings.IS_DEVELOPMENT:
                logger.warning("API_KEY is not configured; allowing request in development mode")
                return await call_next(request)
            logger.error("API_KEY is not configured; rejecting request")
            return _unauthorized("Unauthorized: API authentication is not configured")

        provided_key = extract_api_key(request)
        if not provided_key:
            logger.warning(f"Missing API key for: {request.method} {request.url.path}")
            return _unauthorized("Unauthorized: Invalid or missing API key")

        if not hmac.compare_digest(provided_key.encode(), expected_key.encode()):
            logger.warning(f"Invalid API key for: {request.method} {request.url.path}")
            return _unauthorized("Unauthorized: Invalid or missing API key")

        return await call_next(request)
