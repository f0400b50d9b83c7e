import traceback

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventrelay.core.config import settings
from eventrelay.core.logger import get_logger
from eventrelay.exceptions.errors import ApplicationException

logger = get_logger("exception_handlers")


def _stack(exc: Exception) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


async def application_exception_handler(request: Request, exc: ApplicationException):
    if exc.status_code >= 500:
        logger.error(f"Server Error ({exc.status_code}) on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.warning(f"Client Error ({exc.status_code}) on {request.method} {request.url.path}: {exc.message}")
    return exc.to_response(include_stack=settings.IS_DEVELOPMENT, stack=_stack(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "API endpoint not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": True, "message": message}
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
        })

    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": True,
            "message": errors[0]["message"] if errors else "Invalid request",
            "errors": errors,
        }
    )


async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {repr(exc)}")
    content = {"success": False, "error": True, "message": "An unexpected error occurred"}
    if settings.IS_DEVELOPMENT:
        content["stack"] = _stack(exc)
    return JSONResponse(status_code=500, content=content)
