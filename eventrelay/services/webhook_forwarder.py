"""
Outbound webhook delivery: transform, encode, sign and send.

Neither ``process_event`` nor ``send_payload`` raises; every outcome is
reported as a result dict ``{destination, success, statusCode?, response?, error?}``.
"""

import asyncio
import hashlib
import hmac
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from eventrelay.core.logger import get_logger
from eventrelay.enums import BodyFormat
from eventrelay.services.destination_registry import (
    DestinationRegistry,
    destination_registry,
    matches_event,
)
from eventrelay.services.transformer_service import transformer_service
from eventrelay.utils.serialization import json_dumps

logger = get_logger("webhook_forwarder")

SIGNATURE_HEADER = "X-Webhook-Signature"
JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
MULTIPART_CONTENT_TYPE = "multipart/form-data"

DEFAULT_RETRYABLE_STATUS_CODES = (408, 429, 500, 502, 503, 504)
MAX_RETRIES = 10
DEFAULT_TIMEOUT_MS = 5000

FORMAT_CONTENT_TYPES = {
    BodyFormat.JSON.value: JSON_CONTENT_TYPE,
    BodyFormat.FORM.value: FORM_CONTENT_TYPE,
    BodyFormat.MULTIPART.value: MULTIPART_CONTENT_TYPE,
}


def generate_signature(body: bytes, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 of the exact body bytes."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _find_header(headers: dict, name: str) -> Optional[str]:
    for key in headers:
        if key.lower() == name.lower():
            return key
    return None


def _form_value(value: Any) -> str:
    return value if isinstance(value, str) else json_dumps(value)


def _form_fields(payload: Any) -> List[Tuple[str, str]]:
    if not isinstance(payload, dict):
        payload = {"payload": payload}
    return [(str(key), _form_value(value)) for key, value in payload.items()]


def _ms(value: Optional[int], default: int) -> float:
    """Milliseconds to seconds; ``None`` takes the default, zero stays zero."""
    return (default if value is None else value) / 1000.0


class WebhookForwarder:
    def __init__(self, registry: DestinationRegistry, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.registry = registry
        # Tests swap in an httpx.MockTransport
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, follow_redirects=True)

    async def process_event(
        self,
        event: dict,
        destinations: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[dict]:
        """
        Deliver ``event`` to every enabled destination whose filter accepts it,
        optionally restricted to the named ``destinations`` and skipping any in ``exclude``.
        """
        try:
            snapshot = self.registry.snapshot()
            event_name = event.get("eventName")
            allowed = set(destinations) if destinations is not None else None
            excluded = set(exclude or ())
            targets = [
                (name, entry) for name, entry in snapshot.items()
                if (allowed is None or name in allowed)
                and name not in excluded
                and matches_event(entry, event_name)
            ]
            if not targets:
                logger.debug(f"No destinations configured for event: {event_name}")
                return []

            logger.info(f"Forwarding event {event_name} to {len(targets)} destination(s)")
            async with self._client() as client:
                return list(await asyncio.gather(
                    *(self._send_to_destination(client, name, entry, event) for name, entry in targets)
                ))
        except Exception as e:
            logger.error(f"Unexpected error in process_event: {e}", extra={"eventName": event.get("eventName")})
            return []

    async def send_payload(self, destination: dict, payload: Any, event_id: Optional[str] = None) -> dict:
        """Deliver an already transformed ``payload`` to a single destination config."""
        name = destination.get("name")
        try:
            async with self._client() as client:
                return await self._deliver(client, name, destination, payload, event_id)
        except Exception as e:
            logger.error(f"Failed to forward payload to {name}: {e}", extra={"eventId": event_id})
            return {"destination": name, "success": False, "error": str(e)}

    async def _send_to_destination(self, client: httpx.AsyncClient, name: str, entry: dict, event: dict) -> dict:
        try:
            payload = await transformer_service.safe_transform(entry["transform"], event, f"destination:{name}")
            return await self._deliver(client, name, entry, payload, event.get("id"))
        except Exception as e:
            logger.error(f"Failed to forward event to {name}: {e}", extra={"eventId": event.get("id")})
            return {"destination": name, "success": False, "error": str(e)}

    def build_request(self, client: httpx.AsyncClient, destination: dict, payload: Any) -> httpx.Request:
        """Encode ``payload`` per the destination's content type and sign the resulting bytes."""
        body_format = destination.get("format") or BodyFormat.JSON.value
        headers: Dict[str, str] = {"Content-Type": FORMAT_CONTENT_TYPES.get(body_format, JSON_CONTENT_TYPE)}

        for key, value in (destination.get("headers") or {}).items():
            existing = _find_header(headers, key)
            if existing is not None:
                headers.pop(existing)
            headers[key] = str(value)

        content_type_key = _find_header(headers, "Content-Type")
        content_type = headers[content_type_key].lower() if content_type_key else JSON_CONTENT_TYPE

        method = destination.get("method") or "POST"
        url = destination["url"]
        timeout = httpx.Timeout((destination.get("timeout") or DEFAULT_TIMEOUT_MS) / 1000.0)

        if MULTIPART_CONTENT_TYPE in content_type:
            # httpx generates the boundary, so drop any bare multipart header
            headers.pop(content_type_key)
            files = [(key, (None, value)) for key, value in _form_fields(payload)]
            request = client.build_request(method, url, headers=headers, files=files, timeout=timeout)
        elif FORM_CONTENT_TYPE in content_type:
            body = urlencode(_form_fields(payload)).encode("utf-8")
            request = client.build_request(method, url, headers=headers, content=body, timeout=timeout)
        else:
            body = payload if isinstance(payload, str) else json_dumps(payload)
            request = client.build_request(method, url, headers=headers, content=body.encode("utf-8"), timeout=timeout)

        secret = destination.get("secret")
        if secret:
            request.headers[SIGNATURE_HEADER] = generate_signature(request.read(), secret)
        return request

    @staticmethod
    def _retrying(name: str, destination: dict) -> AsyncRetrying:
        """Build the per-destination retry policy from its ``retryStrategy``."""
        strategy = destination.get("retryStrategy") or {}
        max_retries = max(0, min(int(strategy.get("maxRetries", 0) or 0), MAX_RETRIES))
        statuses = set(strategy.get("retryableStatusCodes") or DEFAULT_RETRYABLE_STATUS_CODES)

        def log_retry(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            reason = (
                f"transport error: {outcome.exception()}" if outcome.failed
                else f"HTTP {outcome.result().status_code}"
            )
            logger.warning(f"Retrying delivery to {name} after {reason} ({retry_state.attempt_number}/{max_retries})")

        return AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_exponential(
                multiplier=_ms(strategy.get("initialDelay"), 1000),
                max=_ms(strategy.get("maxDelay"), 30000),
                exp_base=strategy.get("backoffFactor") or 2,
            ),
            retry=(
                retry_if_exception_type(httpx.HTTPError)
                | retry_if_result(lambda response: response.status_code in statuses)
            ),
            before_sleep=log_retry,
            # Out of attempts: hand back the last response or raise its error
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )

    @staticmethod
    async def _send_once(client: httpx.AsyncClient, request: httpx.Request, timeout_ms: int) -> httpx.Response:
        """Send with ``timeout_ms`` bounding the whole exchange, not each transport phase."""
        try:
            return await asyncio.wait_for(client.send(request), timeout=timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            raise httpx.TimeoutException(f"Request timed out after {timeout_ms}ms", request=request)

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        name: str,
        destination: dict,
        payload: Any,
        event_id: Optional[str],
    ) -> dict:
        request = self.build_request(client, destination, payload)
        timeout_ms = destination.get("timeout") or DEFAULT_TIMEOUT_MS

        try:
            response = await self._retrying(name, destination)(self._send_once, client, request, timeout_ms)
        except httpx.HTTPError as e:
            message = str(e) or type(e).__name__
            logger.error(f"Failed to forward event to {name}: {message}", extra={"eventId": event_id})
            return {"destination": name, "success": False, "error": message}

        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = response.text
            logger.info(f"Successfully forwarded event to {name}")
            return {"destination": name, "success": True, "statusCode": response.status_code, "response": data}

        error = f"HTTP error {response.status_code}: {response.text or response.reason_phrase}"
        logger.error(f"Failed to forward event to {name}: {error}", extra={"eventId": event_id})
        return {"destination": name, "success": False, "statusCode": response.status_code, "error": error}


webhook_forwarder = WebhookForwarder(destination_registry)
