"""Tests for outbound webhook delivery."""

import asyncio
import hashlib
import hmac
import json
from urllib.parse import parse_qsl

import httpx
import pytest

from eventrelay.services.destination_registry import destination_registry
from eventrelay.services.webhook_forwarder import WebhookForwarder, generate_signature, webhook_forwarder

EVENT = {
    "id": "e1",
    "eventName": "order.paid",
    "timestamp": "2024-01-01T00:00:00Z",
    "properties": {"amount": 500},
}


def hook(url="http://hooks.test/in", **overrides):
    config = {"url": url, "eventTypes": ["order.paid"]}
    config.update(overrides)
    return config


class TestRegistry:
    """Tests for destination registration."""

    @pytest.mark.parametrize("name", ["", "has space", "x" * 101, "semi;colon"])
    def test_invalid_name_rejected(self, name):
        with pytest.raises(ValueError):
            destination_registry.register(name, hook())

    @pytest.mark.parametrize("url", [None, "", "ftp://hooks.test", "not a url", "http://"])
    def test_invalid_url_rejected(self, url):
        with pytest.raises(ValueError):
            destination_registry.register("hook", hook(url=url))

    def test_defaults(self):
        entry = destination_registry.register("hook", {"url": "http://hooks.test/in"})
        assert entry["method"] == "POST"
        assert entry["eventTypes"] == ["*"]
        assert entry["enabled"] is True
        assert entry["timeout"] == 5000
        assert entry["format"] == "json"

    def test_last_write_wins_and_status(self):
        destination_registry.register("hook", hook())
        destination_registry.register("hook", hook(url="http://hooks.test/other"))
        assert destination_registry.get("hook")["url"] == "http://hooks.test/other"
        assert destination_registry.set_status("hook", False)
        assert destination_registry.get("hook")["enabled"] is False
        assert destination_registry.set_status("nope", True) is False
        assert destination_registry.remove("hook")
        assert "hook" not in destination_registry


class TestProcessEvent:
    """Tests for fan-out delivery to registered destinations."""

    async def test_exact_body_and_signature(self, outbound):
        """Identity transform sends the event unchanged, signed over the exact bytes."""
        destination_registry.register("hook", hook(secret="s3cr3t"))

        results = await webhook_forwarder.process_event(EVENT)

        assert results == [{"destination": "hook", "success": True, "statusCode": 200, "response": {"ok": True}}]
        request = outbound.requests[0]
        expected_body = b'{"id":"e1","eventName":"order.paid","timestamp":"2024-01-01T00:00:00Z","properties":{"amount":500}}'
        assert request.content == expected_body
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["X-Webhook-Signature"] == hmac.new(b"s3cr3t", expected_body, hashlib.sha256).hexdigest()

    async def test_no_secret_no_signature(self, outbound):
        destination_registry.register("hook", hook())
        await webhook_forwarder.process_event(EVENT)
        assert "X-Webhook-Signature" not in outbound.requests[0].headers

    async def test_event_type_filter_and_disabled(self, outbound):
        destination_registry.register("paid", hook(url="http://hooks.test/paid"))
        destination_registry.register("signup", hook(url="http://hooks.test/signup", eventTypes=["user.signup"]))
        destination_registry.register("off", hook(url="http://hooks.test/off", enabled=False))
        destination_registry.register("all", hook(url="http://hooks.test/all", eventTypes="*"))

        results = await webhook_forwarder.process_event(EVENT)

        assert sorted(result["destination"] for result in results) == ["all", "paid"]
        assert outbound.to("http://hooks.test/off") == []
        assert outbound.to("http://hooks.test/signup") == []

    async def test_destination_name_filter(self, outbound):
        destination_registry.register("a", hook(url="http://hooks.test/a"))
        destination_registry.register("b", hook(url="http://hooks.test/b"))

        results = await webhook_forwarder.process_event(EVENT, ["b"])

        assert [result["destination"] for result in results] == ["b"]

    async def test_no_targets(self, outbound):
        assert await webhook_forwarder.process_event(EVENT) == []
        assert outbound.requests == []

    async def test_non_2xx_is_failure(self, outbound):
        outbound.responder = lambda request: httpx.Response(500, text="boom")
        destination_registry.register("hook", hook())

        [result] = await webhook_forwarder.process_event(EVENT)

        assert result["success"] is False
        assert result["statusCode"] == 500
        assert result["error"] == "HTTP error 500: boom"

    async def test_transport_error_is_failure(self, outbound):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        outbound.responder = refuse
        destination_registry.register("hook", hook())

        [result] = await webhook_forwarder.process_event(EVENT)

        assert result == {"destination": "hook", "success": False, "error": "connection refused"}

    async def test_one_failure_does_not_affect_others(self, outbound):
        outbound.responder = lambda request: httpx.Response(
            503 if request.url.path == "/bad" else 200, json={}
        )
        destination_registry.register("bad", hook(url="http://hooks.test/bad"))
        destination_registry.register("good", hook(url="http://hooks.test/good"))

        results = {result["destination"]: result for result in await webhook_forwarder.process_event(EVENT)}

        assert results["good"]["success"] is True
        assert results["bad"]["success"] is False

    async def test_retry_on_retryable_status(self, outbound):
        statuses = iter([503, 503, 200])
        outbound.responder = lambda request: httpx.Response(next(statuses), json={})
        destination_registry.register("hook", hook(retryStrategy={"maxRetries": 2, "initialDelay": 1}))

        [result] = await webhook_forwarder.process_event(EVENT)

        assert result["success"] is True
        assert len(outbound.requests) == 3

    async def test_retry_after_transport_error(self, outbound):
        attempts = iter([httpx.ConnectError("connection reset"), httpx.Response(200, json={"ok": True})])

        def flaky(request):
            outcome = next(attempts)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        outbound.responder = flaky
        destination_registry.register("hook", hook(retryStrategy={"maxRetries": 1, "initialDelay": 1}))

        [result] = await webhook_forwarder.process_event(EVENT)

        assert result["success"] is True
        assert len(outbound.requests) == 2

    async def test_retries_exhausted_reports_last_response(self, outbound):
        outbound.responder = lambda request: httpx.Response(502, text="bad gateway")
        destination_registry.register("hook", hook(retryStrategy={"maxRetries": 2, "initialDelay": 1, "maxDelay": 2}))

        [result] = await webhook_forwarder.process_event(EVENT)

        assert result["statusCode"] == 502
        assert result["error"] == "HTTP error 502: bad gateway"
        assert len(outbound.requests) == 3

    async def test_non_retryable_status_sent_once(self, outbound):
        outbound.responder = lambda request: httpx.Response(400, text="bad request")
        destination_registry.register("hook", hook(retryStrategy={"maxRetries": 3, "initialDelay": 1}))

        [result] = await webhook_forwarder.process_event(EVENT)

        assert result["success"] is False
        assert len(outbound.requests) == 1

    async def test_timeout_bounds_whole_request(self):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(slow)) as client:
            request = client.build_request("POST", "http://hooks.test/in", content=b"{}")
            with pytest.raises(httpx.TimeoutException, match="timed out after 50ms"):
                await WebhookForwarder._send_once(client, request, 50)

    async def test_transform_and_custom_headers(self, outbound):
        destination_registry.register("hook", hook(
            method="put",
            headers={"content-type": "application/vnd.api+json", "X-Team": "ops"},
            transform={"type": "mapping", "config": {"mapping": {"total": "properties.amount"}}},
        ))

        await webhook_forwarder.process_event(EVENT)

        request = outbound.requests[0]
        assert request.method == "PUT"
        assert request.headers["content-type"] == "application/vnd.api+json"
        assert request.headers["X-Team"] == "ops"
        assert json.loads(request.content) == {"total": 500}


class TestBodyFormats:
    """Tests for form and multipart encoding."""

    async def test_form_body_is_signed(self, outbound):
        destination_registry.register("hook", hook(format="form", secret="s3cr3t"))

        await webhook_forwarder.process_event(EVENT)

        request = outbound.requests[0]
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        fields = dict(parse_qsl(request.content.decode()))
        assert fields["eventName"] == "order.paid"
        assert json.loads(fields["properties"]) == {"amount": 500}
        assert request.headers["X-Webhook-Signature"] == generate_signature(request.content, "s3cr3t")

    async def test_multipart_body(self, outbound):
        destination_registry.register("hook", hook(format="multipart", secret="s3cr3t"))

        await webhook_forwarder.process_event(EVENT)

        request = outbound.requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
        assert b'name="eventName"' in request.content
        assert request.headers["X-Webhook-Signature"] == generate_signature(request.content, "s3cr3t")

    async def test_string_payload_sent_raw(self, outbound):
        result = await webhook_forwarder.send_payload(
            {"name": "raw", "url": "http://hooks.test/raw", "format": "json"}, "plain text"
        )
        assert result["success"] is True
        assert outbound.requests[0].content == b"plain text"
