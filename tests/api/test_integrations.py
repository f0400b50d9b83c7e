"""Tests for inbound provider webhook endpoints."""

import pytest

from eventrelay.services.stripe_provider import stripe_provider


@pytest.fixture
def handled(monkeypatch):
    calls = []

    async def record(event, session):
        calls.append(event["id"])

    monkeypatch.setitem(stripe_provider.handlers, "payment_intent.succeeded", record)
    return calls


class TestProviderWebhook:
    """Tests for POST /api/integrations/{provider}/webhook."""

    async def test_duplicate_delivery(self, anonymous_client, handled, sign_stripe, make_stripe_event):
        payload = make_stripe_event("evt_api")
        headers = {"stripe-signature": sign_stripe(payload), "Content-Type": "application/json"}

        first = await anonymous_client.post("/api/integrations/stripe/webhook", content=payload, headers=headers)
        second = await anonymous_client.post("/api/integrations/stripe/webhook", content=payload, headers=headers)

        assert first.status_code == 200
        assert first.json() == {"received": True}
        assert second.status_code == 200
        assert second.json() == {"received": True, "duplicate": True}
        assert handled == ["evt_api"]

    async def test_missing_signature(self, anonymous_client, make_stripe_event):
        response = await anonymous_client.post("/api/integrations/stripe/webhook", content=make_stripe_event())
        assert response.status_code == 400
        assert response.json()["message"] == "Webhook Error: missing signature header"

    async def test_unknown_provider(self, anonymous_client):
        response = await anonymous_client.post("/api/integrations/paypal/webhook", content=b"{}")
        assert response.status_code == 404


class TestProviderAdmin:
    async def test_stats_and_reprocess(self, client, handled, sign_stripe, make_stripe_event):
        payload = make_stripe_event("evt_stats")
        await client.post("/api/integrations/stripe/webhook", content=payload, headers={"stripe-signature": sign_stripe(payload)})

        stats = (await client.get("/api/integrations/stripe/stats")).json()["data"]
        reprocess = (await client.post("/api/integrations/stripe/reprocess")).json()

        assert stats["totalEvents"] == 1
        assert stats["processingRate"] == 100
        assert reprocess["count"] == 0
