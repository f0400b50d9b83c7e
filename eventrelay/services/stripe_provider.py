"""
Stripe inbound webhook provider: signature verification and event handlers.
"""

import json
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

import stripe

from eventrelay.core.config import settings
from eventrelay.core.logger import get_logger
from eventrelay.enums import ProviderType
from eventrelay.exceptions.errors import SignatureVerificationException

logger = get_logger("stripe_provider")

Handler = Callable[[dict, object], Awaitable[None]]


def _object(event: dict) -> dict:
    return (event.get("data") or {}).get("object") or {}


async def handle_payment_intent_succeeded(event: dict, session) -> None:
    payment_intent = _object(event)
    logger.info(
        f"Processing PaymentIntent succeeded: {payment_intent.get('id')}",
        extra={
            "amount": payment_intent.get("amount"),
            "currency": payment_intent.get("currency"),
            "customerId": payment_intent.get("customer"),
        },
    )


async def handle_payment_intent_failed(event: dict, session) -> None:
    payment_intent = _object(event)
    logger.info(
        f"Processing PaymentIntent failed: {payment_intent.get('id')}",
        extra={
            "amount": payment_intent.get("amount"),
            "currency": payment_intent.get("currency"),
            "customerId": payment_intent.get("customer"),
            "lastError": payment_intent.get("last_payment_error"),
        },
    )


async def handle_invoice_paid(event: dict, session) -> None:
    invoice = _object(event)
    logger.info(
        f"Processing Invoice paid: {invoice.get('id')}",
        extra={
            "amount": invoice.get("amount_paid"),
            "currency": invoice.get("currency"),
            "customerId": invoice.get("customer"),
            "subscriptionId": invoice.get("subscription"),
        },
    )


async def handle_invoice_payment_failed(event: dict, session) -> None:
    invoice = _object(event)
    logger.info(
        f"Processing Invoice payment failed: {invoice.get('id')}",
        extra={
            "amount": invoice.get("amount_due"),
            "currency": invoice.get("currency"),
            "customerId": invoice.get("customer"),
            "subscriptionId": invoice.get("subscription"),
        },
    )


async def handle_subscription_changed(event: dict, session) -> None:
    subscription = _object(event)
    canceled_at = subscription.get("canceled_at")
    logger.info(
        f"Processing {event.get('type')}: {subscription.get('id')}",
        extra={
            "customerId": subscription.get("customer"),
            "status": subscription.get("status"),
            "planId": (subscription.get("plan") or {}).get("id"),
            "canceledAt": datetime.fromtimestamp(canceled_at, tz=timezone.utc).isoformat() if canceled_at else None,
        },
    )


class StripeProvider:
    name = ProviderType.STRIPE.value
    signature_header = "stripe-signature"

    def __init__(self, webhook_secret: Optional[str] = None):
        self.webhook_secret = webhook_secret
        self.handlers: Dict[str, Handler] = {
            "payment_intent.succeeded": handle_payment_intent_succeeded,
            "payment_intent.payment_failed": handle_payment_intent_failed,
            "invoice.paid": handle_invoice_paid,
            "invoice.payment_failed": handle_invoice_payment_failed,
            "customer.subscription.created": handle_subscription_changed,
            "customer.subscription.updated": handle_subscription_changed,
            "customer.subscription.deleted": handle_subscription_changed,
        }

    def verify(self, payload: bytes, signature: Optional[str]) -> dict:
        """Check the signature over the raw body and return the decoded event."""
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured")
            raise SignatureVerificationException("Webhook Error: signature verification unavailable")
        if not signature:
            raise SignatureVerificationException("Webhook Error: missing signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            return json.loads(payload)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe signature verification failed: {e}")
            raise SignatureVerificationException("Webhook Error: invalid signature") from e
        except ValueError as e:
            logger.warning(f"Stripe webhook payload is not valid JSON: {e}")
            raise SignatureVerificationException("Webhook Error: invalid payload") from e

    @staticmethod
    def describe(event: dict) -> dict:
        """Columns of the idempotency record derived from a verified event."""
        obj = _object(event)
        created = event.get("created")
        return {
            "provider_event_id": event.get("id"),
            "event_type": event.get("type"),
            "provider_event_timestamp": (
                datetime.fromtimestamp(created, tz=timezone.utc).replace(tzinfo=None)
                if created is not None else datetime.utcnow()
            ),
            "provider_account": event.get("account"),
            "api_version": event.get("api_version"),
            "object_id": obj.get("id"),
            "object_type": obj.get("object"),
        }


if settings.STRIPE_SECRET_KEY:
    stripe.api_key = settings.STRIPE_SECRET_KEY

stripe_provider = StripeProvider(settings.STRIPE_WEBHOOK_SECRET)
