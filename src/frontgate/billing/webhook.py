"""Billing webhook signature validation and payload parsing.

- Validate the Stripe-Signature header before touching the payload
- Never log payload or signature
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import stripe

from frontgate.observability.logging import get_logger

logger = get_logger(__name__)


class InvalidSignatureError(Exception):
    """Webhook signature validation failed."""


class InvalidPayloadError(Exception):
    """Payload structure is invalid or missing required fields."""


@dataclass
class BillingEvent:
    """Verified billing event."""

    event_id: str
    event_type: str
    data_object: dict[str, Any] = field(default_factory=dict)

    @property
    def is_subscription_event(self) -> bool:
        return self.event_type.startswith("customer.subscription.")


def verify_and_extract(
    payload_bytes: bytes,
    signature_header: str,
    webhook_secret: str,
) -> BillingEvent:
    """Validate the webhook signature and return the event.

    Raises:
        InvalidSignatureError: If signature validation fails.
        InvalidPayloadError: If event structure is invalid.
    """
    try:
        event = stripe.Webhook.construct_event(payload_bytes, signature_header, webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.warning("billing webhook signature verification failed")
        raise InvalidSignatureError("Invalid signature") from e
    except ValueError as e:
        logger.warning("billing webhook event parsing failed")
        raise InvalidPayloadError("Invalid payload") from e

    event_id = event.get("id")
    event_type = event.get("type")
    if not event_id or not event_type:
        raise InvalidPayloadError("Missing event id or type")

    data_object = (event.get("data") or {}).get("object") or {}
    if hasattr(data_object, "to_dict"):
        data_object = data_object.to_dict()

    return BillingEvent(event_id=event_id, event_type=event_type, data_object=dict(data_object))
