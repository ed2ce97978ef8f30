"""Billing webhook route.

Security rules:
- Validate Stripe-Signature on every request.
- Never log payload or signature header.
- ACK only after the receipt and the tenant update committed together;
  a 5xx makes the provider retry.
"""

from __future__ import annotations

from fastapi import APIRouter, Header, Request, Response

from frontgate.billing.subscriptions import apply_subscription_event, record_event
from frontgate.billing.webhook import (
    InvalidPayloadError,
    InvalidSignatureError,
    verify_and_extract,
)
from frontgate.infra.settings import get_settings
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)


@router.post("/webhooks/billing")
async def billing_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
) -> Response:
    """Receive subscription lifecycle events.

    Returns:
        200 if processed, ignored or duplicate.
        400 if signature or payload invalid.
        500 if the webhook secret is not configured.
    """
    from frontgate.infra.db import txn

    payload_bytes = await request.body()

    webhook_secret = get_settings().billing_webhook_secret
    if not webhook_secret:
        logger.error("billing webhook secret not configured")
        return Response(status_code=500, content="server configuration error")

    try:
        event = verify_and_extract(payload_bytes, stripe_signature, webhook_secret)
    except InvalidSignatureError:
        return Response(status_code=400, content="invalid signature")
    except InvalidPayloadError:
        return Response(status_code=400, content="invalid payload")

    logger.info(
        "billing webhook received",
        extra={
            "extra_fields": safe_log_context(
                event_id_prefix=event.event_id[:8],
                event_type=event.event_type,
            )
        },
    )

    with txn() as cur:
        if not record_event(cur, "stripe", event.event_id):
            logger.info(
                "billing webhook duplicate",
                extra={"extra_fields": safe_log_context(event_id_prefix=event.event_id[:8])},
            )
            return Response(status_code=200, content="duplicate")

        if event.is_subscription_event:
            apply_subscription_event(cur, event)

    return Response(status_code=200, content="ok")
