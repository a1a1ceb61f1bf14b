"""Stripe webhook receiver.

Every allowed event that names a customer triggers a full re-sync of that
customer's membership state instead of applying the event payload.
"""

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from libs.common.logging import get_logger
from libs.common.stripe_client import StripeClient, get_stripe_client
from libs.db.session import get_async_db
from services.members_service.services import subscription_ops
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

ALLOWED_EVENTS = frozenset(
    {
        "checkout.session.completed",
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "customer.subscription.paused",
        "customer.subscription.resumed",
        "customer.subscription.pending_update_applied",
        "customer.subscription.pending_update_expired",
        "customer.subscription.trial_will_end",
        "invoice.paid",
        "invoice.payment_failed",
        "invoice.payment_action_required",
        "invoice.upcoming",
        "invoice.marked_uncollectible",
        "invoice.payment_succeeded",
        "payment_intent.succeeded",
        "payment_intent.payment_failed",
        "payment_intent.canceled",
    }
)


def event_customer_id(event) -> str | None:
    data_object = event["data"]["object"]
    customer = data_object.get("customer")
    if isinstance(customer, str):
        return customer
    if customer is not None:
        return customer.get("id")
    return None


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    payload = await request.body()
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature"
        )
    try:
        event = stripe_client.construct_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature"
        )

    event_type = event["type"]
    if event_type not in ALLOWED_EVENTS:
        logger.info(f"Ignoring Stripe event {event_type}")
        return {"received": True, "processed": False}

    customer_id = event_customer_id(event)
    if not customer_id:
        logger.info(f"Stripe event {event_type} has no customer, acknowledged")
        return {"received": True, "processed": False}

    await subscription_ops.sync_stripe_data(db, customer_id, stripe_client=stripe_client)
    logger.info(
        "Processed Stripe webhook",
        extra={"extra_fields": {"event_id": event["id"], "event_type": event_type}},
    )
    return {"received": True, "processed": True}
