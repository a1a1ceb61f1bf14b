"""
Stripe API client for membership subscriptions and workshop payments.

Provides async methods for:
- Customers (create, mirror profile changes)
- Payment intents and refunds for workshop registrations
- Membership subscriptions (create, cancel, pause, resume, sync lookups)
- Price lookups, promotion codes and invoice previews for signup pricing
- Webhook signature verification
"""

from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional

import stripe
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)

# Subscription states that end a membership.
INACTIVE_SUBSCRIPTION_STATUSES = frozenset(
    {"canceled", "incomplete_expired", "paused", "unpaid"}
)


class StripeServiceError(Exception):
    """Raised when a Stripe call fails."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class StripeClient:
    """Async wrapper over the stripe library's resource classes."""

    def __init__(self, secret_key: Optional[str] = None):
        settings = get_settings()
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        if not self.secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required")
        stripe.api_key = self.secret_key
        if settings.STRIPE_API_VERSION:
            stripe.api_version = settings.STRIPE_API_VERSION
        self.settings = settings

    async def _call(
        self, operation: str, func: Callable[..., Awaitable[Any]], **params: Any
    ) -> Any:
        try:
            return await func(**params)
        except stripe.StripeError as e:
            logger.error(
                f"Stripe {operation} failed: {e}",
                extra={"extra_fields": {
                    "operation": operation,
                    "stripe_code": e.code,
                    "http_status": e.http_status,
                }},
            )
            raise StripeServiceError(
                message=e.user_message or str(e),
                code=e.code,
                status_code=e.http_status,
            ) from e

    # =========================================================================
    # Customers
    # =========================================================================

    async def create_customer(
        self, *, email: str, name: str, phone: Optional[str], metadata: dict
    ) -> stripe.Customer:
        return await self._call(
            "customer.create",
            stripe.Customer.create_async,
            email=email,
            name=name,
            phone=phone,
            metadata=metadata,
        )

    async def update_customer(
        self, customer_id: str, *, name: Optional[str] = None, phone: Optional[str] = None
    ) -> stripe.Customer:
        params = {k: v for k, v in {"name": name, "phone": phone}.items() if v}
        return await self._call(
            "customer.modify", stripe.Customer.modify_async, id=customer_id, **params
        )

    # =========================================================================
    # Workshop payments
    # =========================================================================

    async def create_payment_intent(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> stripe.PaymentIntent:
        """Create a PaymentIntent for ``amount`` in the currency's minor unit."""
        params: dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        intent = await self._call(
            "payment_intent.create", stripe.PaymentIntent.create_async, **params
        )
        logger.info(
            "Payment intent created",
            extra={"extra_fields": {"payment_intent_id": intent.id, "amount": amount}},
        )
        return intent

    async def retrieve_payment_intent(self, payment_intent_id: str) -> stripe.PaymentIntent:
        return await self._call(
            "payment_intent.retrieve",
            stripe.PaymentIntent.retrieve_async,
            id=payment_intent_id,
        )

    async def confirm_payment_intent(
        self, payment_intent_id: str, *, payment_method: str, mandate_data: dict
    ) -> stripe.PaymentIntent:
        return await self._call(
            "payment_intent.confirm",
            stripe.PaymentIntent.confirm_async,
            intent=payment_intent_id,
            payment_method=payment_method,
            mandate_data=mandate_data,
        )

    async def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> stripe.Refund:
        params: dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount:
            params["amount"] = amount
        if reason:
            params["reason"] = reason
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        refund = await self._call("refund.create", stripe.Refund.create_async, **params)
        logger.info(
            "Refund created",
            extra={"extra_fields": {
                "refund_id": refund.id,
                "payment_intent_id": payment_intent_id,
            }},
        )
        return refund

    # =========================================================================
    # Membership subscriptions
    # =========================================================================

    async def find_membership_subscription(
        self, customer_id: str
    ) -> Optional[stripe.Subscription]:
        """The customer's subscription on the monthly membership fee price, if any."""
        subscriptions = await self._call(
            "subscription.list",
            stripe.Subscription.list_async,
            customer=customer_id,
            status="all",
            limit=100,
        )
        lookup_key = self.settings.MEMBERSHIP_FEE_LOOKUP_KEY
        for subscription in subscriptions.data:
            for item in subscription["items"]["data"]:
                if item["price"].get("lookup_key") == lookup_key:
                    return subscription
        return None

    async def pause_subscription(
        self, subscription_id: str, *, resumes_at: int
    ) -> stripe.Subscription:
        return await self._call(
            "subscription.pause",
            stripe.Subscription.modify_async,
            id=subscription_id,
            pause_collection={"behavior": "void", "resumes_at": resumes_at},
        )

    async def resume_subscription(self, subscription_id: str) -> stripe.Subscription:
        # An empty string unsets pause_collection.
        return await self._call(
            "subscription.resume",
            stripe.Subscription.modify_async,
            id=subscription_id,
            pause_collection="",
        )

    async def create_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        billing_cycle_anchor_config: dict,
        payment_method_id: str,
        promotion_code_id: Optional[str] = None,
    ) -> stripe.Subscription:
        params: dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "billing_cycle_anchor_config": billing_cycle_anchor_config,
            "payment_behavior": "default_incomplete",
            "payment_settings": {"payment_method_types": ["sepa_debit"]},
            "collection_method": "charge_automatically",
            "default_payment_method": payment_method_id,
            "expand": ["latest_invoice.payments"],
        }
        if promotion_code_id:
            params["discounts"] = [{"promotion_code": promotion_code_id}]
        return await self._call(
            "subscription.create", stripe.Subscription.create_async, **params
        )

    async def cancel_subscription(self, subscription_id: str) -> stripe.Subscription:
        return await self._call(
            "subscription.cancel",
            stripe.Subscription.cancel_async,
            subscription_exposed_id=subscription_id,
        )

    async def create_setup_intent(
        self, *, customer_id: str, confirmation_token: str
    ) -> stripe.SetupIntent:
        return await self._call(
            "setup_intent.create",
            stripe.SetupIntent.create_async,
            customer=customer_id,
            confirm=True,
            confirmation_token=confirmation_token,
            payment_method_types=["sepa_debit"],
        )

    async def create_credit_note(self, *, invoice_id: str, amount: int) -> stripe.CreditNote:
        return await self._call(
            "credit_note.create",
            stripe.CreditNote.create_async,
            invoice=invoice_id,
            amount=amount,
            reason="order_change",
            memo="Migration discount applied for existing customer",
        )

    # =========================================================================
    # Pricing
    # =========================================================================

    async def get_price_by_lookup_key(self, lookup_key: str) -> Optional[stripe.Price]:
        prices = await self._call(
            "price.list",
            stripe.Price.list_async,
            lookup_keys=[lookup_key],
            active=True,
            limit=1,
        )
        return prices.data[0] if prices.data else None

    async def find_promotion_code(self, code: str) -> Optional[stripe.PromotionCode]:
        codes = await self._call(
            "promotion_code.list",
            stripe.PromotionCode.list_async,
            code=code,
            active=True,
            limit=1,
        )
        return codes.data[0] if codes.data else None

    async def preview_invoice(
        self,
        *,
        customer_id: str,
        price_id: str,
        billing_cycle_anchor: int,
        promotion_code_id: Optional[str] = None,
    ) -> stripe.Invoice:
        params: dict[str, Any] = {
            "customer": customer_id,
            "subscription_details": {
                "items": [{"price": price_id}],
                "billing_cycle_anchor": billing_cycle_anchor,
                "proration_behavior": "create_prorations",
            },
        }
        if promotion_code_id:
            params["discounts"] = [{"promotion_code": promotion_code_id}]
        return await self._call(
            "invoice.create_preview", stripe.Invoice.create_preview_async, **params
        )

    # =========================================================================
    # Webhooks
    # =========================================================================

    def construct_event(self, payload: bytes, signature: str) -> stripe.Event:
        """Verify and parse a webhook payload. Raises ValueError or SignatureVerificationError."""
        return stripe.Webhook.construct_event(
            payload, signature, self.settings.STRIPE_WEBHOOK_SECRET
        )


@lru_cache
def get_stripe_client() -> StripeClient:
    """FastAPI dependency returning the shared Stripe client."""
    return StripeClient()
