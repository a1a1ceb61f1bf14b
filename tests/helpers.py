"""Shared test helpers: fake users, auth overrides and fake external clients."""

import uuid
from contextlib import contextmanager
from types import SimpleNamespace
from typing import Iterable, Optional

from libs.auth.dependencies import get_current_user, get_optional_user
from libs.auth.models import AuthUser, ClubRole
from libs.common.config import get_settings
from libs.common.stripe_client import StripeServiceError


def make_user(
    user_id: Optional[str] = None,
    roles: Iterable = (),
    email: Optional[str] = None,
) -> AuthUser:
    user_id = user_id or f"user-{uuid.uuid4().hex[:8]}"
    return AuthUser(
        sub=user_id,
        email=email or f"{user_id}@test.com",
        app_metadata={
            "roles": [r.value if isinstance(r, ClubRole) else r for r in roles]
        },
    )


def make_member_user(**kwargs) -> AuthUser:
    return make_user(roles=[ClubRole.MEMBER], **kwargs)


def make_admin_user(**kwargs) -> AuthUser:
    return make_user(roles=[ClubRole.ADMIN], **kwargs)


def make_service_user() -> AuthUser:
    return AuthUser(sub="workshops", role="service_role")


@contextmanager
def override_auth(app, user: AuthUser):
    """Authenticate every request to ``app`` as ``user`` for the block."""
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_optional_user] = lambda: user
    try:
        yield user
    finally:
        app.dependency_overrides.pop(get_current_user, None)
        app.dependency_overrides.pop(get_optional_user, None)


class StripeObject(dict):
    """Dict with attribute access, shaped like the stripe library's objects."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None


def stripe_object(values):
    if isinstance(values, dict):
        return StripeObject({k: stripe_object(v) for k, v in values.items()})
    if isinstance(values, list):
        return [stripe_object(v) for v in values]
    return values


class FakeStripeClient:
    """In-memory stand-in for StripeClient.

    Payment intents are kept in ``payment_intents``; tests flip their
    ``status`` to simulate the customer paying.
    """

    def __init__(self):
        self.payment_intents: dict[str, SimpleNamespace] = {}
        self.refunds: list[dict] = []
        self.customers: list[dict] = []
        self.subscription: Optional[SimpleNamespace] = None
        self.paused: list[tuple[str, int]] = []
        self.resumed: list[str] = []
        self.refund_error: Optional[StripeServiceError] = None

        settings = get_settings()
        self.prices = {
            settings.MEMBERSHIP_FEE_LOOKUP_KEY: stripe_object(
                {"id": "price_monthly", "unit_amount": 3500}
            ),
            settings.ANNUAL_FEE_LOOKUP_KEY: stripe_object(
                {"id": "price_annual", "unit_amount": 9000}
            ),
        }
        self.promotion_codes: dict[str, StripeObject] = {}
        self.preview_amounts = {"price_monthly": 1200, "price_annual": 4500}
        self.invoice_amount_due = 1500
        self.created_subscriptions: list[dict] = []
        self.cancelled: list[str] = []
        self.confirmed: list[dict] = []
        self.credit_notes: list[dict] = []
        # Index of the create_subscription call that should fail, if any.
        self.fail_subscription_at: Optional[int] = None
        self.webhook_events: dict[str, dict] = {}

    async def create_customer(self, *, email, name, phone, metadata):
        customer = SimpleNamespace(id=f"cus_{uuid.uuid4().hex[:10]}", email=email)
        self.customers.append({"email": email, "name": name, "metadata": metadata})
        return customer

    async def update_customer(self, customer_id, *, name=None, phone=None):
        return SimpleNamespace(id=customer_id, name=name, phone=phone)

    async def create_payment_intent(
        self, *, amount, currency, metadata, idempotency_key=None
    ):
        intent_id = f"pi_{uuid.uuid4().hex[:12]}"
        intent = SimpleNamespace(
            id=intent_id,
            client_secret=f"{intent_id}_secret",
            amount=amount,
            amount_received=None,
            currency=currency,
            status="requires_payment_method",
            metadata=dict(metadata),
            idempotency_key=idempotency_key,
        )
        self.payment_intents[intent_id] = intent
        return intent

    async def retrieve_payment_intent(self, payment_intent_id):
        if payment_intent_id not in self.payment_intents:
            raise StripeServiceError(
                "No such payment_intent", code="resource_missing", status_code=404
            )
        return self.payment_intents[payment_intent_id]

    def succeed(self, payment_intent_id: str) -> None:
        intent = self.payment_intents[payment_intent_id]
        intent.status = "succeeded"
        intent.amount_received = intent.amount

    async def create_refund(
        self, *, payment_intent_id, amount=None, reason=None, idempotency_key=None
    ):
        if self.refund_error is not None:
            raise self.refund_error
        refund = {
            "id": f"re_{uuid.uuid4().hex[:10]}",
            "payment_intent_id": payment_intent_id,
            "amount": amount,
            "reason": reason,
            "idempotency_key": idempotency_key,
        }
        self.refunds.append(refund)
        return SimpleNamespace(id=refund["id"], status="pending")

    async def find_membership_subscription(self, customer_id):
        return self.subscription

    async def pause_subscription(self, subscription_id, *, resumes_at):
        self.paused.append((subscription_id, resumes_at))
        return self.subscription

    async def resume_subscription(self, subscription_id):
        self.resumed.append(subscription_id)
        return self.subscription

    async def cancel_subscription(self, subscription_id):
        self.cancelled.append(subscription_id)
        return stripe_object({"id": subscription_id, "status": "canceled"})

    async def create_setup_intent(self, *, customer_id, confirmation_token):
        return stripe_object(
            {"id": f"seti_{uuid.uuid4().hex[:10]}", "payment_method": "pm_sepa"}
        )

    async def create_subscription(
        self,
        *,
        customer_id,
        price_id,
        billing_cycle_anchor_config,
        payment_method_id,
        promotion_code_id=None,
    ):
        if self.fail_subscription_at == len(self.created_subscriptions):
            raise StripeServiceError("Your card was declined.", code="card_declined")
        subscription_id = f"sub_{uuid.uuid4().hex[:10]}"
        self.created_subscriptions.append(
            {
                "id": subscription_id,
                "customer_id": customer_id,
                "price_id": price_id,
                "anchor": billing_cycle_anchor_config,
                "promotion_code_id": promotion_code_id,
            }
        )
        payment = {"payment": {"payment_intent": f"pi_{subscription_id}"}}
        return stripe_object(
            {
                "id": subscription_id,
                "status": "incomplete",
                "latest_invoice": {
                    "id": f"in_{subscription_id}",
                    "amount_due": self.invoice_amount_due,
                    "payments": {"data": [payment]},
                },
            }
        )

    async def confirm_payment_intent(self, payment_intent_id, *, payment_method, mandate_data):
        self.confirmed.append(
            {"id": payment_intent_id, "payment_method": payment_method, "mandate": mandate_data}
        )
        return stripe_object({"id": payment_intent_id, "status": "processing"})

    async def create_credit_note(self, *, invoice_id, amount):
        self.credit_notes.append({"invoice_id": invoice_id, "amount": amount})
        return stripe_object({"id": f"cn_{invoice_id}"})

    async def get_price_by_lookup_key(self, lookup_key):
        return self.prices.get(lookup_key)

    async def find_promotion_code(self, code):
        return self.promotion_codes.get(code)

    async def preview_invoice(
        self, *, customer_id, price_id, billing_cycle_anchor, promotion_code_id=None
    ):
        return stripe_object({"amount_due": self.preview_amounts[price_id]})

    def construct_event(self, payload, signature):
        if signature not in self.webhook_events:
            raise ValueError("No signatures found matching the expected signature")
        return stripe_object(self.webhook_events[signature])


class FakeAuthAdmin:
    """Records auth account changes instead of calling Supabase."""

    def __init__(self):
        self.created: list[dict] = []
        self.roles: dict[str, list[str]] = {}

    async def create_user(self, *, email, first_name, last_name, roles):
        user_id = f"auth-{uuid.uuid4().hex[:8]}"
        self.created.append({"id": user_id, "email": email, "roles": list(roles)})
        self.roles[user_id] = list(roles)
        return user_id

    async def set_roles(self, user_id, roles):
        self.roles[user_id] = sorted(roles)
