import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import stripe
from sqlmodel import Session

from app import crud
from app.billing.plans import price_id_for
from app.core.config import settings
from app.models import Subscription, User

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Raised when a billing request cannot be served."""


def _client() -> None:
    stripe.api_key = settings.STRIPE_SECRET_KEY


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if value is None else value


def _timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), timezone.utc)


def _subscription_period(subscription: Any) -> dict[str, datetime | None]:
    # Newer API versions moved the period onto the subscription items
    start = _get(subscription, "current_period_start")
    end = _get(subscription, "current_period_end")
    if start is None or end is None:
        items = _get(_get(subscription, "items"), "data", [])
        if items:
            start = _get(items[0], "current_period_start", start)
            end = _get(items[0], "current_period_end", end)
    return {"current_period_start": _timestamp(start), "current_period_end": _timestamp(end)}


def _user_id_from_metadata(obj: Any) -> uuid.UUID | None:
    raw = _get(_get(obj, "metadata", {}), "user_id")
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        logger.warning("Ignoring Stripe metadata with malformed user_id %r", raw)
        return None


def create_checkout_session(
    *,
    session: Session,
    user: User,
    tier: str,
    billing_cycle: str,
    property_count: int,
) -> str:
    """Start a subscription checkout for ``property_count`` property slots and return its URL."""
    price_id = price_id_for(tier, billing_cycle)
    if not price_id:
        raise BillingError(f"No price configured for {tier} {billing_cycle}")
    _client()

    subscription = crud.get_subscription(session=session, user_id=user.id)
    customer_id = subscription.stripe_customer_id if subscription else None
    if not customer_id:
        customer = stripe.Customer.create(
            email=user.email,
            name=user.full_name or user.email,
            metadata={"user_id": str(user.id)},
        )
        customer_id = customer["id"]
        crud.upsert_subscription(
            session=session,
            user_id=user.id,
            stripe_customer_id=customer_id,
            plan_tier="free",
            property_slots=0,
            status="inactive",
        )

    metadata = {
        "user_id": str(user.id),
        "tier": tier,
        "billing_cycle": billing_cycle,
        "property_count": str(property_count),
    }
    checkout = stripe.checkout.Session.create(
        customer=customer_id,
        mode="subscription",
        line_items=[{"price": price_id, "quantity": property_count}],
        success_url=f"{settings.APP_URL}/dashboard/billing?success=true",
        cancel_url=f"{settings.APP_URL}/pricing?canceled=true",
        metadata=metadata,
        subscription_data={"metadata": metadata},
    )
    return checkout["url"]


def create_portal_session(*, customer_id: str) -> str:
    _client()
    portal = stripe.billing_portal.Session.create(
        customer=customer_id,
        return_url=f"{settings.APP_URL}/dashboard/billing",
    )
    return portal["url"]


def construct_event(payload: bytes, signature: str) -> Any:
    """Verify the webhook signature; raises ``ValueError`` or ``SignatureVerificationError``."""
    _client()
    return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)


def handle_checkout_completed(session: Session, checkout: Any) -> Subscription | None:
    metadata = _get(checkout, "metadata", {})
    user_id = _user_id_from_metadata(checkout)
    tier = _get(metadata, "tier")
    if user_id is None or not tier:
        logger.error("Missing metadata in checkout session %s", _get(checkout, "id"))
        return None

    subscription_id = _get(checkout, "subscription")
    stripe_subscription = stripe.Subscription.retrieve(subscription_id) if subscription_id else None
    db_subscription = crud.upsert_subscription(
        session=session,
        user_id=user_id,
        stripe_customer_id=_get(checkout, "customer"),
        stripe_subscription_id=_get(stripe_subscription, "id", subscription_id),
        plan_tier=tier,
        billing_cycle=_get(metadata, "billing_cycle"),
        property_slots=int(_get(metadata, "property_count", 0) or 0),
        status="active",
        **_subscription_period(stripe_subscription),
    )
    logger.info(
        "Subscription activated: user=%s tier=%s slots=%s",
        user_id,
        tier,
        db_subscription.property_slots,
    )
    return db_subscription


def handle_subscription_updated(session: Session, stripe_subscription: Any) -> Subscription | None:
    user_id = _user_id_from_metadata(stripe_subscription)
    if user_id is None or crud.get_subscription(session=session, user_id=user_id) is None:
        return None
    items = _get(_get(stripe_subscription, "items"), "data", [])
    quantity = _get(items[0], "quantity", 0) if items else 0
    return crud.upsert_subscription(
        session=session,
        user_id=user_id,
        property_slots=quantity,
        status=_get(stripe_subscription, "status", "inactive"),
        **_subscription_period(stripe_subscription),
    )


def handle_subscription_deleted(session: Session, stripe_subscription: Any) -> Subscription | None:
    user_id = _user_id_from_metadata(stripe_subscription)
    if user_id is None or crud.get_subscription(session=session, user_id=user_id) is None:
        return None
    return crud.upsert_subscription(session=session, user_id=user_id, status="canceled")


def handle_payment_failed(session: Session, invoice: Any) -> Subscription | None:
    customer_id = _get(invoice, "customer")
    if not customer_id:
        return None
    db_subscription = crud.get_subscription_by_customer(session=session, customer_id=customer_id)
    if db_subscription is None:
        logger.warning("Payment failed for unknown customer %s", customer_id)
        return None
    return crud.upsert_subscription(
        session=session, user_id=db_subscription.user_id, status="past_due"
    )


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_failed": handle_payment_failed,
}


def handle_event(session: Session, event: Any) -> None:
    """Mirror a verified Stripe event onto the local subscription row."""
    event_type = _get(event, "type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.debug("Ignoring Stripe event %s", event_type)
        return
    if event_type == "checkout.session.completed":
        _client()
    handler(session, event["data"]["object"])
