import logging
from typing import Any

import stripe
from fastapi import APIRouter, Header, HTTPException, Request

from app import crud
from app.api.deps import CurrentUser, SessionDep
from app.billing import service
from app.models import (
    CheckoutRequest,
    RedirectURL,
    SubscriptionPublic,
    SubscriptionUsage,
    SubscriptionWithUsage,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/checkout", response_model=RedirectURL)
def create_checkout(
    *, session: SessionDep, current_user: CurrentUser, body: CheckoutRequest
) -> Any:
    try:
        url = service.create_checkout_session(
            session=session,
            user=current_user,
            tier=body.tier,
            billing_cycle=body.billing_cycle,
            property_count=body.property_count,
        )
    except service.BillingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Checkout error: {e}")
        raise HTTPException(status_code=500, detail="Failed to create checkout session")
    return RedirectURL(url=url)


@router.post("/portal", response_model=RedirectURL)
def create_portal(session: SessionDep, current_user: CurrentUser) -> Any:
    subscription = crud.get_subscription(session=session, user_id=current_user.id)
    if not subscription or not subscription.stripe_customer_id:
        raise HTTPException(status_code=404, detail="No subscription found")
    try:
        url = service.create_portal_session(customer_id=subscription.stripe_customer_id)
    except stripe.StripeError as e:
        logger.error(f"Portal error: {e}")
        raise HTTPException(status_code=500, detail="Failed to create portal session")
    return RedirectURL(url=url)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    session: SessionDep,
    stripe_signature: str | None = Header(default=None),
) -> Any:
    """Keep the local subscription row in sync with Stripe. Unauthenticated; verified by signature."""
    payload = await request.body()
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing signature")
    try:
        event = service.construct_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError):
        logger.warning("Rejected Stripe webhook with invalid signature")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        service.handle_event(session, event)
    except Exception as e:
        logger.error(f"Webhook handler error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Webhook handler failed")
    return {"received": True}


@router.get("/subscription", response_model=SubscriptionWithUsage)
def read_subscription(session: SessionDep, current_user: CurrentUser) -> Any:
    subscription = crud.get_subscription(session=session, user_id=current_user.id)
    used = crud.count_user_properties(session=session, user_id=current_user.id)
    if subscription:
        public = SubscriptionPublic.model_validate(subscription)
    else:
        public = SubscriptionPublic(user_id=current_user.id)
    return SubscriptionWithUsage(
        subscription=public,
        usage=SubscriptionUsage(
            properties_used=used,
            properties_available=public.property_slots - used,
        ),
    )
