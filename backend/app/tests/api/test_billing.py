from unittest.mock import patch

import stripe

from app import crud
from app.core.config import settings

API = settings.API_V1_STR

PERIOD_START = 1788220800
PERIOD_END = 1790812800


def _event(event_type, obj):
    return {"id": "evt_test", "type": event_type, "data": {"object": obj}}


def _post_webhook(client, event):
    with patch("app.billing.service.stripe.Webhook.construct_event", return_value=event):
        return client.post(
            f"{API}/billing/webhook",
            content=b"{}",
            headers={"stripe-signature": "t=1,v1=test"},
        )


def test_webhook_requires_signature(client):
    response = client.post(f"{API}/billing/webhook", content=b"{}")

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing signature"


def test_webhook_rejects_invalid_signature(client):
    error = stripe.SignatureVerificationError("bad signature", "t=1,v1=test")
    with patch("app.billing.service.stripe.Webhook.construct_event", side_effect=error):
        response = client.post(
            f"{API}/billing/webhook",
            content=b"{}",
            headers={"stripe-signature": "t=1,v1=test"},
        )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


def test_checkout_completed_activates_subscription(client, session, user):
    checkout = {
        "id": "cs_test",
        "customer": "cus_123",
        "subscription": "sub_123",
        "metadata": {
            "user_id": str(user.id),
            "tier": "professional",
            "billing_cycle": "quarterly",
            "property_count": "3",
        },
    }
    stripe_subscription = {
        "id": "sub_123",
        "items": {
            "data": [
                {
                    "quantity": 3,
                    "current_period_start": PERIOD_START,
                    "current_period_end": PERIOD_END,
                }
            ]
        },
    }
    with patch(
        "app.billing.service.stripe.Subscription.retrieve", return_value=stripe_subscription
    ):
        response = _post_webhook(client, _event("checkout.session.completed", checkout))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    subscription = crud.get_subscription(session=session, user_id=user.id)
    assert subscription.status == "active"
    assert subscription.plan_tier == "professional"
    assert subscription.billing_cycle == "quarterly"
    assert subscription.property_slots == 3
    assert subscription.stripe_customer_id == "cus_123"
    assert subscription.current_period_end is not None


def test_subscription_updated_changes_slots(client, session, subscribed_user):
    stripe_subscription = {
        "id": "sub_test",
        "status": "active",
        "metadata": {"user_id": str(subscribed_user.id)},
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "items": {"data": [{"quantity": 5}]},
    }

    response = _post_webhook(client, _event("customer.subscription.updated", stripe_subscription))

    assert response.status_code == 200
    subscription = crud.get_subscription(session=session, user_id=subscribed_user.id)
    assert subscription.property_slots == 5


def test_subscription_deleted_marks_canceled(client, session, subscribed_user):
    stripe_subscription = {"id": "sub_test", "metadata": {"user_id": str(subscribed_user.id)}}

    _post_webhook(client, _event("customer.subscription.deleted", stripe_subscription))

    subscription = crud.get_subscription(session=session, user_id=subscribed_user.id)
    assert subscription.status == "canceled"


def test_payment_failed_marks_past_due(client, session, subscribed_user):
    _post_webhook(client, _event("invoice.payment_failed", {"customer": "cus_test"}))

    subscription = crud.get_subscription(session=session, user_id=subscribed_user.id)
    assert subscription.status == "past_due"


def test_unknown_event_is_acknowledged(client):
    response = _post_webhook(client, _event("customer.created", {"id": "cus_new"}))

    assert response.status_code == 200


def test_checkout_creates_customer_and_session(client, headers, session, user):
    with (
        patch.object(settings, "STRIPE_PRICE_FOUNDATIONAL_MONTHLY", "price_found_monthly"),
        patch("app.billing.service.stripe.Customer.create", return_value={"id": "cus_new"}),
        patch(
            "app.billing.service.stripe.checkout.Session.create",
            return_value={"url": "https://checkout.stripe.test/session"},
        ) as create_session,
    ):
        response = client.post(
            f"{API}/billing/checkout",
            headers=headers,
            json={"tier": "foundational", "billing_cycle": "monthly", "property_count": 2},
        )

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.test/session"}
    kwargs = create_session.call_args.kwargs
    assert kwargs["customer"] == "cus_new"
    assert kwargs["line_items"] == [{"price": "price_found_monthly", "quantity": 2}]
    assert kwargs["metadata"]["user_id"] == str(user.id)
    subscription = crud.get_subscription(session=session, user_id=user.id)
    assert subscription.stripe_customer_id == "cus_new"
    assert subscription.status == "inactive"


def test_checkout_without_configured_price(client, headers):
    with patch.object(settings, "STRIPE_PRICE_INSTITUTIONAL_YEARLY", ""):
        response = client.post(
            f"{API}/billing/checkout",
            headers=headers,
            json={"tier": "institutional", "billing_cycle": "yearly", "property_count": 1},
        )

    assert response.status_code == 400


def test_portal_requires_subscription(client, headers):
    response = client.post(f"{API}/billing/portal", headers=headers)

    assert response.status_code == 404
    assert response.json()["detail"] == "No subscription found"


def test_read_subscription_reports_usage(client, headers, subscribed_user, property_):
    response = client.get(f"{API}/billing/subscription", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["subscription"]["plan_tier"] == "foundational"
    assert body["usage"] == {"properties_used": 1, "properties_available": 1}
