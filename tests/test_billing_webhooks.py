import json

import pytest
import stripe

from velocityos.extensions import db
from velocityos.models import BillingEventLog, Org, OrgMembership, Payment, User


@pytest.fixture()
def trusted_signature(monkeypatch):
    # Monkeypatch Stripe signature verification to trust our payload
    def _fake_construct_event(payload, sig_header, secret):
        return json.loads(payload)
    monkeypatch.setattr(stripe.Webhook, "construct_event", staticmethod(_fake_construct_event))


def _post(client, event):
    return client.post(
        "/api/stripe/webhooks",
        data=json.dumps(event),
        headers={"Stripe-Signature": "t=1,v1=fake", "Content-Type": "application/json"},
    )


def test_alive_endpoint(client):
    r = client.get("/api/stripe/webhooks")
    assert r.status_code == 200
    assert r.get_json() == {"message": "Stripe webhooks endpoint is alive"}


def test_missing_signature_is_400(client):
    r = client.post("/api/stripe/webhooks", data=b"{}")
    assert r.status_code == 400
    assert "stripe-signature" in r.get_json()["error"]


def test_invalid_signature_is_logged_and_rejected(app, client, monkeypatch):
    def _reject(payload, sig_header, secret):
        raise stripe.SignatureVerificationError("No signatures found matching the expected signature", sig_header)
    monkeypatch.setattr(stripe.Webhook, "construct_event", staticmethod(_reject))

    r = _post(client, {"id": "evt_x", "type": "invoice.paid"})
    assert r.status_code == 400
    assert r.get_json()["error"].startswith("Webhook Error:")
    with app.app_context():
        row = BillingEventLog.query.one()
        assert row.signature_valid is False
        assert row.stripe_event_id.startswith("invalid:")


def test_checkout_completed_creates_org_with_credits_and_owner(app, client, make_member, trusted_signature):
    with app.app_context():
        buyer = User(email="buyer@example.com", firebase_uid="buyer")
        db.session.add(buyer)
        db.session.commit()
        buyer_id = buyer.id

    event = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_1",
            "customer": "cus_123",
            "subscription": "sub_123",
            "customer_details": {"name": "Buyer Inc"},
            "metadata": {"planId": "founding_997", "userId": str(buyer_id), "orgId": ""},
        }},
    }
    r = _post(client, event)
    assert r.status_code == 200
    assert r.get_json() == {"received": True}

    with app.app_context():
        org = Org.query.filter_by(stripe_customer_id="cus_123").one()
        assert org.name == "Buyer Inc"
        assert org.status == "active"
        assert org.plan_id == "founding_997"
        assert org.stripe_subscription_id == "sub_123"
        assert org.credits == {"aiTokens": 1_000_000, "emails": 100_000, "storageMb": 50_000}
        assert org.owner_user_id == buyer_id
        assert db.session.get(User, buyer_id).org_id == org.id
        assert OrgMembership.query.filter_by(org_id=org.id, user_id=buyer_id, role="owner").count() == 1
        log = BillingEventLog.query.filter_by(stripe_event_id="evt_1").one()
        assert log.processed_at is not None

    # Redelivery is acknowledged without applying twice
    r = _post(client, event)
    assert r.status_code == 200
    assert r.get_json()["duplicate"] is True
    with app.app_context():
        org = Org.query.filter_by(stripe_customer_id="cus_123").one()
        assert org.credits_emails == 100_000


def test_checkout_completed_updates_existing_org(app, client, make_member, trusted_signature):
    ids = make_member()
    event = {
        "id": "evt_2",
        "type": "checkout.session.completed",
        "data": {"object": {
            "customer": "cus_existing",
            "subscription": "sub_existing",
            "metadata": {"planId": "velocityos_starter", "orgId": str(ids["org_id"])},
        }},
    }
    assert _post(client, event).status_code == 200
    with app.app_context():
        org = db.session.get(Org, ids["org_id"])
        assert org.stripe_customer_id == "cus_existing"
        assert org.has_active_plan
        assert org.credits_emails == 25_000


def test_subscription_and_invoice_events_update_status(app, client, make_member, trusted_signature):
    ids = make_member(stripe_customer_id="cus_9", stripe_subscription_id="sub_9", status="active")

    _post(client, {"id": "evt_a", "type": "invoice.payment_failed", "data": {"object": {"subscription": "sub_9", "customer": "cus_9"}}})
    with app.app_context():
        assert db.session.get(Org, ids["org_id"]).status == "past_due"

    _post(client, {"id": "evt_b", "type": "invoice.paid", "data": {"object": {"subscription": "sub_9"}}})
    with app.app_context():
        assert db.session.get(Org, ids["org_id"]).status == "active"

    _post(client, {"id": "evt_c", "type": "customer.subscription.deleted", "data": {"object": {"object": "subscription", "id": "sub_9", "status": "canceled"}}})
    with app.app_context():
        assert db.session.get(Org, ids["org_id"]).status == "canceled"


def test_payment_intent_events_update_payment(app, client, make_member, trusted_signature):
    ids = make_member()
    with app.app_context():
        db.session.add(Payment(org_id=ids["org_id"], stripe_payment_intent_id="pi_1", amount=1000, currency="usd", status="processing"))
        db.session.commit()

    _post(client, {"id": "evt_p", "type": "payment_intent.payment_failed", "data": {"object": {
        "id": "pi_1", "status": "requires_payment_method", "last_payment_error": {"message": "Card declined"},
    }}})
    with app.app_context():
        p = Payment.query.filter_by(stripe_payment_intent_id="pi_1").one()
        assert p.status == "requires_payment_method"
        assert p.failure_message == "Card declined"


def test_unhandled_event_is_acknowledged(app, client, trusted_signature):
    r = _post(client, {"id": "evt_u", "type": "customer.created", "data": {"object": {}}})
    assert r.status_code == 200
    with app.app_context():
        assert BillingEventLog.query.filter_by(stripe_event_id="evt_u").one().notes == "ignored"


def test_handler_error_rolls_back_and_returns_500(app, client, trusted_signature, monkeypatch):
    from velocityos.blueprints.webhooks import routes

    def _boom(ev_type, obj, log):
        raise RuntimeError("db down")
    monkeypatch.setattr(routes, "_dispatch", _boom)

    r = _post(client, {"id": "evt_e", "type": "invoice.paid", "data": {"object": {}}})
    assert r.status_code == 500
    with app.app_context():
        # Not logged, so Stripe's redelivery is processed
        assert BillingEventLog.query.filter_by(stripe_event_id="evt_e").count() == 0
