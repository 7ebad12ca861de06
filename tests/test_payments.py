import types

import pytest
import stripe

from conftest import login
from velocityos.extensions import db
from velocityos.models import Customer, Payment
from velocityos.services import billing as billing_service


class _FakeIntents:
    def __init__(self, calls, error=None):
        self.calls = calls
        self.error = error

    def create(self, params=None, options=None):
        self.calls.append({"params": params, "options": options})
        if self.error:
            raise self.error
        # Same idempotency key -> same PaymentIntent, as Stripe does
        key = options["idempotency_key"]
        return types.SimpleNamespace(id=f"pi_{abs(hash(key)) % 10_000_000}", status="succeeded", client_secret="pi_secret_x")


@pytest.fixture()
def stripe_calls(monkeypatch):
    calls = []
    fake = types.SimpleNamespace(payment_intents=_FakeIntents(calls))
    monkeypatch.setattr(billing_service, "_client", lambda: fake)
    return calls


def test_charge_requires_active_subscription(client, make_member, stripe_calls):
    ids = make_member(status="past_due")
    login(client, ids["user_id"], ids["org_id"])
    r = client.post("/api/payment/charge", json={"amount": 1000})
    assert r.status_code == 402
    assert r.get_json()["code"] == "subscription_required"
    assert stripe_calls == []


def test_charge_validation(member_client, stripe_calls):
    for bad in (None, 49, "1000", 10.5, True):
        r = member_client.post("/api/payment/charge", json={"amount": bad})
        assert r.status_code == 400, bad
    r = member_client.post("/api/payment/charge", json={"amount": 1000, "currency": "dollars"})
    assert r.status_code == 400
    assert stripe_calls == []


def test_charge_creates_payment_and_is_idempotent(app, member_client, stripe_calls):
    org_id = member_client.ids["org_id"]
    with app.app_context():
        c = Customer(org_id=org_id, name="Payer", email="payer@example.com")
        db.session.add(c)
        db.session.commit()
        cid = c.id

    payload = {"amount": 2500, "currency": "USD", "customerId": str(cid), "description": "Setup fee", "paymentMethod": "pm_card_visa"}
    r = member_client.post("/api/payment/charge", json=payload, headers={"Idempotency-Key": "order-42"})
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["amount"] == 2500
    assert data["currency"] == "usd"
    assert data["status"] == "succeeded"
    assert data["customerId"] == str(cid)
    assert data["clientSecret"] == "pi_secret_x"

    params = stripe_calls[0]["params"]
    assert params["confirm"] is True
    assert params["payment_method"] == "pm_card_visa"
    assert params["metadata"] == {"orgId": str(org_id), "customerId": str(cid)}
    assert stripe_calls[0]["options"]["idempotency_key"].startswith("pi:")

    # Replay with the same key returns the same payment
    r = member_client.post("/api/payment/charge", json=payload, headers={"Idempotency-Key": "order-42"})
    assert r.status_code == 200
    assert r.get_json()["data"]["id"] == data["id"]
    with app.app_context():
        assert Payment.query.count() == 1


def test_card_declined_is_402(member_client, monkeypatch):
    err = stripe.CardError("Your card was declined.", "card", "card_declined")
    fake = types.SimpleNamespace(payment_intents=_FakeIntents([], error=err))
    monkeypatch.setattr(billing_service, "_client", lambda: fake)
    r = member_client.post("/api/payment/charge", json={"amount": 1000})
    assert r.status_code == 402
    assert r.get_json()["error"] == "Payment declined"


def test_provider_error_is_502(member_client, monkeypatch):
    fake = types.SimpleNamespace(payment_intents=_FakeIntents([], error=stripe.APIConnectionError("down")))
    monkeypatch.setattr(billing_service, "_client", lambda: fake)
    r = member_client.post("/api/payment/charge", json={"amount": 1000})
    assert r.status_code == 502
