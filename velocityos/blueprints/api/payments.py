import hashlib
import json

import stripe
from flask import current_app, request
from flask_login import current_user

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import db, limiter
from velocityos.models.payment import Payment
from velocityos.security.entitlements import require_active_subscription
from velocityos.services import billing as billing_service
from velocityos.services.policy import current_org_id, require_member
from velocityos.utils.helpers import utcnow
from velocityos.utils.validators import clean_str, is_valid_currency
from .customers import get_tenant_customer
from . import bp

MIN_AMOUNT = 50  # Stripe minimum in minor units for most currencies


def _idempotency_key(data: dict) -> str:
    """Client-supplied Idempotency-Key, or one derived from the request (same body within a minute)."""
    supplied = (request.headers.get("Idempotency-Key") or "").strip()
    if supplied:
        return supplied[:200]
    raw = json.dumps(data, sort_keys=True, default=str)
    bucket = utcnow().strftime("%Y%m%d%H%M")
    return hashlib.sha256(f"{current_user.id}|{bucket}|{raw}".encode("utf-8")).hexdigest()[:40]


@bp.post("/payment/charge")
@require_member
@require_active_subscription
@limiter.limit("30 per minute")
def payment_charge():
    data = json_body()
    amount = data.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < MIN_AMOUNT:
        raise ApiError(400, f"Amount must be an integer of at least {MIN_AMOUNT} (minor units)")

    currency = (data.get("currency") or "usd")
    if not isinstance(currency, str) or not is_valid_currency(currency):
        raise ApiError(400, "Currency must be a three-letter ISO code")
    currency = currency.lower()

    customer = get_tenant_customer(data.get("customerId")) if data.get("customerId") not in (None, "") else None
    description = clean_str(data.get("description"))
    payment_method = clean_str(data.get("paymentMethod"), max_len=128)
    org_id = current_org_id()

    try:
        intent = billing_service.create_payment_intent(
            amount=amount,
            currency=currency,
            org_id=org_id,
            idempotency_key=_idempotency_key(data),
            payment_method=payment_method,
            description=description,
            metadata={"customerId": str(customer.id)} if customer else None,
        )
    except stripe.CardError as e:
        current_app.logger.info("payment_declined org_id=%s code=%s", org_id, getattr(e, "code", None))
        raise ApiError(402, "Payment declined", e.user_message or "The card was declined", code=getattr(e, "code", None))
    except stripe.StripeError as e:
        current_app.logger.exception("payment_intent_create_failed org_id=%s", org_id)
        raise ApiError(502, "Payment failed", e.user_message or "Payment provider error")

    # Idempotent replays return the same PaymentIntent
    payment = db.session.execute(
        db.select(Payment).where(Payment.stripe_payment_intent_id == intent.id)
    ).scalar_one_or_none()
    created = payment is None
    if created:
        payment = Payment(
            org_id=org_id,
            customer_id=customer.id if customer else None,
            created_by_user_id=current_user.id,
            stripe_payment_intent_id=intent.id,
            amount=amount,
            currency=currency,
            status=intent.status,
            description=description,
        )
        db.session.add(payment)
    else:
        payment.status = intent.status
    db.session.commit()

    body = payment.to_dict()
    body["clientSecret"] = getattr(intent, "client_secret", None)
    return ok(body, "Payment created", status=201 if created else 200)
