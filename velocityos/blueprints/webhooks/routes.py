import hashlib
import json

import stripe
from flask import current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from velocityos.billing.plans import initial_credits
from velocityos.errors import ApiError
from velocityos.extensions import csrf, db, limiter
from velocityos.models import BillingEventLog, Org, OrgMembership, Payment, User, ROLE_OWNER
from velocityos.services import credits as credit_service
from velocityos.services.email import record_provider_event, verify_webhook_signature
from velocityos.utils.helpers import safe_int, utcnow
from . import bp


def _log(event: str, level: str = "info", **fields):
    getattr(current_app.logger, level)(json.dumps({"event": event, **fields}, default=str))


def _id_of(value):
    # Stripe expands some references into objects
    if isinstance(value, dict):
        return value.get("id")
    return value


def _lock_org(**filters) -> Org | None:
    filters = {k: v for k, v in filters.items() if v is not None}
    if not filters:
        return None
    return db.session.execute(db.select(Org).filter_by(**filters).with_for_update()).scalar_one_or_none()


def _org_for_subscription(obj: dict) -> Org | None:
    sub_id = obj.get("id") if obj.get("object") == "subscription" else _id_of(obj.get("subscription"))
    org = _lock_org(stripe_subscription_id=sub_id) if sub_id else None
    return org or _lock_org(stripe_customer_id=_id_of(obj.get("customer")))


# ----- Event handlers (run inside the webhook transaction; no commits) -----

def _on_checkout_completed(obj: dict, log: BillingEventLog):
    customer_id = _id_of(obj.get("customer"))
    subscription_id = _id_of(obj.get("subscription"))
    if not customer_id:
        log.notes = "missing_customer"
        _log("stripe_webhook_missing_customer", "error", session_id=obj.get("id"))
        return

    meta = obj.get("metadata") or {}
    plan_id = meta.get("planId") or None
    owner_user_id = safe_int(meta.get("userId"))
    grant = initial_credits(plan_id)

    org = _lock_org(id=safe_int(meta.get("orgId"))) or _lock_org(stripe_customer_id=customer_id)
    if org is None:
        name = (obj.get("customer_details") or {}).get("name") or meta.get("companyName") or None
        owner = db.session.get(User, owner_user_id) if owner_user_id else None
        org = Org(
            name=name,
            owner_user_id=owner.id if owner else None,
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription_id,
            plan_id=plan_id,
            status="active",
            source="stripe_checkout",
        )
        credit_service.grant(org, grant)
        db.session.add(org)
        db.session.flush()
        if owner is not None and not owner.org_id:
            owner.org_id = org.id
            db.session.add(OrgMembership(org_id=org.id, user_id=owner.id, role=ROLE_OWNER))
        log.notes = f"org_created:{org.id}"
    else:
        org.stripe_customer_id = customer_id
        org.stripe_subscription_id = subscription_id
        org.plan_id = plan_id
        org.status = "active"
        credit_service.grant(org, grant)
        log.notes = f"org_updated:{org.id}"

    _log("stripe_org_upserted", org_id=org.id, plan_id=plan_id, customer_id=customer_id, subscription_id=subscription_id)


def _on_subscription_changed(obj: dict, log: BillingEventLog, deleted: bool = False):
    org = _org_for_subscription(obj)
    if org is None:
        log.notes = "org_not_found"
        return
    org.status = "canceled" if deleted else (obj.get("status") or org.status)
    plan_id = (obj.get("metadata") or {}).get("planId")
    if plan_id and not deleted:
        org.plan_id = plan_id
    log.notes = f"org_status:{org.id}:{org.status}"


def _on_invoice(obj: dict, log: BillingEventLog, paid: bool):
    org = _org_for_subscription(obj)
    if org is None:
        log.notes = "org_not_found"
        return
    org.status = "active" if paid else "past_due"
    log.notes = f"org_status:{org.id}:{org.status}"


def _on_payment_intent(obj: dict, log: BillingEventLog):
    payment = db.session.execute(
        db.select(Payment).where(Payment.stripe_payment_intent_id == obj.get("id")).with_for_update()
    ).scalar_one_or_none()
    if payment is None:
        log.notes = "payment_not_found"
        return
    payment.status = obj.get("status") or payment.status
    error = obj.get("last_payment_error") or {}
    payment.failure_message = (error.get("message") or None) if payment.status != "succeeded" else None
    log.notes = f"payment_status:{payment.id}:{payment.status}"


def _dispatch(ev_type: str, obj: dict, log: BillingEventLog):
    if ev_type == "checkout.session.completed":
        _on_checkout_completed(obj, log)
    elif ev_type == "customer.subscription.updated":
        _on_subscription_changed(obj, log)
    elif ev_type == "customer.subscription.deleted":
        _on_subscription_changed(obj, log, deleted=True)
    elif ev_type in ("invoice.paid", "invoice.payment_failed"):
        _on_invoice(obj, log, paid=(ev_type == "invoice.paid"))
    elif ev_type in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        _on_payment_intent(obj, log)
    else:
        log.notes = "ignored"
        _log("stripe_webhook_unhandled", type=ev_type)


# ----- Stripe Webhook -----
@csrf.exempt
@bp.get("/api/stripe/webhooks")
def stripe_webhook_alive():
    return jsonify({"message": "Stripe webhooks endpoint is alive"}), 200


@csrf.exempt
@limiter.exempt
@bp.post("/api/stripe/webhooks")
def stripe_webhook():
    """
    Stripe -> /api/stripe/webhooks
    Verifies the signature, then logs the event and applies it in one
    transaction. Handler errors answer 500 so Stripe redelivers.
    """
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise ApiError(500, "Stripe webhook secret not configured")

    raw_bytes = request.get_data(cache=False, as_text=False) or b""
    sig_header = request.headers.get("Stripe-Signature", "")
    if not raw_bytes or not sig_header:
        _log("stripe_webhook_bad_request", "warning", has_body=bool(raw_bytes), has_signature=bool(sig_header))
        return jsonify({"error": "Bad Request: missing body or stripe-signature"}), 400

    # 1) Verify signature
    try:
        stripe.Webhook.construct_event(
            payload=raw_bytes.decode("utf-8"),
            sig_header=sig_header,
            secret=secret,
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        # Log invalid attempts with a deterministic synthetic id (no payload trust)
        synthetic_id = f"invalid:{hashlib.sha256(raw_bytes).hexdigest()[:32]}"
        if not BillingEventLog.query.filter_by(stripe_event_id=synthetic_id).first():
            db.session.add(BillingEventLog(
                stripe_event_id=synthetic_id,
                type="signature_invalid",
                signature_valid=False,
                payload={},
            ))
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
        _log("stripe_webhook_invalid_signature", "warning", synthetic_id=synthetic_id)
        return jsonify({"error": f"Webhook Error: {e}"}), 400

    # The signature covers the raw body; work from the parsed JSON
    payload = json.loads(raw_bytes.decode("utf-8"))
    ev_id, ev_type = payload.get("id"), payload.get("type")
    if not ev_id or not ev_type:
        return jsonify({"error": "malformed_event"}), 400

    # 2) Idempotency guard (short-circuit if already processed)
    if BillingEventLog.query.filter_by(stripe_event_id=ev_id).first():
        _log("stripe_webhook_duplicate", id=ev_id, type=ev_type)
        return jsonify({"received": True, "duplicate": True}), 200

    _log("stripe_webhook_received", id=ev_id, type=ev_type)

    # 3) Log + apply atomically
    log = BillingEventLog(stripe_event_id=ev_id, type=ev_type, signature_valid=True, payload=payload)
    db.session.add(log)
    obj = (payload.get("data") or {}).get("object") or {}
    try:
        _dispatch(ev_type, obj, log)
        log.processed_at = utcnow()
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # A concurrent delivery of the same event won the insert
        if BillingEventLog.query.filter_by(stripe_event_id=ev_id).first():
            return jsonify({"received": True, "duplicate": True}), 200
        current_app.logger.exception("stripe_webhook_integrity_error id=%s type=%s", ev_id, ev_type)
        return jsonify({"error": "Internal error while processing webhook"}), 500
    except Exception:
        db.session.rollback()
        current_app.logger.exception("stripe_webhook_handler_error id=%s type=%s", ev_id, ev_type)
        return jsonify({"error": "Internal error while processing webhook"}), 500

    return jsonify({"received": True}), 200


# ----- Mail provider events (bounces/complaints) -----
@csrf.exempt
@limiter.exempt
@bp.post("/webhooks/email")
def email_events():
    # Generic HMAC: X-Timestamp, X-Signature
    timestamp = request.headers.get("X-Timestamp", "")
    signature = request.headers.get("X-Signature", "")
    raw = request.get_data() or b""

    if not verify_webhook_signature(raw, timestamp, signature):
        raise ApiError(401, "invalid_signature", "Webhook signature verification failed")

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ApiError(400, "Invalid JSON body")

    record_provider_event(payload)
    return jsonify({"ok": True}), 200
