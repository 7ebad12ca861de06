import stripe
from flask import current_app, jsonify, request
from flask_login import current_user

from velocityos.billing.plans import is_known_plan
from velocityos.errors import ApiError, ok
from velocityos.extensions import db, limiter
from velocityos.models.org_membership import OrgMembership, ROLE_ADMIN, ROLE_OWNER
from velocityos.security.auth import unauthorized_error
from velocityos.services import billing as billing_service
from velocityos.services.policy import current_org, current_org_id, role_required
from velocityos.utils.helpers import safe_int
from . import bp


def _validate(body: dict) -> list:
    errors = []
    if not body.get("email"):
        errors.append("email is required")
    if not body.get("companyName"):
        errors.append("companyName is required")
    if not body.get("planId"):
        errors.append("planId is required")
    if body.get("planId") and not is_known_plan(body.get("planId")):
        errors.append(f"Unknown planId: {body.get('planId')}")
    return errors


def _checkout_org_id(body: dict):
    """
    The org the subscription credits. Anonymous checkouts create a new org
    in the webhook; an explicit orgId needs a signed-in member of that org.
    """
    authed = getattr(current_user, "is_authenticated", False)
    requested = body.get("orgId")
    if requested in (None, ""):
        return current_org_id() if authed else None
    if not authed:
        raise unauthorized_error()
    org_id = safe_int(requested)
    member = org_id is not None and db.session.query(OrgMembership).filter_by(
        org_id=org_id, user_id=current_user.id
    ).one_or_none()
    if not member:
        raise ApiError(404, "Not Found", "Organization not found")
    return org_id


@bp.post("/create-checkout-session")
@limiter.limit("10 per minute")
def create_checkout_session():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ApiError(400, "Invalid JSON body")

    errors = _validate(body)
    if errors:
        current_app.logger.warning("stripe_checkout_validation_failed errors=%s", errors)
        raise ApiError(400, "Invalid request", details=errors)

    org_id = _checkout_org_id(body)
    user_id = current_user.id if getattr(current_user, "is_authenticated", False) else None

    try:
        session = billing_service.create_checkout_session(
            plan_id=body["planId"],
            email=str(body["email"]).strip(),
            company_name=str(body["companyName"]).strip(),
            org_id=org_id,
            user_id=user_id,
        )
    except (stripe.StripeError, RuntimeError) as e:
        current_app.logger.exception(
            "stripe_checkout_session_create_failed plan_id=%s org_id=%s", body.get("planId"), org_id
        )
        raise ApiError(500, "Failed to create checkout session", str(e) or "Stripe API error")

    current_app.logger.info(
        "stripe_checkout_session_created session_id=%s plan_id=%s org_id=%s user_id=%s",
        session["id"], body["planId"], org_id, user_id,
    )
    return jsonify({"url": session["url"]}), 200


@bp.post("/portal")
@role_required(ROLE_ADMIN, ROLE_OWNER)
@limiter.limit("10 per minute")
def customer_portal():
    org = current_org()
    if not org.stripe_customer_id:
        raise ApiError(409, "Conflict", "No billing account for this organization")
    try:
        portal = billing_service.create_portal_session(stripe_customer_id=org.stripe_customer_id)
    except stripe.StripeError as e:
        current_app.logger.exception("stripe_portal_session_failed org_id=%s", org.id)
        raise ApiError(502, "Failed to create portal session", e.user_message or "Stripe API error")
    return ok(portal)
