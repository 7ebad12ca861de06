from flask import current_app
from flask_login import current_user

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import db, limiter
from velocityos.models.call_request import CallRequest
from velocityos.services.policy import current_org_id, require_member
from velocityos.utils.validators import clean_str, normalize_e164
from .customers import get_tenant_customer
from . import bp


@bp.post("/outboundcall")
@require_member
@limiter.limit("30 per minute")
def outbound_call():
    data = json_body()
    raw = clean_str(data.get("to"), max_len=32)
    if not raw:
        raise ApiError(400, "Phone number is required")
    to_number = normalize_e164(raw)
    if to_number is None:
        raise ApiError(400, "Invalid phone number", errors={"to": "Use E.164 format, e.g. +14155550123"})

    customer = get_tenant_customer(data.get("customerId")) if data.get("customerId") not in (None, "") else None

    call = CallRequest(
        org_id=current_org_id(),
        user_id=current_user.id,
        customer_id=customer.id if customer else None,
        to_number=to_number,
        script=clean_str(data.get("script"), max_len=2000),
        status="queued",
    )
    db.session.add(call)
    db.session.commit()
    current_app.logger.info("outbound_call_queued id=%s org_id=%s", call.id, call.org_id)
    return ok(call.to_dict(), "Call queued", status=201)
