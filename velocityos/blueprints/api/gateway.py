import math

from flask_login import current_user

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import db, limiter
from velocityos.models.agent import AIOperation, OP_QUEUED
from velocityos.services import ai_operations
from velocityos.services.policy import current_org_id, require_member
from velocityos.utils.helpers import from_epoch, parse_iso, utcnow
from . import bp


def _scheduled_for(value):
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds
        dt = from_epoch(value // 1000) if math.isfinite(value) else None
    else:
        dt = parse_iso(value)
    if dt is None:
        raise ApiError(400, "scheduledFor must be epoch milliseconds or an ISO 8601 timestamp")
    return dt


@bp.post("/gateway/dispatch")
@require_member
@limiter.limit("30 per minute")
def gateway_dispatch():
    data = json_body()
    op_type = data.get("operationType")
    if not op_type:
        raise ApiError(400, "operationType is required")
    context = data.get("context") if data.get("context") is not None else {}
    if not isinstance(context, dict):
        raise ApiError(400, "context must be an object")

    scheduled_for = _scheduled_for(data.get("scheduledFor"))
    op = ai_operations.create(
        org_id=current_org_id(),
        user_id=current_user.id,
        op_type=op_type,
        context=context,
        priority=data.get("priority") or "medium",
        requires_workspace_access=bool(data.get("requiresWorkspaceAccess")),
        scheduled_for=scheduled_for,
    )

    if data.get("queue") is True or (scheduled_for is not None and scheduled_for > utcnow()):
        return ok(op.to_dict(), "Operation queued", status=202)

    op = ai_operations.execute(op)
    return ok(op.to_dict(), "Operation executed" if op.success else "Operation failed")


@bp.get("/gateway/operations/<operation_id>")
@require_member
def gateway_operation(operation_id: str):
    op = db.session.execute(
        db.select(AIOperation).where(AIOperation.operation_id == operation_id, AIOperation.org_id == current_org_id())
    ).scalar_one_or_none()
    if op is None:
        raise ApiError(404, "Not Found", "Operation not found")
    return ok(op.to_dict())


@bp.get("/gateway/operations")
@require_member
def gateway_operations():
    rows = db.session.execute(
        db.select(AIOperation)
        .where(AIOperation.org_id == current_org_id())
        .order_by(AIOperation.created_at.desc(), AIOperation.id.desc())
        .limit(100)
    ).scalars().all()
    return ok({"items": [op.to_dict() for op in rows], "queued": sum(1 for op in rows if op.status == OP_QUEUED)})
