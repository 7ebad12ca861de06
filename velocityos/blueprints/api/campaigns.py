from flask import request
from flask_login import current_user

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import db, limiter
from velocityos.models.campaign import Campaign
from velocityos.services import campaigns as campaign_service
from velocityos.services.policy import current_org_id, require_member
from velocityos.utils.helpers import parse_iso
from velocityos.utils.validators import clean_str, dedupe_emails, is_valid_email
from . import bp

MAX_RECIPIENTS = 1000


def _tenant_campaign(campaign_id: int) -> Campaign:
    c = db.session.execute(
        db.select(Campaign).where(Campaign.id == campaign_id, Campaign.org_id == current_org_id())
    ).scalar_one_or_none()
    if c is None:
        raise ApiError(404, "Not Found", "Campaign not found")
    return c


@bp.post("/campaign/start")
@require_member
@limiter.limit("30 per minute")
def campaign_start():
    data = json_body()
    name = clean_str(data.get("name"))
    message = data.get("message").strip() if isinstance(data.get("message"), str) else None
    recipients = data.get("recipients")

    if not name or not recipients or not message:
        raise ApiError(400, "Name, recipients, and message are required")
    if not isinstance(recipients, list) or not recipients:
        raise ApiError(400, "Recipients must be a non-empty array")
    if not all(isinstance(r, str) for r in recipients):
        raise ApiError(400, "Recipients must be email addresses")

    emails = dedupe_emails(recipients)
    invalid = [e for e in emails if not is_valid_email(e)]
    if invalid:
        raise ApiError(400, "Invalid recipient email address", details={"invalid": invalid})
    if not emails:
        raise ApiError(400, "Recipients must be a non-empty array")
    if len(emails) > MAX_RECIPIENTS:
        raise ApiError(400, f"A campaign can have at most {MAX_RECIPIENTS} recipients")

    scheduled_at = None
    if data.get("scheduledAt"):
        scheduled_at = parse_iso(data.get("scheduledAt"))
        if scheduled_at is None:
            raise ApiError(400, "scheduledAt must be an ISO 8601 timestamp")

    campaign = campaign_service.start(
        org_id=current_org_id(),
        user_id=current_user.id,
        name=name,
        subject=clean_str(data.get("subject"), max_len=200),
        message=message,
        recipients=emails,
        scheduled_at=scheduled_at,
    )
    return ok(campaign.to_dict(), "Campaign started successfully", status=201)


@bp.get("/campaign/list")
@require_member
def campaign_list():
    stmt = db.select(Campaign).where(Campaign.org_id == current_org_id())
    status = (request.args.get("status") or "").strip()
    if status:
        stmt = stmt.where(Campaign.status == status)
    rows = db.session.execute(stmt.order_by(Campaign.created_at.desc(), Campaign.id.desc()).limit(200)).scalars().all()
    return ok([c.to_dict() for c in rows])


@bp.post("/campaign/<int:campaign_id>/pause")
@require_member
def campaign_pause(campaign_id: int):
    c = campaign_service.pause(_tenant_campaign(campaign_id))
    return ok(c.to_dict(), "Campaign paused")


@bp.post("/campaign/<int:campaign_id>/resume")
@require_member
def campaign_resume(campaign_id: int):
    c = campaign_service.resume(_tenant_campaign(campaign_id))
    return ok(c.to_dict(), "Campaign resumed")
