"""
Campaign lifecycle: start (reserve email credits, maybe send now),
pause/resume, and the dispatcher used by `flask campaigns dispatch`.
"""
import json
import logging
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy import update

from velocityos.errors import ApiError
from velocityos.extensions import db
from velocityos.models.campaign import (
    Campaign,
    STATUS_ACTIVE,
    STATUS_PAUSED,
    STATUS_COMPLETED,
)
from velocityos.models.org import Org
from velocityos.services import credits
from velocityos.services.email import send_email
from velocityos.utils.helpers import utcnow

log = logging.getLogger(__name__)


def start(
    *,
    org_id: int,
    user_id: Optional[int],
    name: str,
    message: str,
    recipients: List[str],
    subject: Optional[str] = None,
    scheduled_at: Optional[datetime] = None,
) -> Campaign:
    # One email credit per recipient, reserved up front
    credits.consume(org_id, credits.EMAILS, len(recipients))

    campaign = Campaign(
        org_id=org_id,
        created_by_user_id=user_id,
        name=name,
        subject=subject,
        message=message,
        recipients=recipients,
        status=STATUS_ACTIVE,
        scheduled_at=scheduled_at or utcnow(),
    )
    db.session.add(campaign)
    db.session.commit()
    log.info("campaign_started id=%s org_id=%s recipients=%s", campaign.id, org_id, len(recipients))

    if campaign.scheduled_at <= utcnow():
        dispatch(campaign)
    return campaign


def _claim(campaign: Campaign) -> bool:
    """Flip active -> completed atomically; only the winner sends."""
    result = db.session.execute(
        update(Campaign)
        .where(Campaign.id == campaign.id, Campaign.status == STATUS_ACTIVE)
        .values(status=STATUS_COMPLETED, updated_at=utcnow())
    )
    db.session.commit()
    return result.rowcount == 1


def dispatch(campaign: Campaign) -> Campaign:
    if not _claim(campaign):
        db.session.refresh(campaign)
        return campaign

    org = db.session.get(Org, campaign.org_id)
    subject = campaign.subject or campaign.name
    context = {
        "campaign_name": campaign.name,
        "message": campaign.message,
        "org_name": (org.name if org else None) or "VelocityOS",
        "app_base_url": current_app.config.get("APP_BASE_URL"),
    }

    sent = failed = 0
    for to_email in campaign.recipients or []:
        elog = send_email(to_email, subject, "campaign", context, org_id=campaign.org_id, campaign_id=campaign.id)
        if elog.status == "sent":
            sent += 1
        else:
            failed += 1

    # Unsent messages give their reserved credit back
    credits.refund(campaign.org_id, credits.EMAILS, failed)
    campaign.sent_count = sent
    campaign.failed_count = failed
    campaign.sent_at = utcnow()
    db.session.commit()

    current_app.logger.info(json.dumps({
        "event": "campaign_dispatch",
        "campaign_id": campaign.id,
        "org_id": campaign.org_id,
        "sent": sent,
        "failed": failed,
    }))
    return campaign


def dispatch_due(limit: int = 50) -> int:
    due = db.session.execute(
        db.select(Campaign)
        .where(Campaign.status == STATUS_ACTIVE, Campaign.scheduled_at <= utcnow())
        .order_by(Campaign.scheduled_at.asc())
        .limit(limit)
    ).scalars().all()
    for campaign in due:
        dispatch(campaign)
    return len(due)


def pause(campaign: Campaign) -> Campaign:
    if campaign.status != STATUS_ACTIVE:
        raise ApiError(409, "Conflict", f"Cannot pause a {campaign.status} campaign")
    campaign.status = STATUS_PAUSED
    db.session.commit()
    return campaign


def resume(campaign: Campaign) -> Campaign:
    if campaign.status != STATUS_PAUSED:
        raise ApiError(409, "Conflict", f"Cannot resume a {campaign.status} campaign")
    campaign.status = STATUS_ACTIVE
    db.session.commit()
    if campaign.scheduled_at <= utcnow():
        dispatch(campaign)
    return campaign
