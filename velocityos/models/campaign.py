from __future__ import annotations

from sqlalchemy import Index, CheckConstraint

from velocityos.extensions import db
from velocityos.models.types import JSONType
from velocityos.utils.helpers import utcnow, isoformat

STATUS_DRAFT = "draft"
STATUS_ACTIVE = "active"
STATUS_PAUSED = "paused"
STATUS_COMPLETED = "completed"
CAMPAIGN_STATUSES = (STATUS_DRAFT, STATUS_ACTIVE, STATUS_PAUSED, STATUS_COMPLETED)


class Campaign(db.Model):
    __tablename__ = "campaigns"
    __allow_unmapped__ = True

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), index=True, nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(200), nullable=True)
    message = db.Column(db.Text, nullable=False)
    recipients = db.Column(JSONType, nullable=False, default=list)

    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE)
    scheduled_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    sent_at = db.Column(db.DateTime, nullable=True)
    sent_count = db.Column(db.Integer, nullable=False, default=0)
    failed_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("ix_campaigns_org_status", org_id, status),
        Index("ix_campaigns_status_scheduled_at", status, scheduled_at),
        CheckConstraint(
            "status IN ('draft','active','paused','completed')",
            name="ck_campaigns_status_valid",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "subject": self.subject,
            "status": self.status,
            "recipients": list(self.recipients or []),
            "message": self.message,
            "createdAt": isoformat(self.created_at),
            "scheduledAt": isoformat(self.scheduled_at),
            "sentAt": isoformat(self.sent_at),
            "sentCount": self.sent_count or 0,
            "failedCount": self.failed_count or 0,
        }

    def __repr__(self) -> str:
        return f"<Campaign id={self.id} name={self.name!r} status={self.status!r}>"
