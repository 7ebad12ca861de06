from sqlalchemy import Index

from velocityos.extensions import db
from velocityos.models.types import JSONType
from velocityos.utils.helpers import utcnow, isoformat

# AI operation lifecycle
OP_QUEUED = "queued"
OP_RUNNING = "running"
OP_SUCCEEDED = "succeeded"
OP_FAILED = "failed"


class AgentState(db.Model):
    """One row per org: the autonomous agent's run state."""
    __tablename__ = "agent_states"

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default="idle")  # idle|running|stopped
    restart_count = db.Column(db.Integer, nullable=False, default=0)
    last_restarted_at = db.Column(db.DateTime, nullable=True)
    last_restarted_by = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "restartCount": self.restart_count or 0,
            "lastRestartedAt": isoformat(self.last_restarted_at),
        }


class AIOperation(db.Model):
    __tablename__ = "ai_operations"

    id = db.Column(db.Integer, primary_key=True)
    operation_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True)

    type = db.Column(db.String(40), nullable=False)
    priority = db.Column(db.String(16), nullable=False, default="medium")
    status = db.Column(db.String(16), nullable=False, default=OP_QUEUED)
    requires_workspace_access = db.Column(db.Boolean, nullable=False, default=False)
    context = db.Column(JSONType, nullable=False, default=dict)

    result = db.Column(JSONType, nullable=True)
    error = db.Column(db.String(500), nullable=True)
    confidence = db.Column(db.Float, nullable=True)
    actions_taken = db.Column(JSONType, nullable=False, default=list)

    scheduled_for = db.Column(db.DateTime, nullable=True)
    executed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_ai_operations_status_scheduled_for", status, scheduled_for),
        Index("ix_ai_operations_org_status", org_id, status),
    )

    @property
    def success(self) -> bool:
        return self.status == OP_SUCCEEDED

    def to_dict(self) -> dict:
        return {
            "operationId": self.operation_id,
            "type": self.type,
            "priority": self.priority,
            "status": self.status,
            "success": self.success,
            "result": self.result,
            "error": self.error,
            "confidence": self.confidence,
            "actionsTaken": list(self.actions_taken or []),
            "scheduledFor": isoformat(self.scheduled_for),
            "executedAt": isoformat(self.executed_at),
        }
