from velocityos.extensions import db
from velocityos.models.types import JSONType
from velocityos.utils.helpers import utcnow, isoformat

IMPORT_PENDING = "pending"
IMPORT_RUNNING = "running"
IMPORT_COMPLETED = "completed"
IMPORT_FAILED = "failed"


class GoogleWorkspaceToken(db.Model):
    __tablename__ = "google_workspace_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    access_token = db.Column(db.Text, nullable=False)
    refresh_token = db.Column(db.Text, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    scopes = db.Column(JSONType, nullable=False, default=list)
    email = db.Column(db.String(320), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        # Never expose the raw tokens
        return {
            "email": self.email,
            "scopes": list(self.scopes or []),
            "expiresAt": isoformat(self.expires_at),
            "hasRefreshToken": bool(self.refresh_token),
        }


class WorkspaceImport(db.Model):
    __tablename__ = "workspace_imports"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=IMPORT_PENDING, index=True)
    counts = db.Column(JSONType, nullable=False, default=dict)   # {"emails": n, "events": n, ...}
    errors = db.Column(JSONType, nullable=False, default=list)

    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "status": self.status,
            "counts": dict(self.counts or {}),
            "errors": list(self.errors or []),
            "startedAt": isoformat(self.started_at),
            "completedAt": isoformat(self.completed_at),
        }
