from velocityos.extensions import db
from velocityos.utils.helpers import utcnow, isoformat

class CallRequest(db.Model):
    __tablename__ = "call_requests"

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)

    to_number = db.Column(db.String(20), nullable=False)   # E.164
    script = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="queued", index=True)  # queued|dialing|completed|failed

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "to": self.to_number,
            "customerId": str(self.customer_id) if self.customer_id else None,
            "script": self.script,
            "status": self.status,
            "createdAt": isoformat(self.created_at),
        }
