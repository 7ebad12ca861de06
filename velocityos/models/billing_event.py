from velocityos.extensions import db
from velocityos.models.types import JSONType
from velocityos.utils.helpers import utcnow

class BillingEventLog(db.Model):
    __tablename__ = "billing_event_logs"

    id = db.Column(db.Integer, primary_key=True)
    # Stripe event id, or "invalid:<digest>" for rejected deliveries
    stripe_event_id = db.Column(db.String(255), nullable=False, unique=True, index=True)
    type = db.Column(db.String(80), nullable=False, index=True)
    signature_valid = db.Column(db.Boolean, nullable=False, default=True)
    payload = db.Column(JSONType, nullable=False, default=dict)
    retries = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)

    processed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<BillingEventLog id={self.id} event={self.stripe_event_id!r} type={self.type!r}>"
