from velocityos.extensions import db
from velocityos.utils.helpers import utcnow, isoformat

SUCCEEDED = "succeeded"

class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="RESTRICT"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    stripe_payment_intent_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    amount = db.Column(db.Integer, nullable=False)            # minor units (cents)
    currency = db.Column(db.String(3), nullable=False, default="usd")
    status = db.Column(db.String(32), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    failure_message = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "paymentIntentId": self.stripe_payment_intent_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "customerId": str(self.customer_id) if self.customer_id else None,
            "description": self.description,
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Payment id={self.id} pi={self.stripe_payment_intent_id!r} status={self.status!r}>"
