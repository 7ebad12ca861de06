from velocityos.extensions import db
from velocityos.utils.helpers import utcnow, isoformat

class Feedback(db.Model):
    __tablename__ = "feedback"
    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    # Submitter and subject are optional; we store ids only
    user_id = db.Column(db.Integer, nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    rating = db.Column(db.SmallInteger, nullable=False)
    comment = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.Index("ix_feedback_org_created_at", "org_id", "created_at"),
        db.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_feedback_rating_range"),
    )

    def to_dict(self) -> dict:
        data = {
            "rating": self.rating,
            "comment": self.comment,
            "timestamp": isoformat(self.created_at),
        }
        if self.customer_id:
            data["customerId"] = str(self.customer_id)
        return data
