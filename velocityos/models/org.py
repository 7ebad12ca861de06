from sqlalchemy import func
from velocityos.extensions import db
from velocityos.utils.helpers import utcnow

# Subscription lifecycle as mirrored from Stripe
ACTIVE_STATUSES = ("active", "trialing")

class Org(db.Model):
    __tablename__ = "orgs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=db.true())

    # Store ids only; the owner is also an OrgMembership with role=owner
    owner_user_id = db.Column(db.Integer, nullable=True, index=True)

    # Billing mirror (Stripe is the source of truth)
    stripe_customer_id = db.Column(db.String(64), nullable=True, unique=True, index=True)
    stripe_subscription_id = db.Column(db.String(64), nullable=True, unique=True, index=True)
    plan_id = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(32), nullable=True, index=True)  # active|trialing|past_due|canceled
    source = db.Column(db.String(32), nullable=True)               # e.g. stripe_checkout

    # Usage credits
    credits_ai_tokens = db.Column(db.BigInteger, nullable=False, default=0, server_default="0")
    credits_emails = db.Column(db.BigInteger, nullable=False, default=0, server_default="0")
    credits_storage_mb = db.Column(db.BigInteger, nullable=False, default=0, server_default="0")

    ai_autonomous_mode = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    @property
    def has_active_plan(self) -> bool:
        return (self.status or "") in ACTIVE_STATUSES

    @property
    def credits(self) -> dict:
        return {
            "aiTokens": int(self.credits_ai_tokens or 0),
            "emails": int(self.credits_emails or 0),
            "storageMb": int(self.credits_storage_mb or 0),
        }

    def __repr__(self) -> str:
        return f"<Org id={self.id} name={self.name!r} plan={self.plan_id!r} status={self.status!r}>"
