from __future__ import annotations

from sqlalchemy import Index
from sqlalchemy.sql import func

from velocityos.extensions import db
from velocityos.utils.helpers import utcnow, isoformat


class Customer(db.Model):
    __tablename__ = "customers"
    __allow_unmapped__ = True

    id = db.Column(db.Integer, primary_key=True)

    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), index=True, nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(320), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    company = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    # One customer per email within a tenant (case-insensitive)
    __table_args__ = (
        Index("ux_customers_org_lower_email", org_id, func.lower(email), unique=True),
        Index("ix_customers_org_lower_name", org_id, func.lower(name)),
        Index("ix_customers_created_at", created_at),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "phone": self.phone or "",
            "company": self.company,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Customer id={self.id} org_id={self.org_id} email={self.email!r}>"
