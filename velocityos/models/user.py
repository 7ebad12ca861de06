from flask_login import UserMixin
from sqlalchemy import func
from velocityos.extensions import db
from velocityos.utils.helpers import utcnow

class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    # Firebase Auth uid; identity lives in Firebase, we keep the tenant link
    firebase_uid = db.Column(db.String(128), nullable=True, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False)  # case-insensitive lookups via func.lower
    display_name = db.Column(db.String(255), nullable=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="RESTRICT"), index=True, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    email_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    def get_id(self) -> str:
        return str(self.id)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} org_id={self.org_id}>"
