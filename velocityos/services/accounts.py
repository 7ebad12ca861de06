import logging
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from velocityos.extensions import db
from velocityos.models.user import User
from velocityos.models.org import Org
from velocityos.models.org_membership import OrgMembership, ROLE_OWNER, ROLE_MEMBER
from velocityos.utils.helpers import utcnow

log = logging.getLogger(__name__)


def ensure_membership(user: User) -> OrgMembership | None:
    """Owner if the org has no owner yet, otherwise member."""
    if user.org_id is None:
        return None
    membership = db.session.query(OrgMembership).filter_by(org_id=user.org_id, user_id=user.id).one_or_none()
    if membership is None:
        owner_exists = db.session.query(OrgMembership).filter_by(org_id=user.org_id, role=ROLE_OWNER).count() > 0
        membership = OrgMembership(org_id=user.org_id, user_id=user.id, role=ROLE_MEMBER if owner_exists else ROLE_OWNER)
        db.session.add(membership)
    return membership


def _user_by_uid(uid: str) -> User | None:
    return db.session.execute(db.select(User).where(User.firebase_uid == uid)).scalar_one_or_none()


def get_or_provision_user(claims: Dict[str, Any]) -> User:
    """
    Map verified Firebase claims to a local User.

    Lookup order: firebase uid, then an unlinked account with the same email.
    First sight of a uid creates User + Org + owner membership.
    """
    uid = claims["uid"]
    email = (claims.get("email") or "").strip().lower()

    user = _user_by_uid(uid)
    if user is None and email:
        user = db.session.execute(
            db.select(User).where(func.lower(User.email) == email, User.firebase_uid.is_(None))
        ).scalar_one_or_none()
        if user is not None:
            user.firebase_uid = uid

    created = False
    if user is None:
        user = User(
            firebase_uid=uid,
            email=email or f"{uid}@users.firebase",
            display_name=claims.get("name"),
        )
        db.session.add(user)
        try:
            db.session.flush()
            created = True
        except IntegrityError:
            # A parallel first request inserted this uid first
            db.session.rollback()
            user = _user_by_uid(uid)
            if user is None:
                raise

    if not user.org_id:
        org = Org(name=(claims.get("name") or email or f"Org {user.id}"), owner_user_id=user.id)
        db.session.add(org)
        db.session.flush()
        user.org_id = org.id

    ensure_membership(user)

    if claims.get("email_verified") and not user.email_verified_at:
        user.email_verified_at = utcnow()
    user.last_seen_at = utcnow()
    db.session.commit()

    if created:
        log.info("user_provisioned user_id=%s org_id=%s", user.id, user.org_id)
    return user
