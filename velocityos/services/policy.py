from functools import wraps

from flask import session
from flask_login import current_user

from velocityos.errors import ApiError
from velocityos.extensions import db
from velocityos.models.org import Org
from velocityos.models.org_membership import OrgMembership


def current_org_id():
    oid = session.get("current_org_id")
    if not oid and getattr(current_user, "is_authenticated", False):
        oid = getattr(current_user, "org_id", None)
    return oid


def current_membership() -> OrgMembership | None:
    if not getattr(current_user, "is_authenticated", False):
        return None
    org_id = current_org_id()
    if not org_id:
        return None
    return db.session.query(OrgMembership).filter_by(org_id=org_id, user_id=current_user.id).one_or_none()


def current_org() -> Org | None:
    m = current_membership()
    return db.session.get(Org, m.org_id) if m else None


def _check(roles=()):
    if not current_user.is_authenticated:
        _abort(401)
    if not current_org_id():
        raise ApiError(401, "Unauthorized", "Organization required", code="NO_ORGANIZATION")
    m = current_membership()
    if not m:
        _abort(404)  # anti-enumeration
    if roles and m.role not in roles:
        _abort(403)
    return m


def require_member(fn):
    @wraps(fn)
    def _wrap(*args, **kwargs):
        _check()
        return fn(*args, **kwargs)
    return _wrap


def role_required(*roles):
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            _check(roles)
            return fn(*args, **kwargs)
        return _wrap
    return deco


def _abort(code: int):
    if code == 401:
        from velocityos.security.auth import unauthorized_error
        raise unauthorized_error()
    if code == 403:
        raise ApiError(403, "Forbidden", "Insufficient role for this action")
    raise ApiError(404, "Not Found", "Resource not found")
