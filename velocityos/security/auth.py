"""
Flask-Login wiring for Firebase ID tokens.

Clients authenticate with `Authorization: Bearer <id token>`; browser
sessions may instead carry the token in the httpOnly auth cookie set by
POST /api/auth/session. Nothing is stored server-side per request.
"""
import logging

from flask import current_app, g

from velocityos.errors import ApiError
from velocityos.extensions import db, login_manager
from velocityos.models.user import User
from velocityos.services.accounts import get_or_provision_user
from velocityos.services.firebase_auth import AuthError, NO_AUTH_HEADER, bearer_token, decode_token

log = logging.getLogger(__name__)


def auth_failure() -> tuple[str, str]:
    """(code, message) explaining why the current request is anonymous."""
    return getattr(g, "auth_failure", None) or NO_AUTH_HEADER


def unauthorized_error() -> ApiError:
    code, message = auth_failure()
    return ApiError(401, "Unauthorized", message, code=code)


@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.request_loader
def load_user_from_request(req):
    header = req.headers.get("Authorization")
    if header:
        source = "header"
        try:
            token = bearer_token(header)
        except AuthError as e:
            g.auth_failure = (e.code, e.message)
            return None
    else:
        source = "cookie"
        token = req.cookies.get(current_app.config.get("AUTH_COOKIE_NAME", "authToken"))
        if not token:
            g.auth_failure = NO_AUTH_HEADER
            return None

    try:
        claims = decode_token(token)
    except AuthError as e:
        g.auth_failure = (e.code, e.message)
        log.info("auth_rejected source=%s code=%s path=%s", source, e.code, req.path)
        return None

    user = get_or_provision_user(claims)
    if not user.is_active:
        g.auth_failure = ("USER_DISABLED", "User account is disabled")
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    raise unauthorized_error()
