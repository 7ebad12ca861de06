from flask import current_app, jsonify, session
from flask_login import current_user
from flask_wtf.csrf import generate_csrf

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import limiter
from velocityos.services.accounts import get_or_provision_user
from velocityos.services.firebase_auth import AuthError, decode_token
from velocityos.services.policy import current_membership, current_org, require_member
from velocityos.utils.helpers import isoformat
from . import bp


@bp.post("/auth/session")
@limiter.limit("20 per minute")
def auth_session_create():
    """Verify a Firebase ID token and store it in the httpOnly auth cookie."""
    token = json_body().get("token")
    if not token or not isinstance(token, str):
        raise ApiError(400, "Token is required")
    try:
        claims = decode_token(token)
    except AuthError as e:
        raise ApiError(401, "Unauthorized", e.message, code=e.code) from e

    user = get_or_provision_user(claims)
    session["current_org_id"] = user.org_id

    cfg = current_app.config
    resp = jsonify({"success": True})
    resp.set_cookie(
        cfg.get("AUTH_COOKIE_NAME", "authToken"),
        token,
        max_age=cfg.get("AUTH_COOKIE_MAX_AGE"),
        httponly=True,
        secure=bool(cfg.get("AUTH_COOKIE_SECURE")),
        samesite="Lax",
        path="/",
    )
    return resp


@bp.delete("/auth/session")
def auth_session_delete():
    session.pop("current_org_id", None)
    resp = jsonify({"success": True})
    resp.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "authToken"), path="/")
    return resp


@bp.get("/auth/me")
@require_member
def auth_me():
    org = current_org()
    membership = current_membership()
    return ok({
        "user": {
            "id": str(current_user.id),
            "email": current_user.email,
            "displayName": current_user.display_name,
            "emailVerified": current_user.email_verified_at is not None,
            "createdAt": isoformat(current_user.created_at),
        },
        "org": {
            "id": str(org.id),
            "name": org.name,
            "planId": org.plan_id,
            "status": org.status,
            "credits": org.credits,
        },
        "role": membership.role,
    })


@bp.get("/auth/csrf-token")
def auth_csrf_token():
    token = generate_csrf()
    resp = jsonify({"csrfToken": token})
    # keep tokens fresh; avoid caches holding stale tokens
    resp.headers["Cache-Control"] = "no-store"
    return resp
