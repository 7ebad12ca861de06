from urllib.parse import urlencode

from flask import current_app, jsonify, redirect, request
from flask_login import current_user

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import db, limiter
from velocityos.models.user import User
from velocityos.models.workspace import IMPORT_COMPLETED, IMPORT_PENDING
from velocityos.services import google_workspace as gw
from velocityos.services import workspace_import
from velocityos.services.policy import current_org_id, require_member
from velocityos.utils.helpers import isoformat
from . import bp


def _settings_redirect(**params):
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/")
    return redirect(f"{base}/settings?{urlencode(params)}", code=302)


@bp.get("/google-workspace/authorize")
@require_member
def workspace_authorize():
    return ok({"url": gw.build_authorization_url(current_user.id)})


@bp.get("/google-workspace/callback")
@limiter.limit("30 per minute")
def workspace_callback():
    """Google redirects the browser here; the signed state identifies the user."""
    if request.args.get("error"):
        return _settings_redirect(workspace="error", reason=request.args.get("error"))
    code = request.args.get("code")
    user_id = gw.verify_state(request.args.get("state") or "")
    if not code or user_id is None:
        return _settings_redirect(workspace="error", reason="invalid_state")

    user = db.session.get(User, user_id)
    if user is None or not user.org_id:
        return _settings_redirect(workspace="error", reason="invalid_state")

    first_time = gw.is_first_time(user.id)
    try:
        token_data = gw.exchange_code(code)
    except gw.GoogleOAuthError as e:
        current_app.logger.warning("google_oauth_callback_failed user_id=%s status=%s", user.id, e.status)
        return _settings_redirect(workspace="error", reason="token_exchange_failed")

    gw.store_tokens(user_id=user.id, org_id=user.org_id, token_data=token_data, email=user.email)
    if first_time:
        workspace_import.queue_import(user_id=user.id, org_id=user.org_id)
    current_app.logger.info("google_workspace_connected user_id=%s first_time=%s", user.id, first_time)
    return _settings_redirect(workspace="connected")


@bp.post("/google-workspace/refresh-token")
@require_member
@limiter.limit("30 per minute")
def workspace_refresh_token():
    supplied = json_body().get("refreshToken")
    stored = gw.get_tokens(current_user.id)
    refresh_token = supplied or (stored.refresh_token if stored else None)
    if not refresh_token or not isinstance(refresh_token, str):
        raise ApiError(400, "Bad Request", "Refresh token is required")

    refreshed = gw.refresh_access_token(refresh_token)
    # Only the caller's own stored token is updated
    if stored is not None and stored.refresh_token == refresh_token:
        gw.apply_refresh(stored, refreshed)

    # Bare body, no envelope
    return jsonify({
        "accessToken": refreshed["access_token"],
        "expiresIn": refreshed["expires_in"],
        "tokenType": refreshed["token_type"],
    }), 200


@bp.get("/google-workspace/status")
@require_member
def workspace_status():
    tok = gw.get_tokens(current_user.id)
    latest = workspace_import.latest_import(current_user.id)
    data = {
        "connected": tok is not None,
        "firstTime": tok is None,
        "lastImport": latest.to_dict() if latest else None,
    }
    if tok is not None:
        data.update(tok.to_dict())
        data["expired"] = gw.tokens_expired(tok)
        data["updatedAt"] = isoformat(tok.updated_at)
    return ok(data)


@bp.post("/google-workspace/import")
@require_member
@limiter.limit("5 per minute")
def workspace_import_now():
    if gw.get_tokens(current_user.id) is None:
        raise ApiError(400, "Google Workspace is not connected")
    imp = workspace_import.queue_import(user_id=current_user.id, org_id=current_org_id())
    if imp.status != IMPORT_PENDING:
        raise ApiError(409, "Conflict", "An import is already running")
    imp = workspace_import.run_import(imp)
    return ok(imp.to_dict(), "Import completed" if imp.status == IMPORT_COMPLETED else "Import failed")
