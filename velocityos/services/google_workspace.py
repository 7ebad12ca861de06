"""
Google Workspace OAuth 2.0: consent URL, code exchange, token storage
and refresh against Google's token endpoint.
"""
import logging
import time
from datetime import timedelta
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests
from flask import current_app

from velocityos.errors import ApiError
from velocityos.extensions import db
from velocityos.models.workspace import GoogleWorkspaceToken
from velocityos.services import tokens as signed_tokens
from velocityos.utils.helpers import utcnow

logger = logging.getLogger(__name__)

SCOPES = [
    # Gmail
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
    # Calendar
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    # Drive
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.metadata.readonly",
    # Contacts
    "https://www.googleapis.com/auth/contacts.readonly",
    "https://www.googleapis.com/auth/directory.readonly",
]

# Refresh this long before the real expiry
EXPIRY_BUFFER = timedelta(minutes=5)
STATE_KIND = "google-oauth"
STATE_MAX_AGE_SECONDS = 10 * 60
DEFAULT_EXPIRES_IN = 3600


class GoogleOAuthError(ApiError):
    pass


def _credentials() -> tuple[str, str]:
    cfg = current_app.config
    client_id, client_secret = cfg.get("GOOGLE_CLIENT_ID"), cfg.get("GOOGLE_CLIENT_SECRET")
    if not client_id or not client_secret:
        logger.error("google_oauth_misconfigured missing client credentials")
        raise GoogleOAuthError(500, "Server Configuration Error", "OAuth credentials not configured")
    return client_id, client_secret


def build_authorization_url(user_id: int) -> str:
    client_id, _ = _credentials()
    redirect_uri = current_app.config.get("GOOGLE_REDIRECT_URI")
    if not redirect_uri:
        raise GoogleOAuthError(500, "Server Configuration Error", "GOOGLE_REDIRECT_URI is not configured")
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        # Offline access + forced consent so Google always returns a refresh token
        "access_type": "offline",
        "prompt": "consent",
        "include_granted_scopes": "true",
        "state": signed_tokens.generate(STATE_KIND, str(user_id)),
    }
    return f"{current_app.config['GOOGLE_AUTH_URL']}?{urlencode(params)}"


def verify_state(state: str) -> Optional[int]:
    ident = signed_tokens.verify(STATE_KIND, state or "", max_age_seconds=STATE_MAX_AGE_SECONDS)
    try:
        return int(ident) if ident else None
    except ValueError:
        return None


def _post_token_endpoint(form: Dict[str, str]) -> Dict[str, Any]:
    start = time.perf_counter()
    try:
        resp = requests.post(
            current_app.config["GOOGLE_TOKEN_URL"],
            data=form,
            timeout=current_app.config.get("GOOGLE_HTTP_TIMEOUT", 15),
        )
    except requests.RequestException as e:
        logger.error("google_token_request_failed grant=%s error=%s", form.get("grant_type"), type(e).__name__)
        raise GoogleOAuthError(502, "Token Refresh Failed", "Google token endpoint unreachable") from e

    duration_ms = int((time.perf_counter() - start) * 1000)
    try:
        body = resp.json()
    except ValueError:
        body = {"error": "Unknown error"}
    if not isinstance(body, dict):
        body = {}

    if not resp.ok:
        logger.warning(
            "google_token_request_rejected grant=%s status=%s error=%s duration_ms=%s",
            form.get("grant_type"), resp.status_code, body.get("error"), duration_ms,
        )
        if resp.status_code == 400:
            raise GoogleOAuthError(400, "Invalid Refresh Token", "The refresh token is invalid or expired")
        if resp.status_code == 401:
            raise GoogleOAuthError(401, "Unauthorized", "Invalid OAuth credentials")
        raise GoogleOAuthError(
            resp.status_code,
            "Token Refresh Failed",
            body.get("error_description") or "Failed to refresh token",
        )

    if not body.get("access_token"):
        logger.error("google_token_response_missing_access_token grant=%s", form.get("grant_type"))
        raise GoogleOAuthError(500, "Invalid Response", "No access token in refresh response")

    logger.info("google_token_request_ok grant=%s duration_ms=%s", form.get("grant_type"), duration_ms)
    return body


def exchange_code(code: str) -> Dict[str, Any]:
    client_id, client_secret = _credentials()
    return _post_token_endpoint({
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": current_app.config.get("GOOGLE_REDIRECT_URI") or "",
        "grant_type": "authorization_code",
    })


def refresh_access_token(refresh_token: str) -> Dict[str, Any]:
    """Returns {"access_token", "expires_in", "token_type"} with defaults filled in."""
    client_id, client_secret = _credentials()
    body = _post_token_endpoint({
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    })
    return {
        "access_token": body["access_token"],
        "expires_in": int(body.get("expires_in") or DEFAULT_EXPIRES_IN),
        "token_type": body.get("token_type") or "Bearer",
    }


def get_tokens(user_id: int) -> Optional[GoogleWorkspaceToken]:
    return db.session.execute(
        db.select(GoogleWorkspaceToken).where(GoogleWorkspaceToken.user_id == user_id)
    ).scalar_one_or_none()


def is_first_time(user_id: int) -> bool:
    return get_tokens(user_id) is None


def store_tokens(*, user_id: int, org_id: int, token_data: Dict[str, Any], email: Optional[str] = None) -> GoogleWorkspaceToken:
    """Insert or update the user's tokens; keeps the stored refresh token when Google omits one."""
    tok = get_tokens(user_id)
    if tok is None:
        tok = GoogleWorkspaceToken(user_id=user_id, org_id=org_id)
        db.session.add(tok)
    tok.access_token = token_data["access_token"]
    if token_data.get("refresh_token"):
        tok.refresh_token = token_data["refresh_token"]
    tok.expires_at = utcnow() + timedelta(seconds=int(token_data.get("expires_in") or DEFAULT_EXPIRES_IN))
    scope = token_data.get("scope")
    tok.scopes = scope.split() if isinstance(scope, str) and scope else list(SCOPES)
    if email:
        tok.email = email
    db.session.commit()
    return tok


def tokens_expired(tok: GoogleWorkspaceToken) -> bool:
    return utcnow() >= tok.expires_at - EXPIRY_BUFFER


def apply_refresh(tok: GoogleWorkspaceToken, refreshed: Dict[str, Any]) -> GoogleWorkspaceToken:
    tok.access_token = refreshed["access_token"]
    tok.expires_at = utcnow() + timedelta(seconds=int(refreshed.get("expires_in") or DEFAULT_EXPIRES_IN))
    db.session.commit()
    return tok


def get_fresh_tokens(user_id: int) -> Optional[GoogleWorkspaceToken]:
    """Stored tokens, refreshed when inside the expiry buffer; None when unusable."""
    tok = get_tokens(user_id)
    if tok is None:
        return None
    if not tokens_expired(tok):
        return tok
    if not tok.refresh_token:
        logger.info("google_tokens_expired_without_refresh user_id=%s", user_id)
        return None
    try:
        return apply_refresh(tok, refresh_access_token(tok.refresh_token))
    except GoogleOAuthError as e:
        logger.warning("google_token_refresh_failed user_id=%s status=%s", user_id, e.status)
        return None
