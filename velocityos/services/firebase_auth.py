"""
Firebase ID token verification (Admin SDK).

The Admin app is initialised lazily on first use with Application Default
Credentials, so importing this module never touches the network.
"""
import logging
import time
from typing import Any, Dict

import firebase_admin
from firebase_admin import auth
from flask import current_app

log = logging.getLogger(__name__)


class AuthError(Exception):
    """Token rejected; `code` is the machine-readable reason returned to clients."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


# Header-level failures (no Admin SDK call involved)
NO_AUTH_HEADER = ("NO_AUTH_HEADER", "No Authorization header provided")
INVALID_AUTH_SCHEME = ("INVALID_AUTH_SCHEME", "Authorization header must use Bearer scheme")
NO_TOKEN = ("NO_TOKEN", "No token provided in Authorization header")


def _ensure_app():
    try:
        return firebase_admin.get_app()
    except ValueError:
        options = {}
        project_id = current_app.config.get("FIREBASE_PROJECT_ID")
        if project_id:
            options["projectId"] = project_id
        return firebase_admin.initialize_app(options=options or None)


def bearer_token(header_value: str | None) -> str:
    """Extract the token from an Authorization header or raise AuthError."""
    if not header_value:
        raise AuthError(*NO_AUTH_HEADER)
    if not header_value.startswith("Bearer "):
        raise AuthError(*INVALID_AUTH_SCHEME)
    token = header_value[len("Bearer "):].strip()
    if not token:
        raise AuthError(*NO_TOKEN)
    return token


def decode_token(token: str) -> Dict[str, Any]:
    """Verify a Firebase ID token and return its claims."""
    app = _ensure_app()
    check_revoked = bool(current_app.config.get("FIREBASE_CHECK_REVOKED"))
    try:
        claims = auth.verify_id_token(token, app=app, check_revoked=check_revoked)
    except auth.ExpiredIdTokenError as e:
        log.info("firebase_token_rejected code=TOKEN_EXPIRED")
        raise AuthError("TOKEN_EXPIRED", "Token has expired. Please sign in again") from e
    except auth.RevokedIdTokenError as e:
        log.info("firebase_token_rejected code=TOKEN_REVOKED")
        raise AuthError("TOKEN_REVOKED", "Token has been revoked. Please sign in again") from e
    except auth.InvalidIdTokenError as e:
        log.info("firebase_token_rejected code=INVALID_TOKEN_FORMAT")
        raise AuthError("INVALID_TOKEN_FORMAT", "Invalid token format. Please sign in again") from e
    except ValueError as e:
        log.info("firebase_token_rejected code=MALFORMED_TOKEN")
        raise AuthError("MALFORMED_TOKEN", "Malformed token. Please sign in again") from e
    except Exception as e:
        log.warning("firebase_token_rejected code=INVALID_TOKEN error=%s", type(e).__name__)
        raise AuthError("INVALID_TOKEN", "Invalid or expired token") from e

    # The SDK checks exp already; keep our own clock honest too
    exp = claims.get("exp")
    if exp is not None and int(exp) < int(time.time()):
        raise AuthError("TOKEN_EXPIRED", "Token has expired")
    if not claims.get("uid"):
        raise AuthError("INVALID_TOKEN", "Invalid or expired token")
    return claims
