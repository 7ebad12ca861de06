from flask import current_app, request, session

from velocityos.extensions import csrf

_SAFE_METHODS = ("GET", "HEAD", "OPTIONS")
# Carry their own proof (a fresh Firebase ID token in the body)
_CSRF_EXEMPT_ENDPOINTS = {"api.auth_session_create"}


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def csrf_guard():
    """
    Cookie-authenticated writes need the CSRF header; Bearer-token calls
    are not replayable by a browser and skip the check.
    """
    if request.method in _SAFE_METHODS or not current_app.config.get("WTF_CSRF_ENABLED", True):
        return None
    if (request.headers.get("Authorization") or "").startswith("Bearer "):
        return None
    if request.endpoint in _CSRF_EXEMPT_ENDPOINTS:
        return None
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "authToken")
    if request.cookies.get(cookie_name) or session.get("_user_id"):
        csrf.protect()
    return None


def preflight():
    if request.method == "OPTIONS":
        return "", 204
    return None


def _allowed_origin() -> str | None:
    configured = (current_app.config.get("CORS_ORIGINS") or "").strip()
    if configured == "*":
        return "*"
    origin = request.headers.get("Origin")
    allowed = {o.strip().rstrip("/") for o in configured.split(",") if o.strip()}
    if origin and origin.rstrip("/") in allowed:
        return origin
    return None


def cors_headers(resp):
    origin = _allowed_origin()
    if origin:
        resp.headers["Access-Control-Allow-Origin"] = origin
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization, X-CSRFToken, Idempotency-Key"
        if origin != "*":
            resp.headers["Access-Control-Allow-Credentials"] = "true"
            resp.headers.add("Vary", "Origin")
    return resp


def register_api_hooks(bp):
    bp.before_request(preflight)
    bp.before_request(csrf_guard)
    bp.after_request(cors_headers)
