from typing import Any, Dict, Optional

from flask import jsonify, request, current_app
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """
    An error that renders as the API's JSON failure envelope:
    {"success": false, "error": ..., "message": ..., ["code"], ["errors"], ["details"]}
    """

    def __init__(
        self,
        status: int,
        error: str,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        errors: Optional[Dict[str, str]] = None,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message or error)
        self.status = status
        self.error = error
        self.message = message
        self.code = code
        self.errors = errors
        self.details = details
        self.headers = headers or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.error}
        if self.message:
            body["message"] = self.message
        if self.code:
            body["code"] = self.code
        if self.errors:
            body["errors"] = self.errors
        if self.details is not None:
            body["details"] = self.details
        return body

    def to_response(self):
        return jsonify(self.to_dict()), self.status, self.headers


def ok(data: Any = None, message: Optional[str] = None, status: int = 200):
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return jsonify(body), status


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(e: ApiError):
        return e.to_response()

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        return ApiError(400, "csrf_failed", f"CSRF validation failed: {e.description}").to_response()

    # 429 Too Many Requests with Retry-After when the limiter knows it
    @app.errorhandler(429)
    def too_many_requests(e):
        retry_after = getattr(e, "retry_after", None)
        headers = {}
        details = None
        if retry_after is not None:
            headers["Retry-After"] = str(int(retry_after))
            details = {"retry_after": int(retry_after)}
        return ApiError(429, "rate_limited", "Too many requests", details=details, headers=headers).to_response()

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return ApiError(e.code or 500, e.name, e.description).to_response()

    @app.errorhandler(500)
    def server_error(e):
        original = getattr(e, "original_exception", None)
        current_app.logger.error(
            "unhandled_error path=%s error=%s", request.path, type(original or e).__name__
        )
        message = "An unexpected error occurred"
        if current_app.debug and original is not None:
            message = str(original)
        return ApiError(500, "Internal Server Error", message).to_response()
