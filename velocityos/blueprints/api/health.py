from flask import current_app, jsonify

from velocityos.extensions import limiter
from velocityos.utils.helpers import isoformat, utcnow
from . import bp


@bp.get("/health")
@limiter.exempt
def health():
    return jsonify({
        "success": True,
        "message": "VelocityOS API is running",
        "timestamp": isoformat(utcnow()),
    })


@bp.get("")
def index():
    return jsonify({"message": "VelocityOS API", "version": current_app.config.get("API_VERSION", "1.0.0")})
