from flask import Blueprint

from velocityos.blueprints.common import register_api_hooks

bp = Blueprint("billing", __name__, url_prefix="/api/stripe")
register_api_hooks(bp)

from . import routes  # noqa: E402,F401
