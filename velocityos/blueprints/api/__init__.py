from flask import Blueprint

from velocityos.blueprints.common import register_api_hooks

bp = Blueprint("api", __name__, url_prefix="/api")
register_api_hooks(bp)

# Import submodules so their routes register on the same bp
from . import health  # noqa: E402,F401
from . import auth  # noqa: E402,F401
from . import customers  # noqa: E402,F401
from . import campaigns  # noqa: E402,F401
from . import feedback  # noqa: E402,F401
from . import analytics  # noqa: E402,F401
from . import payments  # noqa: E402,F401
from . import calls  # noqa: E402,F401
from . import agent  # noqa: E402,F401
from . import gateway  # noqa: E402,F401
from . import settings  # noqa: E402,F401
from . import workspace  # noqa: E402,F401
