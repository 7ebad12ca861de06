from velocityos.errors import ok
from velocityos.services import analytics as analytics_service
from velocityos.services.policy import current_org_id, require_member
from . import bp


@bp.get("/analytics/dashboard")
@require_member
def analytics_dashboard():
    return ok(analytics_service.dashboard(current_org_id()))
