from flask import current_app
from flask_login import current_user

from velocityos.errors import ok
from velocityos.extensions import db
from velocityos.models.agent import AgentState
from velocityos.models.org_membership import ROLE_ADMIN, ROLE_OWNER
from velocityos.services.ai_operations import requeue_running
from velocityos.services.policy import current_org_id, require_member, role_required
from velocityos.utils.helpers import utcnow
from . import bp


def _agent_state(org_id: int, lock: bool = False) -> AgentState:
    stmt = db.select(AgentState).where(AgentState.org_id == org_id)
    if lock:
        stmt = stmt.with_for_update()
    state = db.session.execute(stmt).scalar_one_or_none()
    if state is None:
        state = AgentState(org_id=org_id, status="idle", restart_count=0)
        db.session.add(state)
    return state


@bp.post("/agent/restart")
@role_required(ROLE_ADMIN, ROLE_OWNER)
def agent_restart():
    org_id = current_org_id()
    state = _agent_state(org_id, lock=True)
    state.status = "running"
    state.restart_count = (state.restart_count or 0) + 1
    state.last_restarted_at = utcnow()
    state.last_restarted_by = current_user.id
    requeued = requeue_running(org_id)
    db.session.commit()

    current_app.logger.info("agent_restarted org_id=%s requeued=%s", org_id, requeued)
    return ok({"agent": state.to_dict(), "requeued": requeued}, "Agent restarted")


@bp.get("/agent/status")
@require_member
def agent_status():
    state = _agent_state(current_org_id())
    return ok(state.to_dict())
