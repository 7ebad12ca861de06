from flask import current_app

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import db
from velocityos.models.org_membership import ROLE_ADMIN, ROLE_OWNER
from velocityos.services.policy import current_membership, current_org, require_member, role_required
from velocityos.utils.validators import clean_str
from . import bp


def _settings_payload(org, role: str) -> dict:
    return {
        "org": {
            "id": str(org.id),
            "name": org.name,
            "planId": org.plan_id,
            "status": org.status,
            "aiAutonomousMode": bool(org.ai_autonomous_mode),
            "credits": org.credits,
        },
        "role": role,
    }


@bp.get("/settings")
@require_member
def settings_get():
    return ok(_settings_payload(current_org(), current_membership().role))


@bp.put("/settings")
@role_required(ROLE_ADMIN, ROLE_OWNER)
def settings_put():
    data = json_body()
    org = current_org()
    errors = {}

    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            errors["name"] = "Name cannot be empty"
        else:
            org.name = name
    if "aiAutonomousMode" in data:
        if not isinstance(data.get("aiAutonomousMode"), bool):
            errors["aiAutonomousMode"] = "Must be true or false"
        else:
            org.ai_autonomous_mode = data["aiAutonomousMode"]

    if errors:
        db.session.rollback()
        raise ApiError(400, "Invalid settings", errors=errors)

    db.session.commit()
    current_app.logger.info("org_settings_updated org_id=%s fields=%s", org.id, sorted(k for k in data if k in ("name", "aiAutonomousMode")))
    return ok(_settings_payload(org, current_membership().role), "Settings saved")
