from conftest import login

from velocityos.extensions import db
from velocityos.models import AgentState, AIOperation, CallRequest


def test_outbound_call_validation(member_client):
    r = member_client.post("/api/outboundcall", json={})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Phone number is required"

    r = member_client.post("/api/outboundcall", json={"to": "555-12"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid phone number"


def test_outbound_call_is_queued(app, member_client):
    r = member_client.post("/api/outboundcall", json={"to": "+44 20 7946 0958", "script": "Follow up on quote"})
    assert r.status_code == 201
    body = r.get_json()
    assert body["message"] == "Call queued"
    assert body["data"]["to"] == "+442079460958"
    assert body["data"]["status"] == "queued"
    with app.app_context():
        call = CallRequest.query.one()
        assert call.org_id == member_client.ids["org_id"]
        assert call.script == "Follow up on quote"


def test_agent_restart_requires_admin(client, make_member):
    owner = make_member()
    member = make_member(email="m@example.com", role="member", org_id=owner["org_id"])
    login(client, member["user_id"], member["org_id"])
    r = client.post("/api/agent/restart")
    assert r.status_code == 403


def test_agent_restart_counts_and_requeues_running_ops(app, member_client):
    org_id = member_client.ids["org_id"]
    with app.app_context():
        db.session.add_all([
            AIOperation(operation_id="ai_op_r", org_id=org_id, type="email_analysis", status="running"),
            AIOperation(operation_id="ai_op_s", org_id=org_id, type="email_analysis", status="succeeded"),
        ])
        db.session.commit()

    r = member_client.post("/api/agent/restart")
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["agent"]["status"] == "running"
    assert data["agent"]["restartCount"] == 1
    assert data["requeued"] == 1

    r = member_client.post("/api/agent/restart")
    assert r.get_json()["data"]["agent"]["restartCount"] == 2

    with app.app_context():
        state = AgentState.query.filter_by(org_id=org_id).one()
        assert state.last_restarted_by == member_client.ids["user_id"]
        assert AIOperation.query.filter_by(operation_id="ai_op_r").one().status == "queued"

    r = member_client.get("/api/agent/status")
    assert r.get_json()["data"]["restartCount"] == 2
