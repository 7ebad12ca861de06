from conftest import login

from velocityos.extensions import db
from velocityos.models import Org


def test_member_of_other_org_gets_404(client, make_member):
    mine = make_member(email="me@example.com")
    theirs = make_member(email="them@example.com", name="Theirs")
    # Session points at an org the user does not belong to
    login(client, mine["user_id"], theirs["org_id"])
    r = client.get("/api/customer/list")
    assert r.status_code == 404


def test_user_without_org_gets_401_no_organization(app, client):
    from velocityos.models import User
    with app.app_context():
        u = User(email="loner@example.com")
        db.session.add(u)
        db.session.commit()
        uid = u.id
    with client.session_transaction() as sess:
        sess["_user_id"] = str(uid)
    r = client.get("/api/customer/list")
    assert r.status_code == 401
    assert r.get_json()["code"] == "NO_ORGANIZATION"


def test_settings_read_for_member_write_for_admin(app, client, make_member):
    owner = make_member()
    member = make_member(email="m@example.com", role="member", org_id=owner["org_id"])

    login(client, member["user_id"], member["org_id"])
    r = client.get("/api/settings")
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["role"] == "member"
    assert data["org"]["aiAutonomousMode"] is False

    r = client.put("/api/settings", json={"aiAutonomousMode": True})
    assert r.status_code == 403

    admin = app.test_client()
    login(admin, owner["user_id"], owner["org_id"])
    r = admin.put("/api/settings", json={"aiAutonomousMode": True, "name": "Renamed"})
    assert r.status_code == 200
    assert r.get_json()["data"]["org"]["aiAutonomousMode"] is True

    with app.app_context():
        org = db.session.get(Org, owner["org_id"])
        assert org.ai_autonomous_mode is True
        assert org.name == "Renamed"


def test_settings_validation_changes_nothing(app, member_client):
    r = member_client.put("/api/settings", json={"aiAutonomousMode": "yes", "name": "Valid Name"})
    assert r.status_code == 400
    body = r.get_json()
    assert body["error"] == "Invalid settings"
    assert "aiAutonomousMode" in body["errors"]
    with app.app_context():
        assert db.session.get(Org, member_client.ids["org_id"]).name == "Acme Co"


def test_unknown_api_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.get_json()["success"] is False
