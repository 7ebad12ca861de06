import time

import pytest

from velocityos.extensions import db
from velocityos.models import Org, User, OrgMembership, ROLE_OWNER
from velocityos.services import firebase_auth


@pytest.fixture()
def fake_firebase(monkeypatch):
    """verify_id_token stand-in: 'good-<uid>' verifies, named tokens raise the SDK error, anything else is malformed."""
    def _verify(token, app=None, check_revoked=False):
        if token.startswith("good-"):
            uid = token[len("good-"):]
            return {"uid": uid, "email": f"{uid}@example.com", "email_verified": True, "exp": int(time.time()) + 3600}
        if token.startswith("stale-"):
            uid = token[len("stale-"):]
            return {"uid": uid, "email": f"{uid}@example.com", "exp": int(time.time()) - 60}
        if token == "expired":
            raise firebase_auth.auth.ExpiredIdTokenError("Token expired", None)
        if token == "revoked":
            raise firebase_auth.auth.RevokedIdTokenError("Token revoked")
        if token == "wrong-audience":
            raise firebase_auth.auth.InvalidIdTokenError("Incorrect audience")
        if token == "boom":
            raise RuntimeError("network down")
        raise ValueError("not a JWT")
    monkeypatch.setattr(firebase_auth, "_ensure_app", lambda: None)
    monkeypatch.setattr(firebase_auth.auth, "verify_id_token", _verify)


def test_health_is_public(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["message"] == "VelocityOS API is running"
    assert body["timestamp"].endswith("Z")

    r = client.get("/healthz")
    assert r.status_code == 200 and r.get_json() == {"status": "ok"}


def test_protected_route_without_credentials_is_401(client):
    r = client.get("/api/customer/list")
    assert r.status_code == 401
    body = r.get_json()
    assert body["success"] is False
    assert body["code"] == "NO_AUTH_HEADER"


def test_wrong_scheme_is_rejected(client, fake_firebase):
    r = client.get("/api/customer/list", headers={"Authorization": "Basic abc"})
    assert r.status_code == 401
    assert r.get_json()["code"] == "INVALID_AUTH_SCHEME"


def test_empty_bearer_is_rejected(client, fake_firebase):
    r = client.get("/api/customer/list", headers={"Authorization": "Bearer "})
    assert r.status_code == 401
    assert r.get_json()["code"] == "NO_TOKEN"


def test_malformed_and_unknown_failures_map_to_codes(client, fake_firebase):
    r = client.get("/api/customer/list", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.get_json()["code"] == "MALFORMED_TOKEN"

    r = client.get("/api/customer/list", headers={"Authorization": "Bearer boom"})
    assert r.status_code == 401
    assert r.get_json()["code"] == "INVALID_TOKEN"


@pytest.mark.parametrize("token, code", [
    ("expired", "TOKEN_EXPIRED"),
    ("revoked", "TOKEN_REVOKED"),
    ("wrong-audience", "INVALID_TOKEN_FORMAT"),
    ("stale-bob", "TOKEN_EXPIRED"),
])
def test_sdk_rejections_map_to_codes(app, client, fake_firebase, token, code):
    r = client.get("/api/customer/list", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    body = r.get_json()
    assert body["error"] == "Unauthorized"
    assert body["code"] == code
    # A past exp is rejected before anyone gets provisioned
    with app.app_context():
        assert User.query.count() == 0


def test_bearer_token_provisions_user_org_and_owner(app, client, fake_firebase):
    r = client.get("/api/customer/list", headers={"Authorization": "Bearer good-alice"})
    assert r.status_code == 200
    assert r.get_json()["data"] == []

    with app.app_context():
        user = User.query.filter_by(firebase_uid="alice").one()
        assert user.email == "alice@example.com"
        assert user.email_verified_at is not None
        org = db.session.get(Org, user.org_id)
        assert org is not None and org.owner_user_id == user.id
        m = OrgMembership.query.filter_by(org_id=org.id, user_id=user.id).one()
        assert m.role == ROLE_OWNER


def test_bearer_token_links_existing_unlinked_account(app, client, fake_firebase, make_member):
    ids = make_member(email="bob@example.com")
    with app.app_context():
        u = db.session.get(User, ids["user_id"])
        u.firebase_uid = None
        db.session.commit()

    r = client.get("/api/auth/me", headers={"Authorization": "Bearer good-bob"})
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["user"]["id"] == str(ids["user_id"])
    assert data["org"]["id"] == str(ids["org_id"])
    assert data["role"] == "owner"


def test_disabled_user_is_rejected(app, client, fake_firebase):
    client.get("/api/customer/list", headers={"Authorization": "Bearer good-carol"})
    with app.app_context():
        u = User.query.filter_by(firebase_uid="carol").one()
        u.is_active = False
        db.session.commit()

    r = client.get("/api/customer/list", headers={"Authorization": "Bearer good-carol"})
    assert r.status_code == 401
    assert r.get_json()["code"] == "USER_DISABLED"


def test_session_cookie_roundtrip(app, client, fake_firebase):
    r = client.post("/api/auth/session", json={})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Token is required"

    r = client.post("/api/auth/session", json={"token": "garbage"})
    assert r.status_code == 401
    assert r.get_json()["code"] == "MALFORMED_TOKEN"

    r = client.post("/api/auth/session", json={"token": "good-dave"})
    assert r.status_code == 200
    cookie = next(c for c in r.headers.getlist("Set-Cookie") if c.startswith("authToken="))
    assert cookie.startswith("authToken=good-dave")
    assert "HttpOnly" in cookie

    # The cookie now authenticates reads
    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.get_json()["data"]["user"]["email"] == "dave@example.com"

    r = client.delete("/api/auth/session")
    assert r.status_code == 200
    r = client.get("/api/auth/me")
    assert r.status_code == 401


def test_cookie_writes_require_csrf_but_bearer_writes_do_not(app, client, fake_firebase, monkeypatch):
    monkeypatch.setitem(app.config, "WTF_CSRF_ENABLED", True)
    client.post("/api/auth/session", json={"token": "good-erin"})

    payload = {"name": "Zed", "email": "zed@example.com"}
    r = client.post("/api/customer/create", json=payload)
    assert r.status_code == 400
    assert r.get_json()["error"] == "csrf_failed"

    token = client.get("/api/auth/csrf-token").get_json()["csrfToken"]
    r = client.post("/api/customer/create", json=payload, headers={"X-CSRFToken": token})
    assert r.status_code == 201

    bearer = app.test_client()
    r = bearer.post(
        "/api/customer/create",
        json={"name": "Yan", "email": "yan@example.com"},
        headers={"Authorization": "Bearer good-erin"},
    )
    assert r.status_code == 201


def test_options_preflight_and_cors_headers(client):
    r = client.open("/api/customer/list", method="OPTIONS", headers={"Origin": "http://localhost:3000"})
    assert r.status_code == 204
    assert r.headers.get("Access-Control-Allow-Origin") == "*"


def test_parallel_first_sign_in_reuses_the_winning_row(app, monkeypatch):
    from velocityos.services import accounts

    with app.app_context():
        winner = User(email="carol@example.com", firebase_uid="carol")
        db.session.add(winner)
        db.session.commit()
        winner_id = winner.id

        # The first lookup misses, as it would for a request racing the winner
        real_lookup = accounts._user_by_uid
        calls = []

        def _racing_lookup(uid):
            calls.append(uid)
            return None if len(calls) == 1 else real_lookup(uid)
        monkeypatch.setattr(accounts, "_user_by_uid", _racing_lookup)

        user = accounts.get_or_provision_user({"uid": "carol", "email": "carol@example.com"})
        assert user.id == winner_id
        assert len(calls) == 2
        assert User.query.filter_by(firebase_uid="carol").count() == 1
        assert user.org_id is not None
        assert OrgMembership.query.filter_by(user_id=winner_id, role=ROLE_OWNER).count() == 1
