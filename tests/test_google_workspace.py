from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from conftest import login
from velocityos.extensions import db
from velocityos.models import GoogleWorkspaceToken, WorkspaceImport
from velocityos.services import google_workspace as gw
from velocityos.services import workspace_import
from velocityos.utils.helpers import utcnow


class _Resp:
    def __init__(self, status_code=200, body=None, reason="OK"):
        self.status_code = status_code
        self._body = body if body is not None else {}
        self.reason = reason

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        return self._body


@pytest.fixture()
def google_config(app, monkeypatch):
    monkeypatch.setitem(app.config, "GOOGLE_CLIENT_ID", "cid.apps.googleusercontent.com")
    monkeypatch.setitem(app.config, "GOOGLE_CLIENT_SECRET", "shh")
    monkeypatch.setitem(app.config, "GOOGLE_REDIRECT_URI", "http://api.example.test/api/google-workspace/callback")


@pytest.fixture()
def token_endpoint(monkeypatch):
    """Queue of responses served by requests.post; records the forms sent."""
    state = {"responses": [], "forms": []}

    def _post(url, data=None, timeout=None):
        state["forms"].append(data)
        return state["responses"].pop(0)
    monkeypatch.setattr(gw.requests, "post", _post)
    return state


def _store(app, ids, expires_in_minutes=60, refresh_token="1//stored"):
    with app.app_context():
        db.session.add(GoogleWorkspaceToken(
            user_id=ids["user_id"], org_id=ids["org_id"],
            access_token="ya29.old", refresh_token=refresh_token,
            expires_at=utcnow() + timedelta(minutes=expires_in_minutes),
        ))
        db.session.commit()


def test_authorize_url_requests_offline_access(member_client, google_config):
    r = member_client.get("/api/google-workspace/authorize")
    assert r.status_code == 200
    url = urlparse(r.get_json()["data"]["url"])
    qs = parse_qs(url.query)
    assert url.netloc == "accounts.google.com"
    assert qs["access_type"] == ["offline"]
    assert qs["prompt"] == ["consent"]
    assert "https://www.googleapis.com/auth/gmail.readonly" in qs["scope"][0].split()
    assert qs["state"][0]


def test_authorize_without_credentials_is_500(member_client):
    r = member_client.get("/api/google-workspace/authorize")
    assert r.status_code == 500
    assert r.get_json()["error"] == "Server Configuration Error"


def test_callback_stores_tokens_and_queues_first_import(app, client, make_member, google_config, token_endpoint):
    ids = make_member()
    with app.test_request_context():
        url = gw.build_authorization_url(ids["user_id"])
    state = parse_qs(urlparse(url).query)["state"][0]

    token_endpoint["responses"].append(_Resp(body={
        "access_token": "ya29.new", "refresh_token": "1//new", "expires_in": 3599, "scope": "a b",
    }))
    r = client.get("/api/google-workspace/callback", query_string={"code": "4/abc", "state": state})
    assert r.status_code == 302
    assert r.headers["Location"] == "http://example.test/settings?workspace=connected"
    assert token_endpoint["forms"][0]["grant_type"] == "authorization_code"

    with app.app_context():
        tok = GoogleWorkspaceToken.query.filter_by(user_id=ids["user_id"]).one()
        assert tok.access_token == "ya29.new"
        assert tok.refresh_token == "1//new"
        assert tok.scopes == ["a", "b"]
        assert WorkspaceImport.query.filter_by(user_id=ids["user_id"], status="pending").count() == 1


def test_callback_with_bad_state_redirects_with_error(client, google_config, token_endpoint):
    r = client.get("/api/google-workspace/callback?code=4/abc&state=forged")
    assert r.status_code == 302
    assert "workspace=error" in r.headers["Location"]
    assert "reason=invalid_state" in r.headers["Location"]
    assert token_endpoint["forms"] == []


def test_refresh_token_uses_stored_token_and_updates_it(app, member_client, google_config, token_endpoint):
    _store(app, member_client.ids, expires_in_minutes=1)
    token_endpoint["responses"].append(_Resp(body={"access_token": "ya29.fresh", "expires_in": 3600}))

    r = member_client.post("/api/google-workspace/refresh-token", json={})
    assert r.status_code == 200
    assert r.get_json() == {"accessToken": "ya29.fresh", "expiresIn": 3600, "tokenType": "Bearer"}
    assert token_endpoint["forms"][0]["refresh_token"] == "1//stored"

    with app.app_context():
        tok = GoogleWorkspaceToken.query.filter_by(user_id=member_client.ids["user_id"]).one()
        assert tok.access_token == "ya29.fresh"
        assert not gw.tokens_expired(tok)


def test_refresh_token_error_mapping(member_client, google_config, token_endpoint):
    r = member_client.post("/api/google-workspace/refresh-token", json={})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Refresh token is required"

    token_endpoint["responses"].append(_Resp(400, {"error": "invalid_grant"}, "Bad Request"))
    r = member_client.post("/api/google-workspace/refresh-token", json={"refreshToken": "1//bad"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid Refresh Token"

    token_endpoint["responses"].append(_Resp(401, {"error": "invalid_client"}, "Unauthorized"))
    r = member_client.post("/api/google-workspace/refresh-token", json={"refreshToken": "1//x"})
    assert r.status_code == 401

    token_endpoint["responses"].append(_Resp(200, {"token_type": "Bearer"}))
    r = member_client.post("/api/google-workspace/refresh-token", json={"refreshToken": "1//x"})
    assert r.status_code == 500
    assert r.get_json()["error"] == "Invalid Response"


def test_refresh_token_network_failure_is_502(member_client, google_config, monkeypatch):
    def _down(*args, **kwargs):
        raise requests.ConnectionError("unreachable")
    monkeypatch.setattr(gw.requests, "post", _down)
    r = member_client.post("/api/google-workspace/refresh-token", json={"refreshToken": "1//x"})
    assert r.status_code == 502


def test_status_reports_connection(app, member_client):
    r = member_client.get("/api/google-workspace/status")
    data = r.get_json()["data"]
    assert data["connected"] is False and data["firstTime"] is True

    _store(app, member_client.ids)
    data = member_client.get("/api/google-workspace/status").get_json()["data"]
    assert data["connected"] is True
    assert data["hasRefreshToken"] is True
    assert data["expired"] is False
    assert "accessToken" not in data and "access_token" not in data


def test_import_counts_each_source(app, member_client, monkeypatch):
    _store(app, member_client.ids)
    monkeypatch.setattr(workspace_import, "SOURCES", {
        "emails": lambda http, timeout: 3,
        "calendarEvents": lambda http, timeout: 2,
        "files": lambda http, timeout: 0,
        "contacts": lambda http, timeout: 7,
    })
    r = member_client.post("/api/google-workspace/import")
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["status"] == "completed"
    assert data["counts"] == {"emails": 3, "calendarEvents": 2, "files": 0, "contacts": 7}


def test_import_records_source_errors(app, member_client, monkeypatch):
    _store(app, member_client.ids)

    def _fail(http, timeout):
        raise workspace_import.ImportSourceError("Drive API error: Forbidden")
    monkeypatch.setattr(workspace_import, "SOURCES", {"emails": lambda http, timeout: 1, "files": _fail})
    data = member_client.post("/api/google-workspace/import").get_json()["data"]
    assert data["status"] == "failed"
    assert data["errors"] == ["Drive API error: Forbidden"]
    assert data["counts"]["emails"] == 1


def test_import_requires_connection(member_client):
    r = member_client.post("/api/google-workspace/import")
    assert r.status_code == 400


def test_fetch_gmail_reads_metadata_for_listed_messages():
    calls = []

    class _Http:
        def get(self, url, params=None, timeout=None):
            calls.append(url)
            if url.endswith("/messages"):
                return _Resp(body={"messages": [{"id": str(i)} for i in range(60)]})
            return _Resp(body={"id": url.rsplit("/", 1)[1]})

    assert workspace_import.fetch_gmail(_Http(), 5) == workspace_import.GMAIL_DETAIL_MAX
    assert len(calls) == 1 + workspace_import.GMAIL_DETAIL_MAX


def test_expired_tokens_without_refresh_are_unusable(app, client, make_member):
    ids = make_member()
    _store(app, ids, expires_in_minutes=2, refresh_token=None)
    with app.app_context():
        assert gw.get_fresh_tokens(ids["user_id"]) is None


def test_unexpected_source_error_fails_import_without_wedging(app, member_client, monkeypatch):
    _store(app, member_client.ids)

    def _bad_payload(http, timeout):
        return {"messages": [{}]}["messages"][0]["id"]
    monkeypatch.setattr(workspace_import, "SOURCES", {"emails": _bad_payload, "contacts": lambda http, timeout: 4})

    data = member_client.post("/api/google-workspace/import").get_json()["data"]
    assert data["status"] == "failed"
    assert data["errors"] == ["emails import failed: KeyError"]
    assert data["counts"]["contacts"] == 4

    # The row is finished, so another import can start
    monkeypatch.setattr(workspace_import, "SOURCES", {"emails": lambda http, timeout: 2})
    r = member_client.post("/api/google-workspace/import")
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "completed"


def test_token_lookup_crash_still_finishes_the_row(app, make_member, monkeypatch):
    ids = make_member()

    def _crash(user_id):
        raise RuntimeError("token store unavailable")
    monkeypatch.setattr(workspace_import, "get_fresh_tokens", _crash)

    with app.app_context():
        imp = workspace_import.queue_import(user_id=ids["user_id"], org_id=ids["org_id"])
        assert workspace_import.run_pending() == 1
        row = db.session.get(WorkspaceImport, imp.id)
        assert row.status == "failed"
        assert row.errors == ["Import failed: RuntimeError"]
        assert row.completed_at is not None
