import json
import hmac
import hashlib

from velocityos.models import EmailLog
from velocityos.services.email import is_suppressed


def test_campaign_templates_render_message_and_org(app):
    with app.app_context():
        ctx = {"campaign_name": "Spring", "message": "Hello there", "org_name": "Acme Co"}
        html = app.jinja_env.get_template("email/campaign.html").render(**ctx)
        txt = app.jinja_env.get_template("email/campaign.txt").render(**ctx)
        assert "Hello there" in html and "Acme Co" in html
        assert "Hello there" in txt and "Acme Co" in txt


def _sign(secret: str, timestamp: str, body: bytes) -> str:
    # HMAC(secret, f"{timestamp}." + raw_body)
    return hmac.new(secret.encode("utf-8"), (timestamp + ".").encode("utf-8") + body, hashlib.sha256).hexdigest()


def test_webhook_hmac_creates_emaillog_bounce(app, client):
    payload = {
        "event": "bounce",
        "email": "Bounced@example.com",
        "message_id": "abc123",
    }
    body = json.dumps(payload).encode("utf-8")
    ts = "1700000000"
    sig = _sign(app.config["EMAIL_WEBHOOK_SECRET"], ts, body)

    resp = client.post(
        "/webhooks/email",
        data=body,
        headers={
            "Content-Type": "application/json",
            "X-Timestamp": ts,
            "X-Signature": sig,
        },
    )
    assert resp.status_code == 200

    with app.app_context():
        row = EmailLog.query.filter_by(to_email="bounced@example.com").order_by(EmailLog.id.desc()).first()
        assert row is not None
        assert row.status == "bounced"
        assert row.provider_msg_id == "abc123"
        assert is_suppressed("bounced@example.com") is True
        assert is_suppressed("fine@example.com") is False


def test_webhook_rejects_bad_signature(app, client):
    body = json.dumps({"event": "complaint", "email": "x@example.com"}).encode("utf-8")
    resp = client.post(
        "/webhooks/email",
        data=body,
        headers={"Content-Type": "application/json", "X-Timestamp": "1", "X-Signature": "deadbeef"},
    )
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "invalid_signature"
    with app.app_context():
        assert EmailLog.query.count() == 0


def test_webhook_tolerates_non_string_fields(app, client):
    body = json.dumps({"event": ["bounce"], "email": "odd@example.com", "subject": 42, "message_id": 7}).encode("utf-8")
    ts = "1700000001"
    resp = client.post(
        "/webhooks/email",
        data=body,
        headers={"Content-Type": "application/json", "X-Timestamp": ts, "X-Signature": _sign(app.config["EMAIL_WEBHOOK_SECRET"], ts, body)},
    )
    assert resp.status_code == 200
    with app.app_context():
        row = EmailLog.query.filter_by(to_email="odd@example.com").one()
        assert row.status == "failed"
        assert row.subject == ""
        assert row.provider_msg_id is None
