import hashlib
import hmac
import json
import time
from datetime import timedelta
from typing import Any, Dict, Optional

from flask import current_app, render_template
from flask_mail import Message

from velocityos.extensions import db, mail
from velocityos.models.email_log import EmailLog
from velocityos.utils.helpers import utcnow
from velocityos.utils.validators import clean_str

# Suppression lookback window
SUPPRESSION_WINDOW_DAYS = 90

# Provider event -> EmailLog status
_PROVIDER_STATUS = {
    "bounce": "bounced",
    "bounced": "bounced",
    "complaint": "complaint",
    "spamreport": "complaint",
    "delivered": "delivered",
}


def is_suppressed(to_email: str) -> bool:
    """
    Return True if the address should be suppressed due to a recent bounce/complaint.
    """
    cutoff = utcnow() - timedelta(days=SUPPRESSION_WINDOW_DAYS)
    q = EmailLog.query.filter(
        EmailLog.to_email == (to_email or "").strip().lower(),
        EmailLog.created_at >= cutoff,
        EmailLog.status.in_(("bounced", "complaint")),
    )
    return db.session.query(q.exists()).scalar()


def _log_structured(event: str, level: str = "info", **fields):
    """One JSON object per line; no secrets, recipient address only."""
    payload = {"event": event, **fields}
    getattr(current_app.logger, level)(json.dumps(payload))


def send_email(
    to_email: str,
    subject: str,
    template: str,
    context: Optional[Dict[str, Any]] = None,
    *,
    org_id: Optional[int] = None,
    campaign_id: Optional[int] = None,
) -> EmailLog:
    """
    template: basename under templates/email/ without extension (e.g. 'campaign').
    Renders both HTML and plaintext and returns the EmailLog row
    (status sent, or failed with meta.reason).
    """
    to_email = to_email.strip().lower()
    context = context or {}

    def _entry(status: str, meta: Optional[dict] = None) -> EmailLog:
        return EmailLog(
            org_id=org_id,
            campaign_id=campaign_id,
            to_email=to_email,
            template=template,
            subject=subject,
            status=status,
            meta=meta or {},
        )

    # Do-not-send gate (derived from recent EmailLog events)
    if is_suppressed(to_email):
        elog = _entry("failed", {"reason": "suppressed"})
        db.session.add(elog)
        db.session.commit()
        _log_structured("mail_send", "warning", template=template, to=to_email, outcome="suppressed")
        return elog

    msg = Message(recipients=[to_email], subject=subject)
    msg.body = render_template(f"email/{template}.txt", **context)
    msg.html = render_template(f"email/{template}.html", **context)

    elog = _entry("queued")
    db.session.add(elog)
    db.session.commit()

    start = time.perf_counter()
    try:
        mail.send(msg)  # Flask-Mail returns None; provider ids arrive via webhook
    except Exception as ex:
        latency_ms = int((time.perf_counter() - start) * 1000)
        elog.status = "failed"
        elog.meta = {"reason": "smtp_error", "error": str(ex)[:255]}
        db.session.commit()
        _log_structured(
            "mail_send", "warning",
            template=template, to=to_email, outcome="smtp_error", latency_ms=latency_ms, smtp_error=str(ex),
        )
        return elog

    latency_ms = int((time.perf_counter() - start) * 1000)
    elog.status = "sent"
    db.session.commit()
    _log_structured("mail_send", template=template, to=to_email, outcome="sent", latency_ms=latency_ms)
    return elog


def verify_webhook_signature(raw_body: bytes, timestamp: str, sig: str) -> bool:
    """HMAC-SHA256 over b"<timestamp>." + body, hex encoded."""
    secret = current_app.config.get("EMAIL_WEBHOOK_SECRET")
    if not secret or not timestamp or not sig:
        return False
    mac = hmac.new(secret.encode("utf-8"), (timestamp + ".").encode("utf-8") + raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(mac, sig)


def record_provider_event(payload: Dict[str, Any]) -> EmailLog:
    event = (clean_str(payload.get("event"), max_len=40) or "").lower()  # e.g. "bounce" | "complaint" | "delivered"
    to_email = (clean_str(payload.get("email"), max_len=320) or "").lower()
    status = _PROVIDER_STATUS.get(event, "failed")

    entry = EmailLog(
        to_email=to_email,
        template=clean_str(payload.get("template"), max_len=64) or "unknown",
        subject=clean_str(payload.get("subject"), max_len=200) or "",
        provider_msg_id=clean_str(payload.get("message_id"), max_len=128),
        status=status,
        meta=payload,
    )
    db.session.add(entry)
    db.session.commit()
    _log_structured("mail_webhook", to=to_email, status=status, provider_msg_id=entry.provider_msg_id)
    return entry
