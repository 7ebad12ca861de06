"""
First-time Google Workspace data import.

Gmail, Calendar, Drive and People are fetched concurrently; each source
reports a count or an error and the import row records the outcome.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Callable, Dict

import requests
from flask import current_app

from velocityos.extensions import db
from velocityos.models.workspace import (
    WorkspaceImport,
    IMPORT_PENDING,
    IMPORT_RUNNING,
    IMPORT_COMPLETED,
    IMPORT_FAILED,
)
from velocityos.services.google_workspace import get_fresh_tokens
from velocityos.utils.helpers import utcnow

logger = logging.getLogger(__name__)

GMAIL_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages"
CALENDAR_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
DRIVE_URL = "https://www.googleapis.com/drive/v3/files"
PEOPLE_URL = "https://people.googleapis.com/v1/people/me/connections"

GMAIL_LIST_MAX = 100
GMAIL_DETAIL_MAX = 50


class ImportSourceError(Exception):
    pass


def _get(http: requests.Session, url: str, label: str, timeout: float, **params) -> dict:
    resp = http.get(url, params=params or None, timeout=timeout)
    if not resp.ok:
        raise ImportSourceError(f"{label} API error: {resp.reason or resp.status_code}")
    return resp.json()


def fetch_gmail(http: requests.Session, timeout: float) -> int:
    data = _get(http, GMAIL_URL, "Gmail", timeout, maxResults=GMAIL_LIST_MAX, q="newer_than:30d")
    messages = data.get("messages") or []
    details = []
    for msg in messages[:GMAIL_DETAIL_MAX]:
        details.append(_get(
            http, f"{GMAIL_URL}/{msg['id']}", "Gmail", timeout,
            format="metadata", metadataHeaders=["From", "To", "Subject", "Date"],
        ))
    return len(details)


def fetch_calendar(http: requests.Session, timeout: float) -> int:
    now = utcnow()
    data = _get(
        http, CALENDAR_URL, "Calendar", timeout,
        timeMin=now.isoformat() + "Z",
        timeMax=(now + timedelta(days=90)).isoformat() + "Z",
        maxResults=100, singleEvents="true", orderBy="startTime",
    )
    return len(data.get("items") or [])


def fetch_drive(http: requests.Session, timeout: float) -> int:
    data = _get(
        http, DRIVE_URL, "Drive", timeout,
        pageSize=100,
        fields="files(id,name,mimeType,createdTime,modifiedTime,owners,permissions)",
        orderBy="modifiedTime desc",
    )
    return len(data.get("files") or [])


def fetch_contacts(http: requests.Session, timeout: float) -> int:
    data = _get(
        http, PEOPLE_URL, "People", timeout,
        pageSize=100, personFields="names,emailAddresses,phoneNumbers,organizations",
    )
    return len(data.get("connections") or [])


SOURCES: Dict[str, Callable[[requests.Session, float], int]] = {
    "emails": fetch_gmail,
    "calendarEvents": fetch_calendar,
    "files": fetch_drive,
    "contacts": fetch_contacts,
}


def _run_source(fn, access_token: str, timeout: float) -> int:
    with requests.Session() as http:
        http.headers["Authorization"] = f"Bearer {access_token}"
        return fn(http, timeout)


def queue_import(*, user_id: int, org_id: int) -> WorkspaceImport:
    existing = db.session.execute(
        db.select(WorkspaceImport).where(
            WorkspaceImport.user_id == user_id,
            WorkspaceImport.status.in_((IMPORT_PENDING, IMPORT_RUNNING)),
        )
    ).scalars().first()
    if existing is not None:
        return existing
    imp = WorkspaceImport(user_id=user_id, org_id=org_id, status=IMPORT_PENDING)
    db.session.add(imp)
    db.session.commit()
    return imp


def _collect(imp: WorkspaceImport) -> tuple[Dict[str, int], list]:
    tok = get_fresh_tokens(imp.user_id)
    if tok is None:
        return {}, ["No valid Google Workspace tokens available"]

    access_token = tok.access_token
    timeout = current_app.config.get("GOOGLE_HTTP_TIMEOUT", 15)
    counts: Dict[str, int] = {key: 0 for key in SOURCES}
    errors = []

    with ThreadPoolExecutor(max_workers=len(SOURCES)) as pool:
        futures = {key: pool.submit(_run_source, fn, access_token, timeout) for key, fn in SOURCES.items()}
        for key, future in futures.items():
            try:
                counts[key] = future.result()
            except (ImportSourceError, requests.RequestException, ValueError) as e:
                logger.warning("workspace_import_source_failed import_id=%s source=%s error=%s", imp.id, key, e)
                errors.append(str(e))
            except Exception as e:
                logger.exception("workspace_import_source_crashed import_id=%s source=%s", imp.id, key)
                errors.append(f"{key} import failed: {type(e).__name__}")
    return counts, errors


def run_import(imp: WorkspaceImport) -> WorkspaceImport:
    """Run one import; the row always ends completed or failed."""
    imp.status = IMPORT_RUNNING
    imp.started_at = utcnow()
    db.session.commit()

    try:
        counts, errors = _collect(imp)
    except Exception as e:
        db.session.rollback()
        logger.exception("workspace_import_crashed import_id=%s", imp.id)
        counts, errors = {}, [f"Import failed: {type(e).__name__}"]

    imp.counts = counts
    imp.errors = errors
    imp.status = IMPORT_FAILED if errors else IMPORT_COMPLETED
    imp.completed_at = utcnow()
    db.session.commit()
    logger.info("workspace_import_done import_id=%s status=%s counts=%s", imp.id, imp.status, counts)
    return imp


def run_pending(limit: int = 20) -> int:
    pending = db.session.execute(
        db.select(WorkspaceImport)
        .where(WorkspaceImport.status == IMPORT_PENDING)
        .order_by(WorkspaceImport.created_at.asc())
        .limit(limit)
    ).scalars().all()
    for imp in pending:
        run_import(imp)
    return len(pending)


def latest_import(user_id: int) -> WorkspaceImport | None:
    return db.session.execute(
        db.select(WorkspaceImport)
        .where(WorkspaceImport.user_id == user_id)
        .order_by(WorkspaceImport.id.desc())
    ).scalars().first()
