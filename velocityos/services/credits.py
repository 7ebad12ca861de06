import logging

from velocityos.errors import ApiError
from velocityos.extensions import db
from velocityos.models.org import Org

log = logging.getLogger(__name__)

AI_TOKENS = "aiTokens"
EMAILS = "emails"
STORAGE_MB = "storageMb"

_COLUMNS = {
    AI_TOKENS: "credits_ai_tokens",
    EMAILS: "credits_emails",
    STORAGE_MB: "credits_storage_mb",
}


def _locked_org(org_id: int) -> Org:
    org = db.session.execute(
        db.select(Org).where(Org.id == org_id).with_for_update()
    ).scalar_one_or_none()
    if org is None:
        raise ApiError(404, "Not Found", "Organization not found")
    return org


def consume(org_id: int, kind: str, amount: int) -> int:
    """
    Debit `amount` credits of `kind` under a row lock. Raises 402 when the
    balance is short. The caller owns the commit. Returns the new balance.
    """
    column = _COLUMNS[kind]
    org = _locked_org(org_id)
    balance = int(getattr(org, column) or 0)
    if balance < amount:
        log.info("credits_insufficient org_id=%s kind=%s required=%s available=%s", org_id, kind, amount, balance)
        raise ApiError(
            402,
            "Payment Required",
            "Insufficient credits",
            code="insufficient_credits",
            details={"kind": kind, "required": amount, "available": balance},
        )
    setattr(org, column, balance - amount)
    return balance - amount


def refund(org_id: int, kind: str, amount: int) -> int:
    if amount <= 0:
        return 0
    column = _COLUMNS[kind]
    org = _locked_org(org_id)
    balance = int(getattr(org, column) or 0) + amount
    setattr(org, column, balance)
    return balance


def grant(org: Org, credits: dict) -> None:
    """Add a plan's credit grant to an already locked/new org row."""
    for kind, column in _COLUMNS.items():
        setattr(org, column, int(getattr(org, column) or 0) + int(credits.get(kind, 0)))
