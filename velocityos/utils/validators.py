import re

# Simple, pragmatic patterns
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_CHARS_RE = re.compile(r"^\+?[\d\s().\-]+$")
_CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")

def clean_str(val, max_len: int = 255) -> str | None:
    """
    Collapse whitespace, trim, enforce max length. Returns None if empty after cleaning.
    Non-string input is treated as empty.
    """
    if val is None or not isinstance(val, str):
        return None
    s = re.sub(r"\s+", " ", val).strip()
    if not s:
        return None
    return s[:max_len]

def is_valid_email(val: str | None) -> bool:
    if not val:
        return False
    return bool(_EMAIL_RE.match(val))

def normalize_e164(val: str | None) -> str | None:
    """
    Normalize to E.164 (+<digits>). Ten bare digits are read as a US number,
    eleven starting with '1' likewise. Anything else needs a leading '+'.
    Returns None if invalid or empty.
    """
    if not val or not _PHONE_CHARS_RE.match(val.strip()):
        return None
    raw = val.strip()
    digits = "".join(re.findall(r"\d", raw))
    if raw.startswith("+"):
        return f"+{digits}" if 7 <= len(digits) <= 15 else None
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None

def is_valid_currency(val: str | None) -> bool:
    return bool(val) and bool(_CURRENCY_RE.match(val))

def dedupe_emails(values) -> list[str]:
    """Trim and lowercase, keeping first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for v in values or []:
        e = clean_str(v, max_len=320)
        if not e:
            continue
        key = e.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(key)
    return out
