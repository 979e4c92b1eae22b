# signportal/docuseal/utils.py

import hmac
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

from signportal.core.config import settings

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Forward-only ordering of a party's signing lifecycle
SUBMITTER_STATUS_RANK = {
    "pending": 0,
    "sent": 1,
    "opened": 2,
    "completed": 3,
}
TERMINAL_SUBMITTER_STATUSES = {"completed", "declined"}

# Caller-facing listing filters the provider does not understand
STATUS_FILTER_ALIASES = {
    "SENT": "pending",
    "ALL": None,
    "OPENED": None,
}


def as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def map_status_filter(status: Optional[str]) -> Optional[str]:
    """
    Translate a UI status filter into the value forwarded to DocuSeal.
    Returns None when no status filter should be forwarded.
    """
    if not status:
        return None
    key = status.strip()
    if key in STATUS_FILTER_ALIASES:
        return STATUS_FILTER_ALIASES[key]
    return key.lower()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from a DocuSeal payload into an aware UTC datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, OverflowError):
        return None
    return as_utc(parsed)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Databases without timezone support hand back naive datetimes stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def same_instant(a: Optional[datetime], b: Optional[datetime]) -> bool:
    return as_utc(a) == as_utc(b)


def can_transition(current: Optional[str], target: str) -> bool:
    """
    Whether a party may move from `current` to `target`.
    Statuses only move forward, declined is reachable from any non-terminal
    state and terminal states never change.
    """
    current = current or "pending"
    if current == target:
        return True
    if current in TERMINAL_SUBMITTER_STATUSES:
        return False
    if target == "declined":
        return True
    if target not in SUBMITTER_STATUS_RANK:
        return False
    return SUBMITTER_STATUS_RANK[target] >= SUBMITTER_STATUS_RANK.get(current, 0)


def template_kind(filename: Optional[str], content_type: Optional[str]) -> str:
    """Pick the DocuSeal template endpoint for an uploaded file: 'docx' or 'pdf'."""
    name = (filename or "").lower()
    if content_type == DOCX_MIME or name.endswith(".docx"):
        return "docx"
    return "pdf"


def strip_extension(filename: str) -> str:
    if "." not in filename:
        return filename
    return filename.rsplit(".", 1)[0] or filename


def extract_items(data: Any) -> list:
    """DocuSeal list endpoints answer with either a bare list or {'data': [...], ...}."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get("data") or []
    return []


def with_items(data: Any, items: list) -> Dict[str, Any]:
    """Normalize a list response to {'data': items}, keeping pagination when present."""
    if isinstance(data, dict):
        return {**data, "data": items}
    return {"data": items}


def verify_webhook_secret(headers: Dict[str, str]) -> bool:
    secret = settings.docuseal_webhook_secret
    if not secret:
        return True  # secret check not enabled
    received = headers.get(settings.docuseal_webhook_header.lower())
    return bool(received) and hmac.compare_digest(received, secret)
