# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application:
# - UUID normalization and validation
# - Classification of PostgREST / Postgres errors raised by supabase-py
# - Small time helpers shared by the PWA modules
# =============================================================================

import time
from datetime import datetime, timezone
from typing import Any
from uuid import UUID


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: str | UUID) -> str:
    """
    Normalize a UUID to string format.

    Args:
        value: UUID as string or UUID object

    Returns:
        String representation of the UUID
    """
    return str(value) if isinstance(value, UUID) else value


def is_uuid(value: Any) -> bool:
    """Check whether a value parses as a UUID."""
    if not isinstance(value, str):
        return False
    try:
        UUID(value)
    except ValueError:
        return False
    return True


# =============================================================================
# Time Utilities
# =============================================================================

def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def iso_from_ms(ms: float) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string (JS toISOString style)."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def ms_from_iso(value: Any) -> int | None:
    """Parse an ISO timestamp into epoch milliseconds, or None."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


# =============================================================================
# Supabase Error Classification
# =============================================================================
# supabase-py raises postgrest APIError objects carrying the Postgres/PostgREST
# code. These helpers read them without depending on the exception class.

SCHEMA_MISMATCH_CODES = {"42P01", "42703", "PGRST204", "PGRST205"}


def error_meta(error: Any) -> dict[str, str | None]:
    """
    Extract code/message/details/hint from a Supabase error.

    Works for APIError instances, plain dicts and arbitrary exceptions.
    """
    if error is None:
        return {"code": None, "message": None, "details": None, "hint": None}

    def _read(name: str) -> str | None:
        if isinstance(error, dict):
            value = error.get(name)
        else:
            value = getattr(error, name, None)
        return str(value) if value is not None else None

    message = _read("message")
    if message is None and isinstance(error, Exception):
        message = str(error)
    return {
        "code": _read("code"),
        "message": message,
        "details": _read("details"),
        "hint": _read("hint"),
    }


def _error_text(meta: dict[str, str | None]) -> str:
    return " ".join(part for part in (meta["message"], meta["details"], meta["hint"]) if part).lower()


def is_unique_violation(error: Any) -> bool:
    return error_meta(error)["code"] == "23505"


def is_foreign_key_violation(error: Any) -> bool:
    return error_meta(error)["code"] == "23503"


def is_missing_relation(error: Any, relation: str | None = None) -> bool:
    """True when the error says a table (optionally a specific one) is missing."""
    meta = error_meta(error)
    if meta["code"] in ("42P01", "PGRST205"):
        return True
    text = _error_text(meta)
    if relation:
        return relation.lower() in text and "does not exist" in text
    return "relation" in text and "does not exist" in text


def is_schema_mismatch(error: Any) -> bool:
    """True for missing tables/columns or a stale PostgREST schema cache."""
    meta = error_meta(error)
    if meta["code"] in SCHEMA_MISMATCH_CODES:
        return True
    text = _error_text(meta)
    return (
        ("relation" in text and "does not exist" in text)
        or ("column" in text and "does not exist" in text)
        or "schema cache" in text
    )
