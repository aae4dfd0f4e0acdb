# =============================================================================
# lib/security.py - Client Identification & Origin Allow-Listing
# =============================================================================
# Helpers used by the request guards:
# - get_client_identifier: best client IP from proxy headers
# - build_origin_allow_list / is_origin_allowed: allow-listed site origins
# - is_same_origin_request: Origin matches the host the request came in on
#
# Header access goes through any Mapping with case-insensitive keys
# (starlette's Headers qualifies).
# =============================================================================

from typing import Iterable, Mapping
from urllib.parse import urlsplit

UNKNOWN_CLIENT = "unknown"

_IP_HEADERS = ("x-real-ip", "cf-connecting-ip", "fastly-client-ip")


def _first_entry(value: str | None) -> str | None:
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def get_client_identifier(headers: Mapping[str, str]) -> str:
    """
    Resolve the caller's IP from proxy headers.

    x-forwarded-for (first hop) wins, then x-real-ip, cf-connecting-ip and
    fastly-client-ip. Returns "unknown" when none is present.
    """
    forwarded = _first_entry(headers.get("x-forwarded-for"))
    if forwarded:
        return forwarded

    for header in _IP_HEADERS:
        value = (headers.get(header) or "").strip()
        if value:
            return value

    return UNKNOWN_CLIENT


def _parse_origin(value: str) -> tuple[str, str] | None:
    """Return (scheme://host[:port], host[:port]) lowercased, or None."""
    try:
        parts = urlsplit(value.strip())
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    host = parts.netloc.lower()
    return f"{parts.scheme.lower()}://{host}", host


def build_origin_allow_list(candidates: Iterable[str | None]) -> set[str]:
    """
    Build the origin allow list from site URLs.

    Each candidate contributes its normalized origin and its bare host.
    Blank or unparseable candidates are ignored.
    """
    allowed: set[str] = set()
    for candidate in candidates:
        if not candidate:
            continue
        parsed = _parse_origin(candidate)
        if parsed is None:
            continue
        origin, host = parsed
        allowed.add(origin)
        allowed.add(host)
    return allowed


def is_origin_allowed(origin: str | None, allow_list: set[str]) -> bool:
    if not origin:
        return False
    parsed = _parse_origin(origin)
    if parsed is None:
        return False
    normalized, host = parsed
    return normalized in allow_list or host in allow_list


def is_same_origin_request(headers: Mapping[str, str]) -> bool:
    """
    Check whether the Origin header points at the host serving the request.

    Host comes from x-forwarded-host (first entry) or host. When
    x-forwarded-proto is present the origin's scheme must match too.
    """
    origin = headers.get("origin")
    if not origin:
        return False
    parsed = _parse_origin(origin)
    if parsed is None:
        return False
    normalized, origin_host = parsed

    request_host = _first_entry(headers.get("x-forwarded-host")) or _first_entry(headers.get("host"))
    if not request_host or origin_host != request_host.lower():
        return False

    forwarded_proto = _first_entry(headers.get("x-forwarded-proto"))
    if forwarded_proto:
        return normalized.startswith(f"{forwarded_proto.lower()}://")

    return True
