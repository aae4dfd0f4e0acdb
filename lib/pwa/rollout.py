# =============================================================================
# lib/pwa/rollout.py - Percentage Rollout Bucketing
# =============================================================================
# Decides whether the PWA experience is on for a visitor.
#
# Order of evaluation:
#   1. base flag off            -> base_disabled
#   2. percent <= 0             -> percent_zero
#   3. override on/off          -> override_on / override_off
#   4. percent >= 100           -> percent_hundred
#   5. fnv1a(rollout id) % 100  -> bucket_included / bucket_excluded
#
# A visitor can force the rollout with ?pwa_rollout=on|off (persisted) and
# clear that with ?pwa_rollout=reset.
# =============================================================================

import uuid
from dataclasses import dataclass, asdict
from typing import Literal

from lib.pwa.hashing import bucket_for
from lib.pwa.storage import SafeStorage

ROLLOUT_ID_STORAGE_KEY = "ku_pwa_rollout_id"
ROLLOUT_OVERRIDE_STORAGE_KEY = "ku_pwa_rollout_override"
ROLLOUT_OVERRIDE_QUERY_KEY = "pwa_rollout"

RolloutReason = Literal[
    "base_disabled",
    "percent_zero",
    "percent_hundred",
    "override_on",
    "override_off",
    "bucket_included",
    "bucket_excluded",
]

_ON_VALUES = {"on", "1", "true"}
_OFF_VALUES = {"off", "0", "false"}


@dataclass(frozen=True)
class RolloutDecision:
    enabled: bool
    reason: RolloutReason
    percent: int
    bucket: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def clamp_percent(value: float) -> int:
    return max(0, min(100, int(value)))


def parse_override(value: str | None) -> bool | None:
    """Map an override string to True/False, or None when it means nothing."""
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized in _ON_VALUES:
        return True
    if normalized in _OFF_VALUES:
        return False
    return None


def get_or_create_rollout_id(storage: SafeStorage) -> str:
    existing = storage.get(ROLLOUT_ID_STORAGE_KEY)
    if existing:
        return existing
    created = str(uuid.uuid4())
    storage.set(ROLLOUT_ID_STORAGE_KEY, created)
    return created


def resolve_override(storage: SafeStorage, query_value: str | None) -> bool | None:
    """
    Apply the query override (persisting it) or fall back to the stored one.
    """
    if query_value:
        normalized = query_value.strip().lower()
        if normalized == "reset":
            storage.delete(ROLLOUT_OVERRIDE_STORAGE_KEY)
            return None
        parsed = parse_override(normalized)
        if parsed is not None:
            storage.set(ROLLOUT_OVERRIDE_STORAGE_KEY, "on" if parsed else "off")
            return parsed

    return parse_override(storage.get(ROLLOUT_OVERRIDE_STORAGE_KEY))


def evaluate_rollout(
    base_enabled: bool,
    storage: SafeStorage,
    percent: int,
    query_override: str | None = None,
) -> RolloutDecision:
    """
    Evaluate the rollout for one visitor.

    Args:
        base_enabled: Global PWA flag
        storage: Visitor's local-scope storage
        percent: Rollout percentage (clamped to 0..100)
        query_override: Raw value of the pwa_rollout query parameter

    Returns:
        RolloutDecision with the reason that decided it
    """
    percent = clamp_percent(percent)

    if not base_enabled:
        return RolloutDecision(enabled=False, reason="base_disabled", percent=percent)

    if percent <= 0:
        return RolloutDecision(enabled=False, reason="percent_zero", percent=percent)

    override = resolve_override(storage, query_override)
    if override is True:
        return RolloutDecision(enabled=True, reason="override_on", percent=percent)
    if override is False:
        return RolloutDecision(enabled=False, reason="override_off", percent=percent)

    if percent >= 100:
        return RolloutDecision(enabled=True, reason="percent_hundred", percent=percent)

    bucket = bucket_for(get_or_create_rollout_id(storage), 100)
    enabled = bucket < percent
    return RolloutDecision(
        enabled=enabled,
        reason="bucket_included" if enabled else "bucket_excluded",
        percent=percent,
        bucket=bucket,
    )
