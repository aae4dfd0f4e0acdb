# =============================================================================
# lib/pwa/install_prompt.py - Install Banner Eligibility
# =============================================================================
# Decides whether a visitor should see the "install this app" banner, which
# A/B variant they are in, and keeps the bookkeeping that caps how often the
# banner appears.
#
# Eligibility (all must hold):
#   - PWA + install UI enabled and the visitor is inside the rollout
#   - route not under /admin or /auth
#   - not already running standalone, not confirmed installed
#   - engaged: >= 2 page views OR >= 260px scroll OR >= 12s dwell
#   - not dismissed this session
#   - fewer than 6 impressions in the trailing 30 days
#
# State lives in two SafeStorage scopes (see lib/pwa/storage.py), so storage
# failures behave like a first-time visitor and never raise.
# =============================================================================

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Literal

from lib.pwa import events
from lib.pwa.hashing import bucket_for
from lib.pwa.rollout import ROLLOUT_ID_STORAGE_KEY, RolloutDecision, evaluate_rollout
from lib.pwa.storage import SafeStorage
from lib.utils import now_ms

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Storage keys
# -----------------------------------------------------------------------------
IMPRESSION_STORAGE_KEY = "ku_pwa_install_impressions_v1"
INSTALLED_STORAGE_KEY = "ku_pwa_install_installed_v1"
INSTALL_VARIANT_STORAGE_KEY = "ku_pwa_install_variant_v1"
SESSION_PAGE_VIEWS_KEY = "ku_pwa_install_session_page_views"
SESSION_MINIMIZED_KEY = "ku_pwa_install_session_minimized"
SESSION_DISMISSED_KEY = "ku_pwa_install_session_dismissed"

INSTALL_VARIANT_QUERY_KEY = "pwa_install_variant"
INSTALL_DEBUG_RESET_QUERY_KEY = "pwa_install_debug_reset"

# -----------------------------------------------------------------------------
# Tuning
# -----------------------------------------------------------------------------
IMPRESSION_WINDOW_MS = 30 * 24 * 60 * 60 * 1000
MAX_IMPRESSIONS_PER_WINDOW = 6
IMPRESSION_CLOCK_SKEW_MS = 60_000
ENGAGEMENT_DWELL_MS = 12_000
ENGAGEMENT_SCROLL_Y = 260
ENGAGEMENT_PAGE_VIEWS = 2
ROUTE_BLOCK_PREFIXES = ("/admin", "/auth")
INSTALL_VARIANTS = ("control", "spotlight")

_DEBUG_RESET_VALUES = {"1", "true", "yes", "on"}

InstallMode = Literal["prompt", "ios_manual"]
VariantSource = Literal["query", "storage", "deterministic"]
InstallAction = Literal[
    "cta_clicked",
    "guide_opened",
    "minimized",
    "accepted",
    "dismissed",
    "installed",
]


# =============================================================================
# Device helpers
# =============================================================================

def is_ios_device(user_agent: str | None, platform: str | None = None, max_touch_points: int = 0) -> bool:
    """iPhone/iPad/iPod, or an iPad that reports itself as a Mac."""
    classic_ios = bool(re.search(r"iphone|ipad|ipod", user_agent or "", re.IGNORECASE))
    modern_ipad = platform == "MacIntel" and max_touch_points > 1
    return classic_ios or modern_ipad


def detect_ios_browser(user_agent: str | None) -> str:
    ua = user_agent or ""
    if not re.search(r"iphone|ipad|ipod|mac", ua, re.IGNORECASE):
        return "other"
    if re.search(r"edgios", ua, re.IGNORECASE):
        return "edge"
    if re.search(r"fxios", ua, re.IGNORECASE):
        return "firefox"
    if re.search(r"crios", ua, re.IGNORECASE):
        return "chrome"
    if re.search(r"safari", ua, re.IGNORECASE):
        return "safari"
    return "other"


def normalize_variant(value: str | None) -> str | None:
    return value if value in INSTALL_VARIANTS else None


def normalize_pathname(pathname: str | None) -> str:
    if not pathname or not pathname.strip():
        return "/"
    return pathname.strip()


def is_route_eligible(pathname: str | None) -> bool:
    normalized = normalize_pathname(pathname)
    return not any(
        normalized == prefix or normalized.startswith(f"{prefix}/")
        for prefix in ROUTE_BLOCK_PREFIXES
    )


def is_engaged(page_views: int, scroll_y: float = 0, dwell_ms: float = 0) -> bool:
    return (
        page_views >= ENGAGEMENT_PAGE_VIEWS
        or scroll_y >= ENGAGEMENT_SCROLL_Y
        or dwell_ms >= ENGAGEMENT_DWELL_MS
    )


# =============================================================================
# Data classes
# =============================================================================

@dataclass
class InstallSignals:
    """What the browser reports about the current page view."""
    pathname: str | None = "/"
    scroll_y: float = 0
    dwell_ms: float = 0
    standalone: bool = False
    install_prompt_available: bool = False
    ios_device: bool = False
    user_agent: str | None = None
    variant_query: str | None = None
    debug_reset_query: str | None = None
    rollout_query: str | None = None


@dataclass
class PromptEvent:
    """A telemetry event emitted by the banner."""
    name: str
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass
class InstallDecision:
    show: bool
    mode: InstallMode | None
    minimized: bool
    variant: str
    variant_source: VariantSource
    eligible: bool
    engaged: bool
    route_eligible: bool
    page_views: int
    impressions: int
    rollout: RolloutDecision
    ios_browser: str = "other"
    events: list[PromptEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "show": self.show,
            "mode": self.mode,
            "minimized": self.minimized,
            "variant": self.variant,
            "variantSource": self.variant_source,
            "eligible": self.eligible,
            "engaged": self.engaged,
            "routeEligible": self.route_eligible,
            "pageViews": self.page_views,
            "impressions": self.impressions,
            "iosBrowser": self.ios_browser,
            "rollout": self.rollout.to_dict(),
            "events": [asdict(e) for e in self.events],
        }


# =============================================================================
# Install prompt state machine
# =============================================================================

class InstallPrompt:
    """
    Install banner bookkeeping for one visitor/session pair.

    Args:
        local: Visitor-scoped storage (long lived)
        session: Session-scoped storage
        base_enabled: PWA_ENABLED and PWA_INSTALL_UI_ENABLED
        rollout_percent: PWA_ROLLOUT_PERCENT
        clock: Returns epoch milliseconds (injectable for tests)
    """

    def __init__(
        self,
        local: SafeStorage,
        session: SafeStorage,
        base_enabled: bool,
        rollout_percent: int = 100,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.local = local
        self.session = session
        self.base_enabled = base_enabled
        self.rollout_percent = rollout_percent
        self.clock = clock

    # -------------------------------------------------------------------------
    # Numeric flags
    # -------------------------------------------------------------------------

    @staticmethod
    def _read_number(storage: SafeStorage, key: str, fallback: float = 0) -> float:
        raw = storage.get(key)
        if not raw:
            return fallback
        try:
            parsed = float(raw)
        except ValueError:
            return fallback
        return parsed if math.isfinite(parsed) else fallback

    @staticmethod
    def _write_flag(storage: SafeStorage, key: str, value: bool) -> None:
        storage.set(key, "1" if value else "0")

    def is_install_confirmed(self) -> bool:
        return self._read_number(self.local, INSTALLED_STORAGE_KEY) == 1

    def set_install_confirmed(self, value: bool) -> None:
        self._write_flag(self.local, INSTALLED_STORAGE_KEY, value)

    def is_session_dismissed(self) -> bool:
        return self._read_number(self.session, SESSION_DISMISSED_KEY) == 1

    def set_session_dismissed(self, value: bool) -> None:
        self._write_flag(self.session, SESSION_DISMISSED_KEY, value)

    def is_session_minimized(self) -> bool:
        return self._read_number(self.session, SESSION_MINIMIZED_KEY) == 1

    def set_session_minimized(self, value: bool) -> None:
        self._write_flag(self.session, SESSION_MINIMIZED_KEY, value)

    def increment_page_views(self) -> int:
        next_value = int(self._read_number(self.session, SESSION_PAGE_VIEWS_KEY)) + 1
        self.session.set(SESSION_PAGE_VIEWS_KEY, str(next_value))
        return next_value

    # -------------------------------------------------------------------------
    # Impressions
    # -------------------------------------------------------------------------

    def read_impressions(self, now: int | None = None) -> list[float]:
        """Impression timestamps inside the rolling window, oldest first."""
        now = self.clock() if now is None else now
        raw = self.local.get(IMPRESSION_STORAGE_KEY)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return []
        if not isinstance(parsed, list):
            return []

        timestamps = []
        for item in parsed:
            if isinstance(item, bool):
                continue
            try:
                ts = float(item)
            except (TypeError, ValueError):
                continue
            if math.isfinite(ts) and now - IMPRESSION_WINDOW_MS < ts <= now + IMPRESSION_CLOCK_SKEW_MS:
                timestamps.append(ts)
        return sorted(timestamps)

    def _write_impressions(self, timestamps: list[float]) -> None:
        kept = timestamps[-MAX_IMPRESSIONS_PER_WINDOW * 2:]
        self.local.set(IMPRESSION_STORAGE_KEY, json.dumps([int(ts) for ts in kept]))

    def record_impression(self, now: int | None = None) -> None:
        now = self.clock() if now is None else now
        self._write_impressions([*self.read_impressions(now), now])

    def has_reached_impression_cap(self, now: int | None = None) -> bool:
        return len(self.read_impressions(now)) >= MAX_IMPRESSIONS_PER_WINDOW

    # -------------------------------------------------------------------------
    # Variant / reset
    # -------------------------------------------------------------------------

    def resolve_variant(self, query_variant: str | None = None, user_agent: str | None = None) -> tuple[str, VariantSource]:
        """
        Pick the visitor's A/B variant.

        Query pins and persists, a stored variant is reused, and otherwise the
        rollout id (or user agent) is hashed into a stable bucket.
        """
        from_query = normalize_variant(query_variant)
        if from_query:
            self.local.set(INSTALL_VARIANT_STORAGE_KEY, from_query)
            return from_query, "query"

        stored = normalize_variant(self.local.get(INSTALL_VARIANT_STORAGE_KEY))
        if stored:
            return stored, "storage"

        seed = self.local.get(ROLLOUT_ID_STORAGE_KEY) or user_agent or "fallback-ua"
        variant = INSTALL_VARIANTS[bucket_for(seed, len(INSTALL_VARIANTS))]
        self.local.set(INSTALL_VARIANT_STORAGE_KEY, variant)
        return variant, "deterministic"

    def reset(self) -> None:
        self.local.delete(IMPRESSION_STORAGE_KEY)
        self.local.delete(INSTALLED_STORAGE_KEY)
        self.session.delete(SESSION_PAGE_VIEWS_KEY)
        self.session.delete(SESSION_MINIMIZED_KEY)
        self.session.delete(SESSION_DISMISSED_KEY)

    def consume_debug_reset(self, value: str | None) -> bool:
        if not value or value.strip().lower() not in _DEBUG_RESET_VALUES:
            return False
        self.reset()
        logger.debug("Install prompt state reset via debug query")
        return True

    # -------------------------------------------------------------------------
    # Decision
    # -------------------------------------------------------------------------

    def can_show(self, enabled: bool, engaged: bool, pathname: str | None, standalone: bool) -> bool:
        if not enabled or not engaged or not is_route_eligible(pathname):
            return False
        if standalone:
            self.set_install_confirmed(True)
            return False
        if self.is_install_confirmed():
            return False
        if self.is_session_dismissed():
            return False
        if self.has_reached_impression_cap():
            return False
        return True

    def decide(self, signals: InstallSignals) -> InstallDecision:
        """
        Evaluate one page view.

        Side effects: may reset state (debug query), persist the variant and
        rollout id, count the page view, and record an impression when the
        banner is revealed un-minimized.
        """
        self.consume_debug_reset(signals.debug_reset_query)
        if signals.standalone:
            self.set_install_confirmed(True)

        rollout = evaluate_rollout(
            self.base_enabled,
            self.local,
            self.rollout_percent,
            signals.rollout_query,
        )
        variant, variant_source = self.resolve_variant(signals.variant_query, signals.user_agent)
        minimized = self.is_session_minimized()
        route_eligible = is_route_eligible(signals.pathname)

        page_views = 0
        if rollout.enabled and route_eligible:
            page_views = self.increment_page_views()

        engaged = is_engaged(page_views, signals.scroll_y, signals.dwell_ms)
        eligible = self.can_show(rollout.enabled, engaged, signals.pathname, signals.standalone)

        mode: InstallMode | None = None
        if eligible:
            if signals.install_prompt_available:
                mode = "prompt"
            elif signals.ios_device:
                mode = "ios_manual"

        emitted: list[PromptEvent] = []
        if mode is not None and not minimized:
            self.record_impression()
            emitted.append(PromptEvent(events.INSTALL_PROMPT_SHOWN, {
                "mode": mode,
                "path": normalize_pathname(signals.pathname),
                "variant": variant,
                "variantSource": variant_source,
            }))
            emitted.append(PromptEvent(events.install_variant_event(variant, "shown")))

        return InstallDecision(
            show=mode is not None,
            mode=mode,
            minimized=minimized and mode is not None,
            variant=variant,
            variant_source=variant_source,
            eligible=eligible,
            engaged=engaged,
            route_eligible=route_eligible,
            page_views=page_views,
            impressions=len(self.read_impressions()),
            rollout=rollout,
            ios_browser=detect_ios_browser(signals.user_agent),
            events=emitted,
        )

    def record_action(
        self,
        action: InstallAction,
        mode: str | None = None,
        reason: str | None = None,
        source: str | None = None,
    ) -> list[PromptEvent]:
        """
        Apply a banner interaction and return the telemetry it produces.
        """
        variant = normalize_variant(self.local.get(INSTALL_VARIANT_STORAGE_KEY)) or INSTALL_VARIANTS[0]
        detail: dict[str, Any] = {"mode": mode or "unknown", "variant": variant}
        if source:
            detail["source"] = source

        emitted: list[PromptEvent] = []

        if action == "cta_clicked":
            emitted.append(PromptEvent(events.INSTALL_CTA_CLICKED, detail))
            emitted.append(PromptEvent(events.install_variant_event(variant, "cta-clicked")))
            if mode == "ios_manual":
                emitted.append(PromptEvent(events.INSTALL_GUIDE_OPENED, detail))
        elif action == "guide_opened":
            emitted.append(PromptEvent(events.INSTALL_GUIDE_OPENED, detail))
        elif action == "minimized":
            self.set_session_minimized(True)
            emitted.append(PromptEvent(events.INSTALL_MINIMIZED, detail))
        elif action == "accepted":
            emitted.append(PromptEvent(events.INSTALL_ACCEPTED, detail))
            emitted.append(PromptEvent(events.install_variant_event(variant, "accepted")))
            self.set_install_confirmed(True)
            self.set_session_dismissed(True)
            self.set_session_minimized(False)
        elif action == "dismissed":
            emitted.append(PromptEvent(events.INSTALL_DISMISSED, {**detail, "reason": reason or "close_button"}))
            self.set_session_dismissed(True)
            self.set_session_minimized(False)
        elif action == "installed":
            self.set_install_confirmed(True)
            self.set_session_dismissed(True)
            self.set_session_minimized(False)
        else:
            raise ValueError(f"Unknown install action: {action}")

        return emitted
