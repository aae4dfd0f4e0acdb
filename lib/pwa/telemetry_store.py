# =============================================================================
# lib/pwa/telemetry_store.py - PWA Telemetry Store & SLO Summary
# =============================================================================
# Keeps the last 24h of web-vital and lifecycle events in process memory and
# summarizes them into percentiles, funnels and SLO alerts.
#
# The summary shape is part of the JSON API (admin dashboard, alert webhook),
# so its keys are camelCase.
#
# Usage:
#   telemetry_store.record_batch(events, display_mode="browser")
#   summary = telemetry_store.summary(SummaryOptions(window_minutes=60))
# =============================================================================

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping

from lib.utils import iso_from_ms, now_ms

EventType = Literal["web_vital", "pwa_lifecycle"]
DisplayMode = Literal["standalone", "browser", "unknown"]
Severity = Literal["pass", "warn", "fail"]

EVENT_TYPES = ("web_vital", "pwa_lifecycle")
DISPLAY_MODES = ("standalone", "browser", "unknown")
RATINGS = ("good", "needs-improvement", "poor")
VITAL_NAMES = ("lcp", "inp", "cls", "fcp", "ttfb")

RETENTION_WINDOW_MS = 24 * 60 * 60 * 1000
FUTURE_SKEW_MS = 120_000
MAX_STORED_EVENTS = 60_000
MAX_EVENT_NAME = 64
MAX_PATH = 180
PRUNE_INTERVAL_MS = 10_000
MIN_WINDOW_MINUTES = 5
MAX_WINDOW_MINUTES = 24 * 60


@dataclass
class StoredEvent:
    type: EventType
    name: str
    ts: float
    path: str
    value: float | None
    rating: str | None
    display_mode: DisplayMode


@dataclass
class SummaryOptions:
    window_minutes: float = 60
    display_mode: str = "all"
    path_prefix: str | None = None


# =============================================================================
# Normalization
# =============================================================================

def normalize_path(value: str | None) -> str:
    normalized = (value or "").strip()
    if not normalized:
        return "/"
    if not normalized.startswith("/"):
        return f"/{normalized[:MAX_PATH - 1]}"
    return normalized[:MAX_PATH]


def normalize_name(value: str) -> str:
    return value.strip()[:MAX_EVENT_NAME].lower()


def normalize_display_mode(value: str | None) -> DisplayMode:
    return value if value in DISPLAY_MODES else "unknown"


def normalize_window_minutes(value: float) -> int:
    return max(MIN_WINDOW_MINUTES, min(MAX_WINDOW_MINUTES, math.floor(value)))


def normalize_path_prefix(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return normalize_path(value)


def _finite(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def normalize_event(
    event: Mapping[str, Any],
    display_mode: str | None = None,
    now: int | None = None,
    retention_ms: int = RETENTION_WINDOW_MS,
) -> StoredEvent | None:
    """
    Turn an ingested event dict into a StoredEvent.

    Returns None for unknown types or timestamps outside
    [now - retention, now + 2 minutes].
    """
    now = now_ms() if now is None else now
    if event.get("type") not in EVENT_TYPES:
        return None

    ts = _finite(event.get("ts"))
    ts = now if ts is None else ts
    if ts < now - retention_ms or ts > now + FUTURE_SKEW_MS:
        return None

    rating = event.get("rating")
    return StoredEvent(
        type=event["type"],
        name=normalize_name(str(event.get("name") or "")),
        ts=ts,
        path=normalize_path(event.get("path")),
        value=_finite(event.get("value")),
        rating=rating if rating in RATINGS else None,
        display_mode=normalize_display_mode(display_mode),
    )


# =============================================================================
# Math helpers
# =============================================================================

def safe_rate(numerator: float, denominator: float) -> float | None:
    if denominator <= 0:
        return None
    return round(numerator / denominator, 4)


def percentile(values: list[float], p: float) -> float | None:
    if not values:
        return None
    ordered = sorted(values)
    index = math.ceil((p / 100) * len(ordered)) - 1
    bounded = max(0, min(len(ordered) - 1, index))
    return round(ordered[bounded], 3)


def average(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 3)


def vital_summary(events: Iterable[StoredEvent], vital: str) -> dict[str, Any]:
    values: list[float] = []
    ratings = {"good": 0, "needsImprovement": 0, "poor": 0}

    for event in events:
        if event.type != "web_vital" or event.name != vital:
            continue
        if event.value is not None:
            values.append(event.value)
        if event.rating == "good":
            ratings["good"] += 1
        elif event.rating == "needs-improvement":
            ratings["needsImprovement"] += 1
        elif event.rating == "poor":
            ratings["poor"] += 1

    count = len(values)
    return {
        "count": count,
        "p75": percentile(values, 75),
        "p95": percentile(values, 95),
        "average": average(values),
        "poorRate": safe_rate(ratings["poor"], count),
        "ratings": ratings,
    }


# =============================================================================
# SLO evaluation
# =============================================================================

def evaluate_slo(summary: Mapping[str, Any]) -> tuple[list[dict[str, Any]], Severity]:
    """
    Compare a summary against its thresholds.

    Metrics with no value or fewer samples than minSamples are skipped.
    Within 10% of the target is a warning, beyond that a failure.

    Returns:
        (alerts, status) where status is the worst alert severity or "pass"
    """
    thresholds = summary["thresholds"]
    min_samples = thresholds["minSamples"]
    alerts: list[dict[str, Any]] = []

    def upper_bound(key: str, label: str, value: float | None, target: float, samples: int) -> None:
        if value is None or samples < min_samples or value <= target:
            return
        alerts.append({
            "key": key,
            "label": label,
            "severity": "warn" if value <= target * 1.1 else "fail",
            "current": round(value, 4),
            "target": round(target, 4),
            "comparator": "<=",
        })

    def lower_bound(key: str, label: str, value: float | None, target: float, samples: int) -> None:
        if value is None or samples < min_samples or value >= target:
            return
        alerts.append({
            "key": key,
            "label": label,
            "severity": "warn" if value >= target * 0.9 else "fail",
            "current": round(value, 4),
            "target": round(target, 4),
            "comparator": ">=",
        })

    vitals = summary["webVitals"]
    funnels = summary["funnels"]

    upper_bound("lcp-p75", "LCP p75", vitals["lcp"]["p75"], thresholds["lcpP75Ms"], vitals["lcp"]["count"])
    upper_bound("inp-p75", "INP p75", vitals["inp"]["p75"], thresholds["inpP75Ms"], vitals["inp"]["count"])
    upper_bound("cls-p75", "CLS p75", vitals["cls"]["p75"], thresholds["clsP75"], vitals["cls"]["count"])
    upper_bound("fcp-p75", "FCP p75", vitals["fcp"]["p75"], thresholds["fcpP75Ms"], vitals["fcp"]["count"])
    upper_bound("ttfb-p75", "TTFB p75", vitals["ttfb"]["p75"], thresholds["ttfbP75Ms"], vitals["ttfb"]["count"])
    upper_bound(
        "poor-vitals-rate",
        "Poor vitals rate",
        summary["totals"]["poorVitalsRate"],
        thresholds["poorVitalsRateMax"],
        summary["totals"]["webVitals"],
    )
    lower_bound(
        "install-accept-rate",
        "Install accept rate",
        funnels["install"]["acceptanceRate"],
        thresholds["installAcceptRateMin"],
        funnels["install"]["shown"],
    )
    lower_bound(
        "push-enable-rate",
        "Push enable rate",
        funnels["push"]["enableRate"],
        thresholds["pushEnableRateMin"],
        funnels["push"]["shown"],
    )
    sw = funnels["serviceWorker"]
    upper_bound(
        "sw-registration-failure-rate",
        "SW registration failure rate",
        sw["failureRate"],
        thresholds["swRegistrationFailureRateMax"],
        sw["registered"] + sw["registrationFailed"],
    )

    status: Severity = "pass"
    if any(alert["severity"] == "fail" for alert in alerts):
        status = "fail"
    elif any(alert["severity"] == "warn" for alert in alerts):
        status = "warn"
    return alerts, status


# =============================================================================
# Summary
# =============================================================================

def summarize(
    events: Iterable[StoredEvent],
    options: SummaryOptions,
    thresholds: Mapping[str, float],
    now: int | None = None,
) -> dict[str, Any]:
    """
    Build the telemetry summary for a time window.

    Args:
        events: Stored events (any order)
        options: Window, display mode ("all" for every mode) and path prefix
        thresholds: SLO targets (see Settings.slo_thresholds)
        now: Reference time in epoch ms

    Returns:
        Summary dict including alerts and overall status
    """
    now = now_ms() if now is None else now
    window_minutes = normalize_window_minutes(options.window_minutes)
    window_start = now - window_minutes * 60 * 1000
    path_prefix = normalize_path_prefix(options.path_prefix)

    filtered = [
        event for event in events
        if event.ts >= window_start
        and (options.display_mode == "all" or event.display_mode == options.display_mode)
        and (path_prefix is None or event.path.startswith(path_prefix))
    ]

    lifecycle: dict[str, int] = {}
    breakdown = {"browser": 0, "standalone": 0, "unknown": 0}
    web_vitals_count = 0
    lifecycle_count = 0
    rated = 0
    poor = 0

    for event in filtered:
        breakdown[event.display_mode if event.display_mode in breakdown else "unknown"] += 1
        if event.type == "web_vital":
            web_vitals_count += 1
            if event.rating in RATINGS:
                rated += 1
            if event.rating == "poor":
                poor += 1
        elif event.type == "pwa_lifecycle":
            lifecycle_count += 1
            lifecycle[event.name] = lifecycle.get(event.name, 0) + 1

    install_shown = lifecycle.get("install_prompt_shown", 0)
    install_accepted = lifecycle.get("install_accepted", 0)
    push_shown = lifecycle.get("push_prompt_shown", 0)
    push_enabled = lifecycle.get("push_enabled", 0)
    sw_registered = lifecycle.get("sw_registered", 0)
    sw_failed = lifecycle.get("sw_registration_failed", 0)

    summary: dict[str, Any] = {
        "generatedAt": iso_from_ms(now),
        "windowMinutes": window_minutes,
        "filter": {
            "displayMode": options.display_mode,
            "pathPrefix": path_prefix,
        },
        "totals": {
            "events": len(filtered),
            "webVitals": web_vitals_count,
            "lifecycle": lifecycle_count,
            "eventsPerMinute": round(len(filtered) / window_minutes, 2),
            "poorVitalsRate": safe_rate(poor, rated),
        },
        "displayModeBreakdown": breakdown,
        "webVitals": {name: vital_summary(filtered, name) for name in VITAL_NAMES},
        "lifecycle": lifecycle,
        "funnels": {
            "install": {
                "shown": install_shown,
                "accepted": install_accepted,
                "dismissed": lifecycle.get("install_dismissed", 0),
                "acceptanceRate": safe_rate(install_accepted, install_shown),
            },
            "push": {
                "shown": push_shown,
                "enabled": push_enabled,
                "dismissed": lifecycle.get("push_dismissed", 0),
                "denied": lifecycle.get("push_permission_denied", 0),
                "failed": lifecycle.get("push_enable_failed", 0),
                "enableRate": safe_rate(push_enabled, push_shown),
            },
            "serviceWorker": {
                "registered": sw_registered,
                "registrationFailed": sw_failed,
                "failureRate": safe_rate(sw_failed, sw_registered + sw_failed),
            },
        },
        "thresholds": dict(thresholds),
    }

    alerts, status = evaluate_slo(summary)
    summary["alerts"] = alerts
    summary["status"] = status
    return summary


# =============================================================================
# In-memory store
# =============================================================================

class TelemetryStore:
    """Process-local ring of recent telemetry events."""

    def __init__(self, max_events: int = MAX_STORED_EVENTS) -> None:
        self._events: list[StoredEvent] = []
        self._last_pruned_at = 0
        self._max_events = max_events
        self._lock = threading.Lock()

    def _prune(self, now: int) -> None:
        if self._last_pruned_at > now - PRUNE_INTERVAL_MS and len(self._events) <= self._max_events:
            return
        cutoff = now - RETENTION_WINDOW_MS
        self._events = [event for event in self._events if event.ts >= cutoff]
        overflow = len(self._events) - self._max_events
        if overflow > 0:
            del self._events[:overflow]
        self._last_pruned_at = now

    def record_batch(
        self,
        events: Iterable[Mapping[str, Any]],
        display_mode: str | None = None,
        now: int | None = None,
    ) -> int:
        """
        Normalize and store a batch.

        Returns:
            Number of events kept
        """
        now = now_ms() if now is None else now
        kept = 0
        with self._lock:
            for event in events:
                normalized = normalize_event(event, display_mode, now)
                if normalized is None:
                    continue
                self._events.append(normalized)
                kept += 1
            self._prune(now)
        return kept

    def events(self) -> list[StoredEvent]:
        with self._lock:
            return list(self._events)

    def summary(
        self,
        options: SummaryOptions,
        thresholds: Mapping[str, float],
        now: int | None = None,
    ) -> dict[str, Any]:
        now = now_ms() if now is None else now
        with self._lock:
            self._prune(now)
            snapshot = list(self._events)
        return summarize(snapshot, options, thresholds, now)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._last_pruned_at = 0


# Shared store for the whole process
telemetry_store = TelemetryStore()
