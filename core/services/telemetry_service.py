# =============================================================================
# core/services/telemetry_service.py - PWA Telemetry Persistence
# =============================================================================
# Durable side of PWA telemetry, backed by the pwa_telemetry_events table:
# - persist_batch: insert normalized events
# - durable_summary: summarize rows for a window (None when unavailable)
# - cleanup_retention: delete rows older than the retention window
# - summary_with_source: durable summary, falling back to process memory
#
# Everything here is best-effort: database errors are logged and reported
# in the return value, never raised to the request.
# =============================================================================

import logging
from datetime import timedelta
from typing import Any, Iterable, Mapping

from app.config import settings
from lib.pwa.telemetry_store import (
    EVENT_TYPES,
    RATINGS,
    StoredEvent,
    SummaryOptions,
    normalize_display_mode,
    normalize_event,
    normalize_name,
    normalize_path,
    normalize_path_prefix,
    normalize_window_minutes,
    summarize,
    telemetry_store,
)
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta, iso_from_ms, ms_from_iso, now_ms

logger = logging.getLogger(__name__)

TELEMETRY_TABLE = "pwa_telemetry_events"
TELEMETRY_COLUMNS = "event_type, name, event_ts, path, value, rating, display_mode"


def normalize_row(row: Mapping[str, Any]) -> StoredEvent | None:
    """Convert a pwa_telemetry_events row back into a StoredEvent."""
    if row.get("event_type") not in EVENT_TYPES:
        return None

    ts = ms_from_iso(row.get("event_ts"))
    if ts is None:
        return None

    value = row.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        value = None

    rating = row.get("rating")
    return StoredEvent(
        type=row["event_type"],
        name=normalize_name(row.get("name") or ""),
        ts=ts,
        path=normalize_path(row.get("path") or "/"),
        value=float(value) if value is not None else None,
        rating=rating if rating in RATINGS else None,
        display_mode=normalize_display_mode(row.get("display_mode")),
    )


class TelemetryService:
    """
    Service for durable PWA telemetry.
    """

    @staticmethod
    def is_durable_enabled() -> bool:
        return settings.PWA_TELEMETRY_DURABLE_ENABLED

    @staticmethod
    def persist_batch(
        events: Iterable[Mapping[str, Any]],
        display_mode: str | None = None,
    ) -> dict[str, Any]:
        """
        Insert a telemetry batch into pwa_telemetry_events.

        Args:
            events: Ingested event dicts
            display_mode: Context display mode shared by the batch

        Returns:
            {"ok", "persisted", "skipped"} plus "error" on failure
        """
        if not TelemetryService.is_durable_enabled():
            return {"ok": False, "persisted": 0, "skipped": True}

        now = now_ms()
        rows = []
        for event in events:
            normalized = normalize_event(event, display_mode, now)
            if normalized is None:
                continue
            rows.append({
                "event_type": normalized.type,
                "name": normalized.name,
                "event_ts": iso_from_ms(normalized.ts),
                "path": normalized.path,
                "value": normalized.value,
                "rating": normalized.rating,
                "display_mode": normalized.display_mode,
            })

        if not rows:
            return {"ok": True, "persisted": 0, "skipped": False}

        try:
            SupabaseClient.get_client().table(TELEMETRY_TABLE).insert(rows).execute()
        except Exception as e:
            meta = error_meta(e)
            logger.error(f"Failed to persist durable PWA telemetry events: {meta['message']}")
            return {"ok": False, "persisted": 0, "skipped": False, "error": meta["message"]}

        return {"ok": True, "persisted": len(rows), "skipped": False}

    @staticmethod
    def durable_summary(options: SummaryOptions) -> dict[str, Any] | None:
        """
        Summarize durable rows for a window.

        Returns:
            Summary dict, or None when durable telemetry is off or the query fails
        """
        if not TelemetryService.is_durable_enabled():
            return None

        now = now_ms()
        window_minutes = normalize_window_minutes(options.window_minutes)
        window_start = iso_from_ms(now - window_minutes * 60 * 1000)
        path_prefix = normalize_path_prefix(options.path_prefix)

        try:
            query = (
                SupabaseClient.get_client()
                .table(TELEMETRY_TABLE)
                .select(TELEMETRY_COLUMNS)
                .gte("event_ts", window_start)
                .order("event_ts", desc=True)
                .limit(settings.PWA_TELEMETRY_SUMMARY_MAX_ROWS)
            )
            if options.display_mode != "all":
                query = query.eq("display_mode", options.display_mode)
            if path_prefix:
                query = query.like("path", f"{path_prefix}%")

            response = query.execute()
        except Exception as e:
            logger.error(f"Failed to load durable PWA telemetry summary data: {error_meta(e)['message']}")
            return None

        stored = [event for event in (normalize_row(row) for row in response.data or []) if event]
        return summarize(stored, options, settings.slo_thresholds, now)

    @staticmethod
    def cleanup_retention() -> dict[str, Any]:
        """
        Delete rows older than PWA_TELEMETRY_RETENTION_DAYS.

        Returns:
            {"ok", "skipped"} plus "cutoffIso" or "error"
        """
        if not TelemetryService.is_durable_enabled():
            return {"ok": False, "skipped": True}

        retention_ms = int(timedelta(days=settings.PWA_TELEMETRY_RETENTION_DAYS).total_seconds() * 1000)
        cutoff_iso = iso_from_ms(now_ms() - retention_ms)

        try:
            SupabaseClient.get_client().table(TELEMETRY_TABLE).delete().lt("event_ts", cutoff_iso).execute()
        except Exception as e:
            meta = error_meta(e)
            logger.error(f"Failed to cleanup durable PWA telemetry events: {meta['message']}")
            return {"ok": False, "skipped": False, "error": meta["message"]}

        logger.info(f"Cleaned up PWA telemetry older than {cutoff_iso}")
        return {"ok": True, "skipped": False, "cutoffIso": cutoff_iso}

    @staticmethod
    def memory_summary(options: SummaryOptions) -> dict[str, Any]:
        return telemetry_store.summary(options, settings.slo_thresholds)

    @staticmethod
    def summary_with_source(options: SummaryOptions) -> tuple[dict[str, Any], str]:
        """
        Durable summary when available, otherwise the in-memory one.

        Returns:
            (summary, source) where source is "durable" or "memory"
        """
        summary = TelemetryService.durable_summary(options)
        if summary is not None:
            return summary, "durable"
        return TelemetryService.memory_summary(options), "memory"
