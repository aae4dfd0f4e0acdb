# =============================================================================
# tests/test_slo_alerts.py - SLO Alert Dispatch Tests
# =============================================================================
# Tests for core/services/slo_alert_service.py with Supabase, the telemetry
# service and the webhook mocked out.
#
# Run with: pytest tests/test_slo_alerts.py -v
# =============================================================================

from unittest.mock import MagicMock, patch

import httpx
import pytest

from app.config import settings
from core.services.slo_alert_service import (
    SloAlertService,
    alert_fingerprint,
    build_webhook_payload,
    normalize_dispatch_limit,
    normalize_display_mode,
    normalize_path_prefix,
    normalize_window_minutes,
)

FAILING_ALERT = {
    "key": "lcp-p75",
    "label": "LCP p75",
    "severity": "fail",
    "current": 3200.0,
    "target": 2500,
    "comparator": "<=",
}


def make_summary(status="fail", alerts=None):
    return {
        "generatedAt": "2026-01-01T00:00:00.000Z",
        "status": status,
        "alerts": [FAILING_ALERT] if alerts is None else alerts,
        "filter": {"displayMode": "all", "pathPrefix": None},
        "totals": {"events": 40, "webVitals": 35, "lifecycle": 5},
        "funnels": {},
        "thresholds": {},
    }


# =============================================================================
# Option normalization
# =============================================================================

class TestNormalization:

    def test_window_minutes(self):
        assert normalize_window_minutes(None) == 60
        assert normalize_window_minutes("abc") == 60
        assert normalize_window_minutes("2") == 5
        assert normalize_window_minutes(99_999) == 1440
        assert normalize_window_minutes("90.7") == 90

    def test_display_mode(self):
        assert normalize_display_mode("standalone") == "standalone"
        assert normalize_display_mode("everything") == "all"
        assert normalize_display_mode(None) == "all"

    def test_path_prefix(self):
        assert normalize_path_prefix("  ") is None
        assert normalize_path_prefix("products") == "/products"
        assert normalize_path_prefix("/" + "x" * 300) == "/" + "x" * 179

    def test_dispatch_limit(self):
        assert normalize_dispatch_limit(None) == 10
        assert normalize_dispatch_limit("0") == 1
        assert normalize_dispatch_limit("500") == 50
        assert normalize_dispatch_limit("nan") == 10


# =============================================================================
# Fingerprint & payload
# =============================================================================

class TestFingerprint:

    def test_integer_like_floats_hash_the_same(self):
        as_float = alert_fingerprint(60, "all", None, "fail", [dict(FAILING_ALERT, current=3200.0)])
        as_int = alert_fingerprint(60, "all", None, "fail", [dict(FAILING_ALERT, current=3200)])
        assert as_float == as_int
        assert len(as_float) == 64

    def test_filter_changes_fingerprint(self):
        base = alert_fingerprint(60, "all", None, "fail", [FAILING_ALERT])
        assert base != alert_fingerprint(30, "all", None, "fail", [FAILING_ALERT])
        assert base != alert_fingerprint(60, "standalone", None, "fail", [FAILING_ALERT])
        assert base != alert_fingerprint(60, "all", "/products", "fail", [FAILING_ALERT])

    def test_webhook_text(self):
        payload = build_webhook_payload(60, "all", "/products", make_summary())

        assert payload["event"] == "pwa_slo_alert"
        lines = payload["text"].split("\n")
        assert lines[0] == "[PWA SLO FAIL] 1 active alert(s)"
        assert lines[2] == "Filter: mode=all path=/products"
        assert lines[-1] == "- LCP p75: 3200 <= 2500 (fail)"


# =============================================================================
# run_check
# =============================================================================

class TestRunCheck:

    @pytest.fixture
    def mocks(self):
        with patch("core.services.slo_alert_service.SloAlertService._load_summary") as load_summary, \
                patch("core.services.slo_alert_service.SloAlertService.record_dispatch") as record_dispatch, \
                patch("core.services.slo_alert_service.SloAlertService.has_recent_successful_dispatch") as recent, \
                patch("core.services.slo_alert_service.httpx.post") as post, \
                patch.object(settings, "PWA_SLO_ALERT_WEBHOOK_URL", "https://hooks.example.com/pwa"):
            load_summary.return_value = (make_summary(), "memory")
            recent.return_value = False
            post.return_value = MagicMock(is_success=True, status_code=200, text="ok")
            yield {
                "load_summary": load_summary,
                "record_dispatch": record_dispatch,
                "recent": recent,
                "post": post,
            }

    def delivery_status(self, mocks):
        return mocks["record_dispatch"].call_args.kwargs["delivery_status"]

    def test_sends_alert(self, mocks):
        result = SloAlertService.run_check(triggered_by="scheduler")

        assert result["ok"] is True
        assert result["status"] == "sent"
        assert result["alertCount"] == 1
        assert result["source"] == "memory"
        mocks["post"].assert_called_once()
        assert self.delivery_status(mocks) == "sent"
        assert mocks["record_dispatch"].call_args.kwargs["triggered_by"] == "scheduler"

    def test_passing_summary_is_skipped(self, mocks):
        mocks["load_summary"].return_value = (make_summary(status="pass", alerts=[]), "durable")

        result = SloAlertService.run_check()

        assert result == {
            "fingerprint": result["fingerprint"],
            "alertCount": 0,
            "summaryStatus": "pass",
            "source": "durable",
            "ok": True,
            "status": "skipped",
            "reason": "no_active_alerts",
        }
        mocks["post"].assert_not_called()
        assert self.delivery_status(mocks) == "skipped_pass"

    def test_missing_webhook_is_an_error(self, mocks):
        with patch.object(settings, "PWA_SLO_ALERT_WEBHOOK_URL", None):
            result = SloAlertService.run_check()

        assert result["ok"] is False
        assert result["reason"] == "missing_webhook_config"
        assert self.delivery_status(mocks) == "skipped_config"

    def test_duplicate_within_cooldown(self, mocks):
        mocks["recent"].return_value = True

        result = SloAlertService.run_check()

        assert result["status"] == "skipped"
        assert result["reason"] == "duplicate_within_cooldown"
        mocks["post"].assert_not_called()
        assert self.delivery_status(mocks) == "skipped_duplicate"

    def test_force_skips_dedupe(self, mocks):
        mocks["recent"].return_value = True

        result = SloAlertService.run_check(force=True)

        assert result["status"] == "sent"
        mocks["recent"].assert_not_called()

    def test_webhook_rejection(self, mocks):
        mocks["post"].return_value = MagicMock(is_success=False, status_code=500, text="boom")

        result = SloAlertService.run_check()

        assert result["ok"] is False
        assert result["status"] == "error"
        assert result["reason"] == "Webhook returned 500: boom"
        assert self.delivery_status(mocks) == "failed"

    def test_webhook_network_error(self, mocks):
        mocks["post"].side_effect = httpx.ConnectTimeout("timed out")

        result = SloAlertService.run_check()

        assert result["status"] == "error"
        assert result["reason"] == "timed out"

    def test_blank_triggered_by_becomes_manual(self, mocks):
        SloAlertService.run_check(triggered_by="  ")
        assert mocks["record_dispatch"].call_args.kwargs["triggered_by"] == "manual"


# =============================================================================
# Dispatch history
# =============================================================================

class TestRecentDispatches:

    def test_rows_are_camel_cased(self):
        with patch("core.services.slo_alert_service.SupabaseClient") as mock_client:
            query = mock_client.get_client.return_value.table.return_value
            query.select.return_value.order.return_value.limit.return_value.execute.return_value = MagicMock(
                data=[{
                    "created_at": "2026-01-01T00:00:00Z",
                    "delivery_status": "sent",
                    "summary_status": "fail",
                    "alert_count": 2,
                    "triggered_by": "scheduler",
                    "delivery_error": None,
                }]
            )

            rows = SloAlertService.recent_dispatches(5)

        assert rows == [{
            "createdAt": "2026-01-01T00:00:00Z",
            "deliveryStatus": "sent",
            "summaryStatus": "fail",
            "alertCount": 2,
            "triggeredBy": "scheduler",
            "deliveryError": None,
        }]
        query.select.return_value.order.return_value.limit.assert_called_once_with(5)
