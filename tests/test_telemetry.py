# =============================================================================
# tests/test_telemetry.py - Telemetry Summary & SLO Tests
# =============================================================================
# Unit tests for lib/pwa/telemetry_store.py:
# - Event normalization and retention
# - Percentiles, rates and funnels
# - SLO evaluation (warn within 10%, fail beyond)
#
# Run with: pytest tests/test_telemetry.py -v
# =============================================================================

import pytest

from lib.pwa.telemetry_store import (
    RETENTION_WINDOW_MS,
    StoredEvent,
    SummaryOptions,
    TelemetryStore,
    evaluate_slo,
    normalize_event,
    normalize_path,
    percentile,
    safe_rate,
    summarize,
)

NOW = 1_700_000_000_000
MINUTE_MS = 60_000


@pytest.fixture
def thresholds():
    return {
        "minSamples": 1,
        "lcpP75Ms": 2500,
        "inpP75Ms": 200,
        "clsP75": 0.1,
        "fcpP75Ms": 1800,
        "ttfbP75Ms": 800,
        "installAcceptRateMin": 0.2,
        "pushEnableRateMin": 0.25,
        "swRegistrationFailureRateMax": 0.05,
        "poorVitalsRateMax": 0.15,
    }


def vital(name, value, rating="good", ts=NOW - MINUTE_MS, path="/", display_mode="browser"):
    return StoredEvent(
        type="web_vital",
        name=name,
        ts=ts,
        path=path,
        value=value,
        rating=rating,
        display_mode=display_mode,
    )


def lifecycle(name, count=1, ts=NOW - MINUTE_MS, path="/", display_mode="standalone"):
    return [
        StoredEvent(
            type="pwa_lifecycle",
            name=name,
            ts=ts,
            path=path,
            value=None,
            rating=None,
            display_mode=display_mode,
        )
        for _ in range(count)
    ]


# =============================================================================
# Math helpers
# =============================================================================

class TestMath:

    def test_percentile_nearest_rank(self):
        values = [400, 100, 300, 200]
        assert percentile(values, 75) == 300
        assert percentile(values, 95) == 400
        assert percentile([], 75) is None

    def test_safe_rate(self):
        assert safe_rate(1, 3) == 0.3333
        assert safe_rate(1, 0) is None


# =============================================================================
# Normalization
# =============================================================================

class TestNormalizeEvent:

    def test_normalizes_fields(self):
        event = normalize_event(
            {"type": "web_vital", "name": "  LCP ", "ts": NOW, "path": "products", "value": 1200, "rating": "meh"},
            display_mode="weird",
            now=NOW,
        )

        assert event.name == "lcp"
        assert event.path == "/products"
        assert event.rating is None
        assert event.display_mode == "unknown"
        assert event.value == 1200.0

    def test_rejects_unknown_type(self):
        assert normalize_event({"type": "click", "name": "x", "ts": NOW}, now=NOW) is None

    def test_rejects_out_of_window_timestamps(self):
        too_old = {"type": "web_vital", "name": "lcp", "ts": NOW - RETENTION_WINDOW_MS - 1}
        too_new = {"type": "web_vital", "name": "lcp", "ts": NOW + 121_000}
        assert normalize_event(too_old, now=NOW) is None
        assert normalize_event(too_new, now=NOW) is None

    def test_missing_timestamp_means_now(self):
        event = normalize_event({"type": "pwa_lifecycle", "name": "sw_registered"}, now=NOW)
        assert event.ts == NOW

    def test_normalize_path(self):
        assert normalize_path(None) == "/"
        assert normalize_path("   ") == "/"
        assert len(normalize_path("/" + "a" * 500)) == 180


# =============================================================================
# Summaries
# =============================================================================

class TestSummarize:

    def test_web_vital_stats(self, thresholds):
        events = [
            vital("lcp", 1000),
            vital("lcp", 2000, rating="needs-improvement"),
            vital("lcp", 3000, rating="poor"),
            vital("lcp", 4000, rating="poor"),
        ]

        summary = summarize(events, SummaryOptions(), thresholds, now=NOW)

        lcp = summary["webVitals"]["lcp"]
        assert lcp["count"] == 4
        assert lcp["p75"] == 3000
        assert lcp["average"] == 2500
        assert lcp["poorRate"] == 0.5
        assert lcp["ratings"] == {"good": 1, "needsImprovement": 1, "poor": 2}
        assert summary["totals"]["poorVitalsRate"] == 0.5
        assert summary["webVitals"]["inp"]["p75"] is None

    def test_window_excludes_older_events(self, thresholds):
        events = [vital("lcp", 1000, ts=NOW - 61 * MINUTE_MS), vital("lcp", 1500)]

        summary = summarize(events, SummaryOptions(window_minutes=60), thresholds, now=NOW)

        assert summary["totals"]["events"] == 1
        assert summary["windowMinutes"] == 60

    def test_window_is_clamped(self, thresholds):
        summary = summarize([], SummaryOptions(window_minutes=1), thresholds, now=NOW)
        assert summary["windowMinutes"] == 5

    def test_display_mode_and_path_filters(self, thresholds):
        events = [
            vital("lcp", 1000, path="/products/1", display_mode="standalone"),
            vital("lcp", 1000, path="/products/2", display_mode="browser"),
            vital("lcp", 1000, path="/chat", display_mode="standalone"),
        ]

        summary = summarize(
            events,
            SummaryOptions(display_mode="standalone", path_prefix="products"),
            thresholds,
            now=NOW,
        )

        assert summary["totals"]["events"] == 1
        assert summary["filter"] == {"displayMode": "standalone", "pathPrefix": "/products"}

    def test_funnels(self, thresholds):
        events = (
            lifecycle("install_prompt_shown", 4)
            + lifecycle("install_accepted", 1)
            + lifecycle("install_dismissed", 2)
            + lifecycle("push_prompt_shown", 2)
            + lifecycle("push_enabled", 1)
            + lifecycle("sw_registered", 19)
            + lifecycle("sw_registration_failed", 1)
        )

        summary = summarize(events, SummaryOptions(), thresholds, now=NOW)

        funnels = summary["funnels"]
        assert funnels["install"] == {"shown": 4, "accepted": 1, "dismissed": 2, "acceptanceRate": 0.25}
        assert funnels["push"]["enableRate"] == 0.5
        assert funnels["serviceWorker"]["failureRate"] == 0.05
        assert summary["displayModeBreakdown"]["standalone"] == len(events)
        assert summary["status"] == "pass"


# =============================================================================
# SLO evaluation
# =============================================================================

class TestEvaluateSlo:

    def test_within_ten_percent_is_warning(self, thresholds):
        summary = summarize([vital("lcp", 2600)], SummaryOptions(), thresholds, now=NOW)

        alert = next(a for a in summary["alerts"] if a["key"] == "lcp-p75")
        assert alert["severity"] == "warn"
        assert alert["comparator"] == "<="
        assert summary["status"] == "warn"

    def test_beyond_ten_percent_fails(self, thresholds):
        summary = summarize([vital("lcp", 3000)], SummaryOptions(), thresholds, now=NOW)
        assert summary["status"] == "fail"

    def test_low_sample_metrics_are_skipped(self, thresholds):
        thresholds["minSamples"] = 5
        summary = summarize([vital("lcp", 9000, rating="poor")], SummaryOptions(), thresholds, now=NOW)

        assert summary["alerts"] == []
        assert summary["status"] == "pass"

    def test_lower_bound_rates(self, thresholds):
        events = lifecycle("install_prompt_shown", 10) + lifecycle("install_accepted", 1)

        alerts, status = evaluate_slo(summarize(events, SummaryOptions(), thresholds, now=NOW))

        assert [a["key"] for a in alerts] == ["install-accept-rate"]
        assert alerts[0]["comparator"] == ">="
        assert status == "fail"

    def test_empty_summary_passes(self, thresholds):
        summary = summarize([], SummaryOptions(), thresholds, now=NOW)
        assert summary["alerts"] == []
        assert summary["status"] == "pass"
        assert summary["totals"]["poorVitalsRate"] is None


# =============================================================================
# In-memory store
# =============================================================================

class TestTelemetryStore:

    def test_record_batch_counts_kept_events(self, thresholds):
        store = TelemetryStore()
        kept = store.record_batch(
            [
                {"type": "web_vital", "name": "lcp", "ts": NOW, "path": "/", "value": 1200},
                {"type": "bogus", "name": "x", "ts": NOW, "path": "/"},
            ],
            display_mode="browser",
            now=NOW,
        )

        assert kept == 1
        assert store.summary(SummaryOptions(), thresholds, now=NOW)["totals"]["webVitals"] == 1

    def test_store_is_bounded(self):
        store = TelemetryStore(max_events=3)
        store.record_batch(
            [{"type": "pwa_lifecycle", "name": f"e{i}", "ts": NOW, "path": "/"} for i in range(5)],
            now=NOW,
        )

        assert [event.name for event in store.events()] == ["e2", "e3", "e4"]

    def test_clear(self):
        store = TelemetryStore()
        store.record_batch([{"type": "pwa_lifecycle", "name": "x", "ts": NOW, "path": "/"}], now=NOW)
        store.clear()
        assert store.events() == []
