# =============================================================================
# tests/test_routes.py - API Route Tests
# =============================================================================
# End-to-end tests through the FastAPI TestClient. Supabase-backed services
# are patched at the router import site; PWA state and telemetry run against
# the in-memory backends.
#
# Rate limits are keyed by client IP, which TestClient doesn't send, so
# tests that exercise them set x-forwarded-for.
#
# Run with: pytest tests/test_routes.py -v
# =============================================================================

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from app.config import settings
from core.models.contacts import AppContacts
from core.models.review import ReviewList
from lib.pwa.telemetry_store import SummaryOptions, telemetry_store
from lib.utils import now_ms

EVIL_ORIGIN = {"origin": "https://evil.example.com"}
CLIENT_IP = {"x-forwarded-for": "203.0.113.10"}
ALERT_SECRET = {"authorization": "Bearer test-alert-secret"}

SENT_RESULT = {
    "ok": True,
    "status": "sent",
    "fingerprint": "abc",
    "alertCount": 1,
    "summaryStatus": "fail",
    "source": "memory",
}
FAILED_RESULT = {
    "ok": False,
    "status": "error",
    "reason": "Webhook returned 500: boom",
    "fingerprint": "abc",
    "alertCount": 1,
    "summaryStatus": "fail",
    "source": "memory",
}


def install_body(**overrides):
    body = {
        "visitorId": "visitor-1",
        "sessionId": "session-1",
        "pathname": "/products",
        "scrollY": 400,
        "installPromptAvailable": True,
    }
    body.update(overrides)
    return body


# =============================================================================
# Health
# =============================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["environment"] == "development"

    def test_liveness(self, client):
        assert client.get("/api/health/live").json()["status"] == "alive"

    def test_readiness_degraded_when_bucket_missing(self, client):
        with patch("app.routers.health.SupabaseClient.ping"), \
             patch("app.routers.health.SupabaseClient.check_bucket", side_effect=RuntimeError("Bucket not found")):
            response = client.get("/api/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["checks"]["database"] == "healthy"
        assert data["checks"]["storage"] == "unhealthy: Bucket not found"
        assert data["checks"]["pwaState"] == "healthy"

    def test_root(self, client):
        assert client.get("/").status_code == 200


# =============================================================================
# Guards
# =============================================================================

class TestGuards:

    def test_foreign_origin_is_rejected(self, client):
        response = client.post("/api/pwa/install/decision", json=install_body(), headers=EVIL_ORIGIN)

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden origin"

    def test_allowed_origin_passes(self, client):
        response = client.post(
            "/api/pwa/install/decision",
            json=install_body(),
            headers={"origin": "http://localhost:5000"},
        )
        assert response.status_code == 200

    def test_ip_limit_runs_before_validation(self, client):
        statuses = [
            client.post("/api/partnerships", json={}, headers=CLIENT_IP).status_code
            for _ in range(7)
        ]

        assert statuses[:6] == [400] * 6
        assert statuses[6] == 429

    def test_rate_limit_response(self, client):
        for _ in range(6):
            client.post("/api/partnerships", json={}, headers=CLIENT_IP)

        response = client.post("/api/partnerships", json={}, headers=CLIENT_IP)

        assert response.json()["error"] == "Too many requests. Please wait a few minutes and try again."
        assert response.json()["code"] == "RATE_LIMITED"
        assert int(response.headers["retry-after"]) >= 1

    def test_bearer_routes_need_a_token(self, client):
        response = client.get("/api/messages/conversations")

        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}


# =============================================================================
# Reviews
# =============================================================================

class TestReviews:

    def test_list_requires_target(self, client):
        response = client.get("/api/reviews")

        assert response.status_code == 400
        assert response.json()["error"] == "sellerId or productId required"

    def test_list_passes_viewer(self, client, login, buyer):
        login(buyer)
        with patch("app.routers.reviews.ReviewService.list_reviews") as list_reviews:
            list_reviews.return_value = ReviewList(items=[], total=0, average=0)

            response = client.get("/api/reviews", params={"sellerId": "seller-1", "limit": 5})

        assert response.status_code == 200
        assert response.json() == {"items": [], "total": 0, "average": 0}
        kwargs = list_reviews.call_args.kwargs
        assert kwargs["seller_id"] == "seller-1"
        assert kwargs["limit"] == 5
        assert kwargs["viewer_id"] == str(buyer.id)

    def test_create_requires_sign_in(self, client):
        response = client.post("/api/reviews", json={"sellerId": "seller-1", "rating": 5})
        assert response.status_code == 401

    def test_create_rejects_bad_rating(self, client, login, buyer):
        login(buyer)
        response = client.post("/api/reviews", json={"sellerId": "seller-1", "rating": 9})
        assert response.status_code == 400


# =============================================================================
# Moderation
# =============================================================================

class TestModeration:

    def test_moderate_requires_admin_token(self, client):
        response = client.post(
            "/api/admin/moderate",
            json={"productId": "p-1", "active": False},
            headers={"x-admin-token": "wrong"},
        )
        assert response.status_code == 401

    def test_moderate_toggles_product(self, client):
        with patch("app.routers.admin.ModerationService.set_product_active") as set_active:
            response = client.post(
                "/api/admin/moderate",
                json={"productId": "p-1", "active": False},
                headers={"x-admin-token": "test-admin-token"},
            )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "productId": "p-1", "is_active": False}
        set_active.assert_called_once_with("p-1", False)

    def test_moderate_needs_product(self, client):
        response = client.post(
            "/api/admin/moderate",
            json={"active": True},
            headers={"x-admin-token": "test-admin-token"},
        )
        assert response.json()["error"] == "Missing productId"

    def test_report_requires_fields(self, client, login, buyer):
        login(buyer)
        response = client.post("/api/abuse/report", json={"targetType": "product"})

        assert response.status_code == 400
        assert response.json()["error"] == "targetType, targetId, and reason are required."

    def test_manage_report_forbidden_for_buyers(self, client, login, buyer):
        login(buyer)
        response = client.patch("/api/abuse/report/manage", json={"id": "r-1", "status": "resolved"})
        assert response.status_code == 403

    def test_manage_report_invalid_status(self, client, login, moderator):
        login(moderator)
        response = client.patch("/api/abuse/report/manage", json={"id": "r-1", "status": "archived"})
        assert response.json()["error"] == "Invalid status"

    def test_cannot_block_self(self, client, login, buyer):
        login(buyer)
        response = client.post("/api/abuse/block", json={"blockedUserId": str(buyer.id)})
        assert response.json()["error"] == "You cannot block yourself."


# =============================================================================
# Contacts & Partnerships
# =============================================================================

class TestContactsAndPartnerships:

    def test_public_contacts_hide_audit_fields(self, client):
        contacts = AppContacts(
            support_email="partners@kubazar.app",
            updated_at="2026-01-01T00:00:00Z",
            updated_by_name="Admin",
            source="db",
        )
        with patch("app.routers.contacts.ContactsService.get_contacts", return_value=contacts):
            response = client.get("/api/app/contacts")

        assert response.status_code == 200
        contacts = response.json()["contacts"]
        assert contacts == {"supportEmail": "partners@kubazar.app", "supportWhatsapp": None, "source": "db"}

    def test_admin_contacts_need_moderator(self, client, login, buyer):
        login(buyer)
        assert client.get("/api/admin/app-contacts").status_code == 401

    def test_honeypot_returns_silent_success(self, client):
        with patch("app.routers.partnerships.PartnershipService.submit") as submit:
            response = client.post("/api/partnerships", json={
                "name": "Bot",
                "email": "bot@kubazar.app",
                "partnershipType": "pr_press",
                "message": "Buy cheap followers now!!",
                "honeypot": "gotcha",
            })

        assert response.json() == {"ok": True}
        submit.assert_not_called()

    @pytest.mark.parametrize("missing", ["name", "email", "partnershipType", "message"])
    def test_missing_required_field_is_rejected(self, client, missing):
        body = {
            "name": "Dara",
            "email": "dara@kubazar.app",
            "partnershipType": "sponsored_placement",
            "message": "We would like to promote our shop on KU BAZAR.",
        }
        del body[missing]

        with patch("app.routers.partnerships.PartnershipService.submit") as submit:
            response = client.post("/api/partnerships", json=body)

        assert response.status_code == 400
        submit.assert_not_called()


# =============================================================================
# Sponsor stores
# =============================================================================

class TestSponsors:

    def test_unauthorized_uses_sponsor_envelope(self, client):
        response = client.get("/api/admin/sponsors/stores")

        assert response.status_code == 401
        data = response.json()
        assert data["ok"] is False
        assert data["errorCode"] == "SPONSOR_NOT_AUTHORIZED"
        assert data["requestId"]

    def test_invalid_store_id(self, client, login, admin_user):
        login(admin_user)
        response = client.patch("/api/admin/sponsors/stores/not-a-uuid/status", json={"status": "active"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid store id."

    def test_status_update_on_missing_store(self, client, login, admin_user):
        login(admin_user)
        supabase = MagicMock()
        supabase.rpc.return_value.execute.return_value.data = []

        with patch("core.services.sponsor_service.SupabaseClient.get_client", return_value=supabase):
            response = client.patch(f"/api/admin/sponsors/stores/{uuid4()}/status", json={"status": "active"})

        assert response.status_code == 404
        data = response.json()
        assert data["ok"] is False
        assert data["errorCode"] == "SPONSOR_STORE_NOT_FOUND"
        assert supabase.rpc.call_args.args[0] == "admin_set_sponsor_store_status"


# =============================================================================
# Translation
# =============================================================================

class TestTranslate:

    def test_empty_text(self, client):
        response = client.post("/api/translate", json={"text": "   "})
        assert response.json() == {"translatedText": ""}

    def test_same_locale_is_untouched(self, client):
        response = client.post("/api/translate", json={"text": "Salam", "sourceLocale": "ku", "targetLocale": "ku"})

        assert response.json() == {
            "translatedText": "Salam",
            "isTranslated": False,
            "originalLocale": "ku",
            "targetLocale": "ku",
        }


# =============================================================================
# PWA: telemetry
# =============================================================================

class TestTelemetryIngest:

    def event(self, **overrides):
        event = {"type": "web_vital", "name": "lcp", "ts": now_ms(), "path": "/products", "value": 1800}
        event.update(overrides)
        return event

    def test_accepts_batch(self, client):
        response = client.post("/api/pwa/telemetry", json={
            "events": [self.event(), self.event(name="cls", value=0.02, unit="score")],
            "context": {"displayMode": "standalone"},
        })

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "accepted": 2,
            "durablePersisted": 0,
            "durableEnabled": False,
        }
        summary = telemetry_store.summary(SummaryOptions(), settings.slo_thresholds)
        assert summary["totals"]["webVitals"] == 2
        assert summary["displayModeBreakdown"]["standalone"] == 2

    def test_synthetic_traffic_is_skipped(self, client):
        response = client.post(
            "/api/pwa/telemetry",
            json={"events": [self.event()]},
            headers={"user-agent": "Mozilla/5.0 Chrome-Lighthouse"},
        )

        assert response.json()["skipped"] == "synthetic_traffic"
        assert telemetry_store.events() == []

    def test_stale_events_are_dropped(self, client):
        response = client.post("/api/pwa/telemetry", json={"events": [self.event(ts=1)]})

        assert response.status_code == 400
        assert response.json()["error"] == "No valid telemetry events"

    def test_invalid_payload(self, client):
        response = client.post("/api/pwa/telemetry", json={"events": [self.event(type="click")]})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid telemetry payload"

    def test_disabled_telemetry(self, client):
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(settings, "PWA_TELEMETRY_ENABLED", False)
            response = client.post("/api/pwa/telemetry", json={"events": [self.event()]})

        assert response.status_code == 503


# =============================================================================
# PWA: install banner & rollout
# =============================================================================

class TestInstallRoutes:

    def test_decision_shows_banner_and_counts_impression(self, client):
        response = client.post("/api/pwa/install/decision", json=install_body())

        decision = response.json()["decision"]
        assert decision["show"] is True
        assert decision["mode"] == "prompt"
        assert decision["impressions"] == 1
        assert decision["rollout"]["reason"] == "percent_hundred"

        summary = telemetry_store.summary(SummaryOptions(), settings.slo_thresholds)
        assert summary["funnels"]["install"]["shown"] == 1

    def test_dismissal_hides_banner_for_session(self, client):
        response = client.post("/api/pwa/install/events", json={
            "visitorId": "visitor-1",
            "sessionId": "session-1",
            "action": "dismissed",
            "mode": "prompt",
        })

        assert response.json()["events"][0]["detail"]["reason"] == "close_button"

        decision = client.post("/api/pwa/install/decision", json=install_body()).json()["decision"]
        assert decision["show"] is False

    def test_ios_user_agent_gets_manual_guide(self, client):
        ua = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Version/17.0 Mobile Safari/604.1"
        decision = client.post(
            "/api/pwa/install/decision",
            json=install_body(installPromptAvailable=False, userAgent=ua),
        ).json()["decision"]

        assert decision["mode"] == "ios_manual"
        assert decision["iosBrowser"] == "safari"

    def test_unknown_action_rejected(self, client):
        response = client.post("/api/pwa/install/events", json={
            "visitorId": "visitor-1",
            "sessionId": "session-1",
            "action": "exploded",
        })
        assert response.status_code == 400

    def test_rollout_creates_id(self, client):
        data = client.get("/api/pwa/rollout").json()

        assert data["enabled"] is True
        assert data["reason"] == "percent_hundred"
        assert data["rolloutId"]

    def test_rollout_override(self, client):
        data = client.get("/api/pwa/rollout", params={"rolloutId": "visitor-9", "pwa_rollout": "off"}).json()

        assert data["enabled"] is False
        assert data["reason"] == "override_off"
        assert data["rolloutId"] == "visitor-9"


# =============================================================================
# PWA: admin
# =============================================================================

class TestPwaAdmin:

    def test_summary_requires_moderator(self, client, login, buyer):
        login(buyer)
        assert client.get("/api/admin/pwa/telemetry/summary").status_code == 401

    def test_summary_for_moderator(self, client, login, moderator):
        login(moderator)
        response = client.get(
            "/api/admin/pwa/telemetry/summary",
            params={"windowMinutes": "30", "displayMode": "standalone", "pathPrefix": "products"},
        )

        data = response.json()
        assert data["ok"] is True
        assert data["source"] == "memory"
        assert data["durableEnabled"] is False
        assert data["summary"]["windowMinutes"] == 30
        assert data["summary"]["filter"] == {"displayMode": "standalone", "pathPrefix": "/products"}

    def test_trigger_requires_admin(self, client, login, moderator):
        login(moderator)
        assert client.post("/api/admin/pwa/slo-alerts/trigger", json={}).status_code == 401

    def test_trigger_runs_check(self, client, login, admin_user):
        login(admin_user)
        with patch("app.routers.pwa_admin.SloAlertService.run_check") as run_check:
            run_check.return_value = SENT_RESULT
            response = client.post("/api/admin/pwa/slo-alerts/trigger", json={"force": True})

        assert response.json() == {"ok": True, "result": SENT_RESULT}
        kwargs = run_check.call_args.kwargs
        assert kwargs["force"] is True
        assert kwargs["triggered_by"] == f"admin:{admin_user.id}"

    def test_trigger_delivery_failure_is_502(self, client, login, admin_user):
        login(admin_user)
        with patch("app.routers.pwa_admin.SloAlertService.run_check") as run_check:
            run_check.return_value = FAILED_RESULT
            response = client.post("/api/admin/pwa/slo-alerts/trigger", json={})

        assert response.status_code == 502
        assert response.json()["error"] == "Webhook returned 500: boom"

    def test_trigger_rejects_unknown_fields(self, client, login, admin_user):
        login(admin_user)
        response = client.post("/api/admin/pwa/slo-alerts/trigger", json={"everything": True})
        assert response.status_code == 400


# =============================================================================
# PWA: internal
# =============================================================================

class TestInternal:

    def test_missing_secret_config(self, client):
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(settings, "PWA_SLO_ALERT_SECRET", None)
            response = client.get("/api/internal/pwa/slo-alerts", headers=ALERT_SECRET)

        assert response.status_code == 503
        assert response.json()["code"] == "ALERT_SECRET_MISSING"

    def test_wrong_secret(self, client):
        response = client.get("/api/internal/pwa/slo-alerts", headers={"x-pwa-alert-secret": "nope"})

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized."

    def test_runs_check_with_header_secret(self, client):
        with patch("app.routers.internal.SloAlertService.run_check") as run_check:
            run_check.return_value = SENT_RESULT
            response = client.post(
                "/api/internal/pwa/slo-alerts",
                params={"force": "true", "windowMinutes": "15"},
                headers={"x-pwa-alert-secret": "test-alert-secret"},
            )

        assert response.status_code == 200
        kwargs = run_check.call_args.kwargs
        assert kwargs["force"] is True
        assert kwargs["window_minutes"] == 15
        assert kwargs["triggered_by"] == "internal-api"

    def test_force_must_be_literal_true(self, client):
        with patch("app.routers.internal.SloAlertService.run_check") as run_check:
            run_check.return_value = SENT_RESULT
            client.get("/api/internal/pwa/slo-alerts", params={"force": "1"}, headers=ALERT_SECRET)

        assert run_check.call_args.kwargs["force"] is False

    def test_failed_check_is_500(self, client):
        with patch("app.routers.internal.SloAlertService.run_check") as run_check:
            run_check.return_value = FAILED_RESULT
            response = client.get("/api/internal/pwa/slo-alerts", headers=ALERT_SECRET)

        assert response.status_code == 500
        assert response.json() == {"ok": False, "result": FAILED_RESULT}

    def test_rollout_status_survives_dispatch_failure(self, client):
        with patch("app.routers.internal.SloAlertService.recent_dispatches") as recent:
            recent.side_effect = RuntimeError("relation does not exist")
            response = client.get("/api/internal/pwa/rollout-status", headers=ALERT_SECRET)

        data = response.json()
        assert response.status_code == 200
        assert data["recentDispatches"] == []
        assert data["dispatchesUnavailable"] is True
        assert data["dispatchesError"] == "relation does not exist"
        assert data["observedAt"].endswith("Z")
        assert data["config"]["pwaEnabled"] is True
        assert data["config"]["rolloutPercent"] == 100

    def test_rollout_status_dispatch_limit(self, client):
        with patch("app.routers.internal.SloAlertService.recent_dispatches") as recent:
            recent.return_value = []
            client.get(
                "/api/internal/pwa/rollout-status",
                params={"dispatchLimit": "500"},
                headers=ALERT_SECRET,
            )

        recent.assert_called_once_with(50)
