# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the KU BAZAR API:
# - test_auth.py: Access token decoding, JWKS cache, /api/auth routes
# - test_guards.py: Rate limiter, client IP, origin and role checks
# - test_models.py: Request schemas and normalizers
# - test_pwa_rollout.py / test_install_prompt.py: PWA rollout and install banner
# - test_telemetry.py / test_slo_alerts.py: Telemetry summaries and alerting
# - test_services.py: Supabase-backed services with the client mocked
# - test_routes.py: API endpoints through the TestClient
#
# Run tests with: pytest
# =============================================================================
