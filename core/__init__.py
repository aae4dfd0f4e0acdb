# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains the marketplace business logic:
# - models/: Pydantic schemas for data validation
# - services/: Supabase-backed services (reviews, messaging, moderation,
#   sponsors, uploads, PWA telemetry and SLO alerts)
#
# Services raise app.exceptions errors; routers stay thin.
# =============================================================================
