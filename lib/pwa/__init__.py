# =============================================================================
# lib/pwa/ - Progressive Web App Helpers
# =============================================================================
# - hashing.py: FNV-1a bucketing hash
# - storage.py: Visitor/session state storage (memory or Redis)
# - events.py: Lifecycle event catalogue
# - rollout.py: Percentage rollout with overrides
# - install_prompt.py: Install banner eligibility, variants, impressions
# - telemetry_store.py: In-memory telemetry, summaries and SLO alerts
# =============================================================================
