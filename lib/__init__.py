# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - supabase_client.py: Supabase client singleton
# - utils.py: Shared utilities (Supabase error classification, UUIDs)
# - rate_limit.py: Fixed-window rate limiter (limits, in-memory storage)
# - security.py: Client identification and origin allow-listing
# - roles.py: Marketplace role resolution from JWT claims
# - pwa/: Install prompt, rollout bucketing, telemetry and SLO evaluation
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================
