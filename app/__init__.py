# =============================================================================
# app/ - KU BAZAR HTTP Layer
# =============================================================================
# main.py wires the routers under /api; guards.py holds the origin, rate
# limit and role checks every route runs first; auth/ turns Supabase access
# tokens into AuthUser.
#
# Marketplace and PWA rules live in core/ and lib/pwa/.
# =============================================================================
