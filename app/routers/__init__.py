# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - reviews.py: Seller reviews and helpful votes
# - messages.py: Buyer/seller conversations
# - translate.py: Listing text translation
# - abuse.py: Abuse reports and user blocking
# - admin.py: Product moderation and app contacts management
# - contacts.py: Public support contacts
# - partnerships.py: Partnership inquiries
# - favorites.py: Saved products
# - uploads.py: Listing image uploads
# - sponsors.py: Sponsor store administration
# - pwa.py: PWA telemetry, install banner and rollout
# - pwa_admin.py: PWA telemetry summary and manual SLO checks
# - internal.py: Secret-protected PWA operations endpoints
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import reviews
from . import messages
from . import translate
from . import abuse
from . import admin
from . import contacts
from . import partnerships
from . import favorites
from . import uploads
from . import sponsors
from . import pwa
from . import pwa_admin
from . import internal

__all__ = [
    "health",
    "reviews",
    "messages",
    "translate",
    "abuse",
    "admin",
    "contacts",
    "partnerships",
    "favorites",
    "uploads",
    "sponsors",
    "pwa",
    "pwa_admin",
    "internal",
]
