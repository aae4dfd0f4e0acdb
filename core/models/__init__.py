# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - common.py: camelCase base models and small helpers
# - review.py: Review create/update/list schemas
# - message.py: Messaging and translation schemas
# - moderation.py: Abuse reports, blocks, product moderation
# - contacts.py: App support contacts
# - partnership.py: Partnership inquiries
# - favorite.py: Favorite toggles
# - sponsor.py: Sponsor store admin schemas
# - pwa.py: Telemetry, install banner and SLO trigger payloads
#
# These models define the "contract" between API and clients. Request
# bodies use camelCase aliases; Python code uses snake_case.
# =============================================================================

from .common import CamelModel, StrictCamelModel, blank_to_none

# -----------------------------------------------------------------------------
# Marketplace
# -----------------------------------------------------------------------------
from .review import HelpfulVote, ReviewCreate, ReviewItem, ReviewList, ReviewUpdate
from .message import (
    ConversationCreate,
    MarkRead,
    MessageResponse,
    MessageSend,
    TranslateRequest,
    TranslateResponse,
)
from .moderation import AbuseReportCreate, AbuseReportManage, BlockRequest, ModerateProduct
from .contacts import AppContacts, AppContactsUpdate
from .partnership import PartnershipInquiry, PartnershipResult
from .favorite import FavoriteRequest
from .sponsor import SponsorStoreCreate, SponsorStoreStatusUpdate

# -----------------------------------------------------------------------------
# PWA
# -----------------------------------------------------------------------------
from .pwa import (
    InstallDecisionRequest,
    InstallEventRequest,
    InstallQuery,
    SloAlertTriggerRequest,
    TelemetryContext,
    TelemetryEvent,
    TelemetryPayload,
)

__all__ = [
    # Common
    "CamelModel",
    "StrictCamelModel",
    "blank_to_none",
    # Reviews
    "HelpfulVote",
    "ReviewCreate",
    "ReviewItem",
    "ReviewList",
    "ReviewUpdate",
    # Messages
    "ConversationCreate",
    "MarkRead",
    "MessageResponse",
    "MessageSend",
    "TranslateRequest",
    "TranslateResponse",
    # Moderation
    "AbuseReportCreate",
    "AbuseReportManage",
    "BlockRequest",
    "ModerateProduct",
    # Contacts / partnerships / favorites
    "AppContacts",
    "AppContactsUpdate",
    "PartnershipInquiry",
    "PartnershipResult",
    "FavoriteRequest",
    # Sponsors
    "SponsorStoreCreate",
    "SponsorStoreStatusUpdate",
    # PWA
    "InstallDecisionRequest",
    "InstallEventRequest",
    "InstallQuery",
    "SloAlertTriggerRequest",
    "TelemetryContext",
    "TelemetryEvent",
    "TelemetryPayload",
]
