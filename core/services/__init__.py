# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .contacts_service import ContactsService
from .favorite_service import FavoriteService
from .message_service import MessageService
from .moderation_service import ModerationService
from .partnership_service import PartnershipService
from .review_service import ReviewService
from .slo_alert_service import SloAlertService
from .sponsor_service import SponsorService
from .storage_service import StorageService
from .telemetry_service import TelemetryService
from .translation_service import TranslationError, TranslationService

__all__ = [
    "ContactsService",
    "FavoriteService",
    "MessageService",
    "ModerationService",
    "PartnershipService",
    "ReviewService",
    "SloAlertService",
    "SponsorService",
    "StorageService",
    "TelemetryService",
    "TranslationError",
    "TranslationService",
]
