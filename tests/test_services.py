# =============================================================================
# tests/test_services.py - Service Layer Tests
# =============================================================================
# Tests for the Supabase-backed services with the client mocked out.
#
# Each test builds a fake client whose table() returns one MagicMock per
# table name, so chained PostgREST calls can be configured per table.
#
# Run with: pytest tests/test_services.py -v
# =============================================================================

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from app.config import settings
from app.exceptions import (
    ForbiddenError,
    NotAuthenticatedError,
    NotFoundError,
    RateLimitedError,
    StorageError,
    ServiceUnavailableError,
    UpstreamError,
    ValidationFailedError,
)
from core.models.contacts import AppContactsUpdate
from core.models.message import MessageSend
from core.models.partnership import PartnershipInquiry
from core.services.contacts_service import ContactsService
from core.services.message_service import MessageService
from core.services.partnership_service import PartnershipService
from core.services.review_service import ReviewService
from core.services.storage_service import StorageService
from lib.images import ProcessedImage

SENDER_ID = "11111111-1111-1111-1111-111111111111"
RECEIVER_ID = "44444444-4444-4444-4444-444444444444"


class FakeApiError(Exception):
    """Shape of a postgrest APIError: message plus a Postgres code."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


def fake_client(*table_names: str) -> tuple[MagicMock, dict[str, MagicMock]]:
    tables = {name: MagicMock(name=name) for name in table_names}
    client = MagicMock()
    client.table.side_effect = lambda name: tables[name]
    return client, tables


# =============================================================================
# Reviews
# =============================================================================

class TestReviewService:

    def test_list_reviews_builds_items(self):
        client, tables = fake_client("reviews", "review_helpful")
        page = tables["reviews"].select.return_value.eq.return_value.order.return_value.range.return_value
        page.execute.return_value = MagicMock(
            data=[
                {
                    "id": "r1",
                    "rating": 5,
                    "comment": None,
                    "is_anonymous": False,
                    "created_at": "2026-01-02T00:00:00Z",
                    "buyer_id": SENDER_ID,
                    "buyer": [{"full_name": "Dara", "avatar_url": None}],
                },
                {
                    "id": "r2",
                    "rating": 3,
                    "comment": "ok",
                    "is_anonymous": True,
                    "created_at": "2026-01-01T00:00:00Z",
                    "buyer_id": None,
                    "buyer": None,
                },
            ],
            count=12,
        )
        tables["review_helpful"].select.return_value.in_.return_value.execute.return_value = MagicMock(
            data=[
                {"review_id": "r1", "user_id": SENDER_ID},
                {"review_id": "r1", "user_id": RECEIVER_ID},
            ]
        )

        with patch("core.services.review_service.SupabaseClient.get_client", return_value=client):
            result = ReviewService.list_reviews("seller-1", None, limit=500, offset=-3, viewer_id=SENDER_ID)

        assert result.total == 12
        assert result.average == 4
        first, second = result.items
        assert first.buyer_name == "Dara"
        assert first.comment == ""
        assert first.helpful_count == 2
        assert first.voted_by_me is True
        assert second.buyer_name == "Buyer"
        assert second.voted_by_me is False
        tables["reviews"].select.return_value.eq.return_value.order.return_value.range.assert_called_once_with(0, 49)

    def test_update_without_match_is_not_found(self):
        client, tables = fake_client("reviews")
        update = tables["reviews"].update.return_value.eq.return_value.eq.return_value
        update.execute.return_value = MagicMock(data=[])

        with patch("core.services.review_service.SupabaseClient.get_client", return_value=client):
            with pytest.raises(NotFoundError):
                ReviewService.update_review(SENDER_ID, "r1", {"rating": 4})

    def test_duplicate_helpful_vote_is_ignored(self):
        client, tables = fake_client("review_helpful")
        helpful = tables["review_helpful"]
        helpful.insert.return_value.execute.side_effect = FakeApiError("duplicate key", code="23505")
        helpful.select.return_value.eq.return_value.execute.return_value = MagicMock(count=3)

        with patch("core.services.review_service.SupabaseClient.get_client", return_value=client):
            assert ReviewService.set_helpful("r1", SENDER_ID, add=True) == 3

    def test_helpful_vote_failure(self):
        client, tables = fake_client("review_helpful")
        tables["review_helpful"].delete.return_value.eq.return_value.eq.return_value.execute.side_effect = (
            FakeApiError("boom", code="XX000")
        )

        with patch("core.services.review_service.SupabaseClient.get_client", return_value=client):
            with pytest.raises(UpstreamError):
                ReviewService.set_helpful("r1", SENDER_ID, add=False)


# =============================================================================
# Messages
# =============================================================================

class TestMessageService:

    def blocked_query(self, tables):
        return tables["blocked_users"].select.return_value.or_.return_value.limit.return_value

    def duplicate_query(self, tables):
        return (
            tables["messages"].select.return_value
            .eq.return_value.eq.return_value.gte.return_value.limit.return_value
        )

    def payload(self, content="Is this still available?"):
        return MessageSend(receiver_id=RECEIVER_ID, content=content)

    def test_block_rejects_message(self):
        client, tables = fake_client("blocked_users")
        self.blocked_query(tables).execute.return_value = MagicMock(data=[{"id": "b1"}])

        with patch("core.services.message_service.SupabaseClient.get_client", return_value=client):
            with pytest.raises(ForbiddenError):
                MessageService.send_message(SENDER_ID, self.payload())

    def test_missing_block_table_is_tolerated(self):
        client, tables = fake_client("blocked_users")
        self.blocked_query(tables).execute.side_effect = FakeApiError(
            'relation "public.blocked_users" does not exist', code="42P01"
        )

        with patch("core.services.message_service.SupabaseClient.get_client", return_value=client):
            MessageService.ensure_not_blocked(SENDER_ID, RECEIVER_ID)

    def test_block_check_failure_is_503(self):
        client, tables = fake_client("blocked_users")
        self.blocked_query(tables).execute.side_effect = FakeApiError("timeout", code="57014")

        with patch("core.services.message_service.SupabaseClient.get_client", return_value=client):
            with pytest.raises(ServiceUnavailableError):
                MessageService.ensure_not_blocked(SENDER_ID, RECEIVER_ID)

    def test_spam_is_rejected_before_insert(self):
        client, tables = fake_client("blocked_users", "messages")
        self.blocked_query(tables).execute.return_value = MagicMock(data=[])

        with patch("core.services.message_service.SupabaseClient.get_client", return_value=client):
            with pytest.raises(ValidationFailedError):
                MessageService.send_message(SENDER_ID, self.payload("free crypto for everyone"))

        tables["messages"].insert.assert_not_called()

    def test_duplicate_flood_is_rate_limited(self):
        client, tables = fake_client("messages")
        self.duplicate_query(tables).execute.return_value = MagicMock(data=[{"id": i} for i in range(5)])

        with patch("core.services.message_service.SupabaseClient.get_client", return_value=client):
            with pytest.raises(RateLimitedError) as exc_info:
                MessageService.ensure_not_duplicate(SENDER_ID, "hello")

        assert exc_info.value.retry_after == 300

    def test_send_opens_conversation(self):
        client, tables = fake_client("blocked_users", "messages")
        self.blocked_query(tables).execute.return_value = MagicMock(data=[])
        self.duplicate_query(tables).execute.return_value = MagicMock(data=[])
        conversation_id = str(uuid4())
        client.rpc.return_value.execute.return_value = MagicMock(data=conversation_id)
        tables["messages"].insert.return_value.execute.return_value = MagicMock(data=[{
            "id": "m1",
            "conversation_id": conversation_id,
            "sender_id": SENDER_ID,
            "receiver_id": RECEIVER_ID,
            "product_id": None,
            "content": "Is this still available?",
            "is_read": False,
            "created_at": "2026-01-01T00:00:00Z",
        }])

        with patch("core.services.message_service.SupabaseClient.get_client", return_value=client):
            message = MessageService.send_message(SENDER_ID, self.payload())

        assert message.conversation_id == conversation_id
        assert message.is_read is False
        client.rpc.assert_called_once_with(
            "get_or_create_conversation",
            {"p_seller_id": RECEIVER_ID, "p_buyer_id": SENDER_ID, "p_product_id": None},
        )


# =============================================================================
# Contacts
# =============================================================================

class TestContactsService:

    def settings_query(self, tables):
        return tables["app_settings"].select.return_value.eq.return_value.limit.return_value

    def test_reads_db_row(self):
        client, tables = fake_client("app_settings")
        self.settings_query(tables).execute.return_value = MagicMock(data=[{
            "support_email": "Help@KUBazar.app",
            "support_whatsapp": "00964 750 123 4567",
            "updated_at": "2026-01-01T00:00:00Z",
            "updated_user": {"full_name": " ", "name": None, "email": "admin@kubazar.app"},
        }])

        with patch("core.services.contacts_service.SupabaseClient.get_client", return_value=client):
            contacts = ContactsService.get_contacts()

        assert contacts.source == "db"
        assert contacts.support_email == "help@kubazar.app"
        assert contacts.support_whatsapp == "+9647501234567"
        assert contacts.updated_by_name == "admin@kubazar.app"

    def test_missing_table_falls_back(self):
        client, tables = fake_client("app_settings")
        self.settings_query(tables).execute.side_effect = FakeApiError("missing", code="42P01")

        with patch("core.services.contacts_service.SupabaseClient.get_client", return_value=client), \
                patch.object(settings, "PUBLIC_PARTNERSHIPS_EMAIL", None), \
                patch.object(settings, "PUBLIC_PARTNERSHIPS_WHATSAPP", "+9647500000000"):
            contacts = ContactsService.get_contacts()

        assert contacts.source == "env"
        assert contacts.support_whatsapp == "+9647500000000"

    def test_invalid_whatsapp(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            ContactsService.update_contacts(AppContactsUpdate(support_whatsapp="12"), SENDER_ID)
        assert exc_info.value.message == "WhatsApp number is invalid."

    def test_invalid_email(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            ContactsService.update_contacts(AppContactsUpdate(support_email="not-an-email"), SENDER_ID)
        assert exc_info.value.message == "Email is invalid."


# =============================================================================
# Partnerships
# =============================================================================

class TestPartnershipService:

    def inquiry(self, partnership_type="sponsored_placement"):
        return PartnershipInquiry.model_validate({
            "name": "Dara",
            "email": "dara@kubazar.app",
            "partnershipType": partnership_type,
            "message": "We would like to promote our shop on KU BAZAR.",
            "company": "  ",
        })

    def test_seller_application_needs_user(self):
        with patch.object(PartnershipService, "resolve_user_id", return_value=None):
            with pytest.raises(NotAuthenticatedError):
                PartnershipService.submit(self.inquiry("store_onboarding"), None)

    def test_saved_without_email(self):
        client, tables = fake_client("partnership_inquiries")

        with patch("core.services.partnership_service.SupabaseClient.get_client", return_value=client), \
                patch.object(settings, "RESEND_API_KEY", None), \
                patch.object(settings, "PUBLIC_PARTNERSHIPS_EMAIL", None), \
                patch.object(settings, "PARTNERSHIPS_NOTIFY_EMAIL", None):
            result = PartnershipService.submit(self.inquiry(), None)

        assert result.saved is True
        assert result.email_sent is False
        assert result.mailto is None
        row = tables["partnership_inquiries"].insert.call_args.args[0]
        assert row["company"] is None
        assert row["status"] == "new"

    def test_nothing_delivered_is_an_error(self):
        client, tables = fake_client("partnership_inquiries")
        tables["partnership_inquiries"].insert.return_value.execute.side_effect = FakeApiError("down")

        with patch("core.services.partnership_service.SupabaseClient.get_client", return_value=client), \
                patch.object(settings, "RESEND_API_KEY", None), \
                patch.object(settings, "PUBLIC_PARTNERSHIPS_EMAIL", None), \
                patch.object(settings, "PARTNERSHIPS_NOTIFY_EMAIL", None):
            with pytest.raises(UpstreamError):
                PartnershipService.submit(self.inquiry(), None)

    def test_resend_notification(self):
        with patch("core.services.partnership_service.httpx.post") as post, \
                patch.object(settings, "RESEND_API_KEY", "re_test"), \
                patch.object(settings, "PARTNERSHIPS_NOTIFY_EMAIL", "team@kubazar.app"), \
                patch.object(settings, "PARTNERSHIPS_FROM_EMAIL", "noreply@kubazar.app"):
            post.return_value = MagicMock(is_success=True)
            assert PartnershipService.send_notification("subject", "body") is True

        sent = post.call_args.kwargs
        assert sent["headers"] == {"Authorization": "Bearer re_test"}
        assert sent["json"]["to"] == ["team@kubazar.app"]


# =============================================================================
# Storage
# =============================================================================

class TestStorageService:

    @pytest.fixture(autouse=True)
    def fresh_bucket_state(self):
        with patch.object(StorageService, "_bucket_ready", False):
            yield

    @pytest.fixture
    def storage_client(self):
        client = MagicMock()
        bucket = client.storage.from_.return_value
        bucket.create_signed_url.return_value = {"signedURL": "https://cdn.kubazar.test/signed"}
        with patch("core.services.storage_service.SupabaseClient.get_client", return_value=client):
            yield client, bucket

    def image(self):
        return ProcessedImage(data=b"webp-bytes", extension="webp", content_type="image/webp")

    def test_missing_bucket_is_created_and_upload_retried(self, storage_client):
        client, bucket = storage_client
        bucket.upload.side_effect = [FakeApiError("Bucket not found"), None]
        client.storage.get_bucket.side_effect = FakeApiError("Bucket not found")

        result = StorageService.upload_image(SENDER_ID, self.image())

        assert bucket.upload.call_count == 2
        client.storage.create_bucket.assert_called_once_with(settings.STORAGE_BUCKET, options={"public": True})
        assert result["path"].startswith(f"{SENDER_ID}/")
        assert result["path"].endswith(".webp")
        assert result["signedUrl"] == "https://cdn.kubazar.test/signed"

    def test_other_upload_errors_are_not_retried(self, storage_client):
        client, bucket = storage_client
        bucket.upload.side_effect = FakeApiError("The object exceeded the maximum allowed size")

        with pytest.raises(StorageError):
            StorageService.upload_image(SENDER_ID, self.image())

        assert bucket.upload.call_count == 1
        client.storage.get_bucket.assert_not_called()

    def test_private_bucket_is_made_public(self, storage_client):
        client, _ = storage_client
        client.storage.get_bucket.return_value = MagicMock(public=False)

        StorageService.ensure_bucket()

        client.storage.update_bucket.assert_called_once_with(settings.STORAGE_BUCKET, {"public": True})
        client.storage.create_bucket.assert_not_called()

    def test_bucket_check_runs_once(self, storage_client):
        client, _ = storage_client
        client.storage.get_bucket.return_value = MagicMock(public=True)

        StorageService.ensure_bucket()
        StorageService.ensure_bucket()

        client.storage.get_bucket.assert_called_once()
        client.storage.update_bucket.assert_not_called()

    def test_bucket_failure_is_retried_next_time(self, storage_client):
        client, _ = storage_client
        client.storage.get_bucket.side_effect = [FakeApiError("permission denied"), MagicMock(public=True)]

        with pytest.raises(StorageError) as exc_info:
            StorageService.ensure_bucket()
        assert exc_info.value.message == "Storage bucket is not configured."

        StorageService.ensure_bucket()
        assert client.storage.get_bucket.call_count == 2
