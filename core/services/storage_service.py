# =============================================================================
# core/services/storage_service.py - Supabase Storage Operations
# =============================================================================
# Handles listing image upload/delete with Supabase Storage.
#
# Objects live under "<user id>/<ms>-<uuid>.<ext>" in STORAGE_BUCKET, so a
# user can only ever delete files inside their own folder.
# =============================================================================

import logging
import threading
import time
import uuid
from typing import Any

from app.config import settings
from app.exceptions import ForbiddenError, StorageError, ValidationFailedError
from lib.images import ProcessedImage, is_high_res_category, process_image
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

CACHE_CONTROL_SECONDS = "31536000"
SIGNED_URL_TTL_SECONDS = 60 * 60
BUCKET_UNAVAILABLE_MESSAGE = "Storage bucket is not configured."


def build_object_path(user_id: str, extension: str) -> str:
    return f"{user_id}/{int(time.time() * 1000)}-{uuid.uuid4()}.{extension}"


def _error_message(error: Any) -> str:
    return getattr(error, "message", None) or str(error) or "Unknown storage error."


def _error_status(error: Any) -> str | None:
    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    if status is None and isinstance(error, dict):
        status = error.get("status") or error.get("statusCode")
    return str(status) if status is not None else None


def _is_not_found(error: Any) -> bool:
    return _error_status(error) == "404" or "not found" in _error_message(error).lower()


def _is_already_exists(error: Any) -> bool:
    return _error_status(error) == "409" or "already exists" in _error_message(error).lower()


def is_bucket_missing(error: Any) -> bool:
    """Upload errors that mean the bucket itself is gone."""
    message = _error_message(error).lower()
    return _is_not_found(error) or "does not exist" in message


class StorageService:
    """
    Service for Supabase Storage operations.

    Handles processing and uploading listing images, and removing them.
    """

    _bucket_ready = False
    _bucket_lock = threading.Lock()

    @staticmethod
    def ensure_bucket(force: bool = False) -> None:
        """
        Make sure STORAGE_BUCKET exists and is public.

        Creates the bucket on first use in a fresh project, or flips an
        existing private bucket to public. Only runs once per process unless
        `force` is set.

        Raises:
            StorageError: The bucket could not be read, created or updated
        """
        if StorageService._bucket_ready and not force:
            return

        with StorageService._bucket_lock:
            if StorageService._bucket_ready and not force:
                return
            storage = SupabaseClient.get_client().storage
            name = settings.STORAGE_BUCKET
            try:
                try:
                    bucket = storage.get_bucket(name)
                except Exception as e:
                    if not _is_not_found(e):
                        raise
                    bucket = None

                if bucket is None:
                    try:
                        storage.create_bucket(name, options={"public": True})
                        logger.info(f"Created storage bucket {name}")
                        StorageService._bucket_ready = True
                        return
                    except Exception as e:
                        if not _is_already_exists(e):
                            raise
                elif getattr(bucket, "public", False):
                    StorageService._bucket_ready = True
                    return

                storage.update_bucket(name, {"public": True})
                logger.info(f"Made storage bucket {name} public")
            except Exception as e:
                StorageService._bucket_ready = False
                logger.error(f"Failed to initialize storage bucket {name}: {_error_message(e)}")
                raise StorageError(BUCKET_UNAVAILABLE_MESSAGE)

            StorageService._bucket_ready = True

    @staticmethod
    def is_high_res_category(category_id: str | None) -> bool:
        """
        Vehicle and real-estate categories keep full-resolution photos.

        Lookup failures count as a standard category.
        """
        if not category_id or not category_id.strip():
            return False
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("categories")
                .select("id, name, name_ar, name_ku")
                .eq("id", category_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Category lookup failed for {category_id}: {e}")
            return False
        if not response.data:
            return False
        row = response.data[0]
        return is_high_res_category([row.get("name"), row.get("name_ar"), row.get("name_ku")])

    @staticmethod
    def prepare_image(data: bytes, incoming_type: str, category_id: str | None) -> ProcessedImage:
        return process_image(
            data,
            incoming_type,
            high_res=StorageService.is_high_res_category(category_id),
            max_edge=settings.UPLOAD_MAX_EDGE,
            quality=settings.UPLOAD_WEBP_QUALITY,
            min_bytes=settings.UPLOAD_WEBP_MIN_BYTES,
        )

    @staticmethod
    def upload_image(user_id: str, image: ProcessedImage) -> dict[str, str | None]:
        """
        Upload a processed image and sign a preview URL for it.

        Args:
            user_id: Owner; becomes the top-level folder
            image: Output of prepare_image()

        Returns:
            {"path": ..., "signedUrl": ...}

        Raises:
            StorageError: Upload or signing failed
        """
        client = SupabaseClient.get_client()
        bucket = client.storage.from_(settings.STORAGE_BUCKET)
        path = build_object_path(user_id, image.extension)

        file_options = {
            "content-type": image.content_type,
            "cache-control": CACHE_CONTROL_SECONDS,
            "upsert": "false",
        }
        try:
            try:
                bucket.upload(path=path, file=image.data, file_options=file_options)
            except Exception as e:
                if not is_bucket_missing(e):
                    raise
                logger.warning(f"Bucket missing while uploading {path}, recreating it and retrying")
                StorageService.ensure_bucket(force=True)
                bucket.upload(path=path, file=image.data, file_options=file_options)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Storage upload failed for {path}: {e}")
            raise StorageError(_error_message(e))

        logger.info(f"Uploaded listing image to storage: {path} ({len(image.data)} bytes)")

        try:
            signed = bucket.create_signed_url(path, SIGNED_URL_TTL_SECONDS)
        except Exception as e:
            logger.error(f"Failed to create signed URL for {path}: {e}")
            raise StorageError("Upload succeeded but preview URL could not be generated.")

        signed_url = None
        if isinstance(signed, dict):
            signed_url = signed.get("signedURL") or signed.get("signedUrl")
        return {"path": path, "signedUrl": signed_url}

    @staticmethod
    def delete_image(user_id: str, path: str | None) -> None:
        """
        Remove one of the caller's images.

        Raises:
            ValidationFailedError: Missing path
            ForbiddenError: Path outside the caller's folder
            StorageError: Storage rejected the delete
        """
        if not path:
            raise ValidationFailedError("Missing file path.")
        if not path.startswith(f"{user_id}/") or ".." in path:
            raise ForbiddenError("You can only delete your own uploads.")

        client = SupabaseClient.get_client()
        try:
            client.storage.from_(settings.STORAGE_BUCKET).remove([path])
        except Exception as e:
            logger.error(f"Storage delete failed for {path}: {e}")
            raise StorageError(_error_message(e))

        logger.info(f"Deleted listing image from storage: {path}")
