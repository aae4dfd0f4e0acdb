# =============================================================================
# app/routers/uploads.py - Listing Image Uploads
# =============================================================================
# POST   /api/uploads          multipart "file" (+ optional "categoryId")
# DELETE /api/uploads?path=    remove one of the caller's images
#
# Images are re-encoded as WebP before they reach storage (see lib/images.py).
# The listing image bucket is created (or made public) on first use.
# =============================================================================

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from starlette.datastructures import UploadFile

from app.auth import AuthUser, get_current_user_optional
from app.config import settings
from app.exceptions import PayloadTooLargeError, UnsupportedMediaTypeError, ValidationFailedError
from app.guards import enforce_origin, limit_ip, limit_user, require_user
from core.services.storage_service import StorageService
from lib.images import ACCEPTED_EXTENSIONS, detect_incoming_type

logger = logging.getLogger(__name__)

router = APIRouter()

AUTH_MESSAGE = "Authentication required."


@router.post("")
async def upload_image(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Upload a listing image.

    Vehicle and real-estate categories keep full resolution; everything
    else is downscaled. Returns the storage path and a 1 hour signed URL.
    """
    enforce_origin(request, "Origin is not allowed to perform uploads.")
    limit_ip(request, "upload", 30, message="Too many upload attempts from this network. Please try again later.")
    user = require_user(user, AUTH_MESSAGE)
    limit_user("upload", user.id, 10, message="Upload rate limit reached. Please wait and retry.")
    StorageService.ensure_bucket()

    try:
        form = await request.form()
    except Exception as e:
        logger.warning(f"Could not parse upload form: {e}")
        raise ValidationFailedError("Invalid file payload.")

    file = form.get("file")
    if not isinstance(file, UploadFile):
        raise ValidationFailedError("Invalid file payload.")

    raw_category = form.get("categoryId")
    category_id = raw_category.strip() if isinstance(raw_category, str) and raw_category.strip() else None

    content = await file.read()
    if not content:
        raise ValidationFailedError("File is empty.")
    if len(content) > settings.max_upload_size_bytes:
        raise PayloadTooLargeError(
            f"File exceeds the maximum allowed size of {settings.MAX_UPLOAD_SIZE_MB}MB.",
            details={"size_bytes": len(content), "max_bytes": settings.max_upload_size_bytes},
        )

    incoming_type = detect_incoming_type(file.filename, file.content_type)
    if incoming_type is None:
        raise UnsupportedMediaTypeError(
            "Unsupported file type. Upload JPG, PNG, WebP, or AVIF images.",
            list(ACCEPTED_EXTENSIONS),
        )

    logger.info(f"Processing upload from {user.id}: {file.filename} ({len(content)} bytes)")
    image = StorageService.prepare_image(content, incoming_type, category_id)
    return StorageService.upload_image(str(user.id), image)


@router.delete("")
async def delete_image(
    request: Request,
    path: Annotated[Optional[str], Query()] = None,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """Delete an image from the caller's own upload folder."""
    enforce_origin(request, "Origin is not allowed to perform deletions.")
    limit_ip(request, "upload-delete", 60, message="Too many delete attempts from this network. Please try again later.")
    user = require_user(user, AUTH_MESSAGE)
    limit_user("upload-delete", user.id, 20, message="Delete rate limit reached. Please wait and retry.")
    StorageService.ensure_bucket()

    StorageService.delete_image(str(user.id), path)
    return {"success": True}
