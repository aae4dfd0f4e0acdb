# =============================================================================
# lib/images.py - Listing Image Processing
# =============================================================================
# Re-encodes uploaded listing photos as WebP with Pillow.
#
# Standard categories are downscaled to fit UPLOAD_MAX_EDGE. Vehicle and
# real-estate photos keep their full size and only step quality (then size)
# down until they fit a 10 MB budget.
#
# Usage:
#   from lib.images import process_image
#   result = process_image(raw_bytes, high_res=False)
#   result.data, result.content_type, result.extension
# =============================================================================

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

MIN_QUALITY = 60
MAX_QUALITY = 95
WEBP_METHOD = 5

LARGE_PHOTO_EDGE = 1200
LARGE_PHOTO_PIXELS = 1_000_000

HIGH_RES_BUDGET_BYTES = 10 * 1024 * 1024
HIGH_RES_MIN_EDGE = 1800
HIGH_RES_SHRINK = 0.85

HIGH_RES_KEYWORDS = (
    "vehicle",
    "vehicles",
    "car",
    "cars",
    "auto",
    "automotive",
    "real estate",
    "property",
    "properties",
    "house",
    "home for sale",
)

# incoming type -> (extension, content type) used when the original is stored
ORIGINAL_FORMATS: dict[str, tuple[str, str]] = {
    "jpg": ("jpg", "image/jpeg"),
    "png": ("png", "image/png"),
    "webp": ("webp", "image/webp"),
    "avif": ("avif", "image/avif"),
}

ACCEPTED_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "avif")
ACCEPTED_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/avif": "avif",
}


@dataclass(frozen=True)
class ProcessedImage:
    data: bytes
    extension: str
    content_type: str


def detect_incoming_type(filename: str | None, content_type: str | None) -> str | None:
    """
    Identify the upload by file extension first, then by content type.

    Returns:
        "jpg", "png", "webp", "avif" or None when unsupported
    """
    extension = (filename or "").rsplit(".", 1)[-1].lower() if filename and "." in filename else ""
    if extension in ACCEPTED_EXTENSIONS:
        return "jpg" if extension == "jpeg" else extension
    return ACCEPTED_CONTENT_TYPES.get((content_type or "").lower())


def is_high_res_category(names: list[str | None]) -> bool:
    """True when any category name (en/ar/ku) mentions vehicles or real estate."""
    candidates = [name.lower() for name in names if name]
    return any(keyword in name for name in candidates for keyword in HIGH_RES_KEYWORDS)


def clamp_quality(quality: float) -> int:
    return max(MIN_QUALITY, min(MAX_QUALITY, round(quality)))


def _load(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image = ImageOps.exif_transpose(image)
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA" if "A" in image.getbands() or image.mode == "P" else "RGB")
    return image


def encode_webp(image: Image.Image, quality: float, max_edge: int | None = None) -> bytes:
    """
    Encode as WebP, shrinking to fit inside max_edge (never enlarging).
    """
    if max_edge:
        image = image.copy()
        image.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
    output = io.BytesIO()
    image.save(output, "WEBP", quality=clamp_quality(quality), method=WEBP_METHOD)
    return output.getvalue()


def _process_standard(image: Image.Image, max_edge: int, quality: int, min_bytes: int) -> bytes:
    processed = encode_webp(image, quality, max_edge)
    width, height = image.size
    large_photo = (
        width > LARGE_PHOTO_EDGE
        or height > LARGE_PHOTO_EDGE
        or width * height > LARGE_PHOTO_PIXELS
    )
    if len(processed) < min_bytes and large_photo:
        processed = encode_webp(image, min(90, quality + 8), max_edge)
        if len(processed) < min_bytes:
            processed = encode_webp(image, min(92, quality + 10), max_edge)
    return processed


def _process_high_res(image: Image.Image, max_edge: int, quality: int) -> bytes:
    q = min(90, max(75, quality + 3))
    processed = encode_webp(image, q)
    while len(processed) > HIGH_RES_BUDGET_BYTES and q > MIN_QUALITY:
        q -= 5
        processed = encode_webp(image, q)

    if len(processed) > HIGH_RES_BUDGET_BYTES:
        edge = max(image.size) or max_edge * 2
        while len(processed) > HIGH_RES_BUDGET_BYTES and edge > HIGH_RES_MIN_EDGE:
            edge = round(edge * HIGH_RES_SHRINK)
            processed = encode_webp(image, q, edge)
        if len(processed) > HIGH_RES_BUDGET_BYTES:
            processed = encode_webp(image, max(MIN_QUALITY, q - 5), min(edge, HIGH_RES_MIN_EDGE))
    return processed


def process_image(
    data: bytes,
    incoming_type: str,
    high_res: bool = False,
    max_edge: int = 1600,
    quality: int = 82,
    min_bytes: int = 80000,
) -> ProcessedImage:
    """
    Convert an uploaded image to WebP.

    Any decoding/encoding failure falls back to the original bytes with
    the content type of the incoming file.

    Args:
        data: Raw upload bytes
        incoming_type: Result of detect_incoming_type()
        high_res: Keep full resolution within the 10 MB budget
        max_edge: Longest edge for standard categories
        quality: Base WebP quality
        min_bytes: Re-encode large photos that come out smaller than this

    Returns:
        ProcessedImage with bytes, extension and content type
    """
    try:
        image = _load(data)
        if high_res:
            processed = _process_high_res(image, max_edge, quality)
        else:
            processed = _process_standard(image, max_edge, quality, min_bytes)
    except Exception as e:
        logger.error(f"Image processing failed, falling back to original buffer: {e}")
        extension, content_type = ORIGINAL_FORMATS.get(incoming_type, ("bin", "application/octet-stream"))
        return ProcessedImage(data=data, extension=extension, content_type=content_type)

    return ProcessedImage(data=processed, extension="webp", content_type="image/webp")
