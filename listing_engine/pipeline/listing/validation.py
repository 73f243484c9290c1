from __future__ import annotations
from typing import Any, List, Mapping, Sequence
import base64
import binascii
import io
import logging

from PIL import Image, UnidentifiedImageError

from .errors import InvalidImageError
from .types import ImageInput, PipelineSettings

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"
SUPPORTED_MIME_TYPES = frozenset({
    "image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif",
    "image/bmp", "image/tiff", "image/heic", "image/avif",
})
# Pillow can't open these without extra plugins
UNVERIFIED_MIME_TYPES = frozenset({"image/heic", "image/avif"})


def _strip_data_url(value: str) -> str:
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def decode_image(image_base64: Any, mime_type: Any, index: int) -> ImageInput:
    if not isinstance(image_base64, str) or not image_base64.strip():
        raise InvalidImageError(f"Image at index {index} is missing imageBase64 data", "MISSING_IMAGE_DATA", 400)
    try:
        data = base64.b64decode(_strip_data_url(image_base64.strip()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Image at index {index} is not valid base64: {e}", "INVALID_BASE64", 400) from e
    mime = str(mime_type or DEFAULT_MIME_TYPE).strip().lower()
    return ImageInput(data=data, mime_type=mime, index=index)


def decode_images(images: Sequence[Mapping[str, Any]], settings: PipelineSettings) -> List[ImageInput]:
    """Decode the app's [{"imageBase64", "mimeType"}] list. Count is checked first so oversized batches aren't decoded."""
    _check_count(len(images or []), settings)
    decoded = []
    for index, image in enumerate(images):
        if not isinstance(image, Mapping):
            raise InvalidImageError(f"Image at index {index} must be an object", "INVALID_IMAGE", 400)
        decoded.append(decode_image(image.get("imageBase64"), image.get("mimeType"), index))
    return decoded


def _check_count(count: int, settings: PipelineSettings) -> None:
    if count == 0:
        raise InvalidImageError("images array is required and must not be empty", "NO_IMAGES", 400)
    if count > settings.max_images:
        raise InvalidImageError(f"Too many images. Maximum {settings.max_images} allowed", "TOO_MANY_IMAGES", 400)


def validate_image(image: ImageInput, settings: PipelineSettings) -> None:
    allowed = {m.lower() for m in settings.allowed_mime_types} & SUPPORTED_MIME_TYPES
    if image.mime_type not in allowed:
        raise InvalidImageError(
            f"Unsupported mime type at index {image.index}: {image.mime_type}",
            "UNSUPPORTED_MEDIA_TYPE",
            415,
        )
    if not image.data:
        raise InvalidImageError(f"Image at index {image.index} is empty", "EMPTY_IMAGE", 400)
    if image.size_mb > settings.max_image_size_mb:
        raise InvalidImageError(
            f"Image too large: {image.size_mb:.2f}MB (max: {settings.max_image_size_mb:g}MB)",
            "IMAGE_TOO_LARGE",
            413,
        )
    if image.mime_type in UNVERIFIED_MIME_TYPES:
        return
    try:
        with Image.open(io.BytesIO(image.data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise InvalidImageError(f"Image at index {image.index} could not be decoded: {e}", "UNREADABLE_IMAGE", 400) from e


def validate_images(images: Sequence[ImageInput], settings: PipelineSettings) -> None:
    """Reject bad caller input before any model call."""
    _check_count(len(images or []), settings)
    for image in images:
        validate_image(image, settings)
    logger.debug(f"validated {len(images)} images ({sum(img.size_mb for img in images):.2f}MB)")
