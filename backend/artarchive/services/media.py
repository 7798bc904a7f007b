from __future__ import annotations
import hashlib
import io
from PIL import Image, UnidentifiedImageError
from artarchive.config import settings


ALLOWED_MIME = {"image/jpeg", "image/png", "image/webp"}
EXT_FOR_MIME = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}
_MIME_FOR_FORMAT = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}


def sniff_mime(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return _MIME_FOR_FORMAT.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        return None


def inspect_image(data: bytes) -> tuple[str, str]:
    """
    Returns (mime, sha256_hex).
    Raises ValueError for empty, oversized, corrupt or unsupported payloads.
    """
    if not data:
        raise ValueError("Empty photo")
    if len(data) > settings.max_photo_bytes:
        raise ValueError(f"Photo exceeds {settings.max_photo_bytes} bytes")
    mime = sniff_mime(data)
    if mime not in ALLOWED_MIME:
        raise ValueError("Unsupported image type")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()  # basic integrity
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValueError("Invalid image file")
    return mime, hashlib.sha256(data).hexdigest()


def ext_for_mime(mime: str) -> str:
    return EXT_FOR_MIME.get(mime, "bin")
