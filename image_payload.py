"""In-memory image payloads (logo, photo, signature, background) as data URIs."""
from __future__ import annotations

import base64
import binascii
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from PIL import Image, ImageFile

ImageFile.LOAD_TRUNCATED_IMAGES = True

logger = logging.getLogger(__name__)

# Advisory only; oversized uploads are logged, never rejected here.
MAX_UPLOAD_BYTES = 2 * 1024 * 1024

_MIME_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
}


class InvalidImagePayloadError(ValueError):
    """Raised when a payload cannot be decoded into an image."""


def check_upload_size(data: bytes, limit: int = MAX_UPLOAD_BYTES) -> bool:
    if len(data) > limit:
        logger.warning("Image payload is %d bytes, above the advised %d bytes", len(data), limit)
        return False
    return True


def encode_image_bytes(data: bytes) -> str:
    """Return ``data`` as a ``data:`` URI after checking it is a readable image."""

    try:
        with Image.open(BytesIO(data)) as image:
            image_format = image.format or "PNG"
            image.verify()
    except (OSError, SyntaxError) as exc:
        raise InvalidImagePayloadError(f"Not a readable image: {exc}") from exc

    check_upload_size(data)
    mime_type = _MIME_TYPES.get(image_format.upper(), "image/png")
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def load_image_payload(path: Union[str, Path]) -> str:
    return encode_image_bytes(Path(path).read_bytes())


def decode_image_payload(payload: str) -> bytes:
    """Decode a ``data:`` URI or bare base64 payload back to raw bytes."""

    if not payload:
        raise InvalidImagePayloadError("Empty image payload")
    encoded = payload
    if payload.startswith("data:"):
        _header, _, encoded = payload.partition(",")
    try:
        return base64.b64decode(encoded + "===")
    except (binascii.Error, ValueError) as exc:
        raise InvalidImagePayloadError(f"Malformed base64 image payload: {exc}") from exc


def open_image(payload: str) -> Image.Image:
    data = decode_image_payload(payload)
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (OSError, SyntaxError) as exc:
        raise InvalidImagePayloadError(f"Not a readable image: {exc}") from exc
    return image


def try_open_image(payload: Optional[str]) -> Optional[Image.Image]:
    """Like :func:`open_image` but logs and returns ``None`` for bad payloads."""

    if not payload:
        return None
    try:
        return open_image(payload)
    except InvalidImagePayloadError as exc:
        logger.warning("Skipping image: %s", exc)
        return None
