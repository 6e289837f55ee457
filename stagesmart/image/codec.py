"""Data-URL wire codec for image payloads."""

from __future__ import annotations

import base64
import binascii
import re
from pathlib import Path

from stagesmart.errors import MalformedImageError

from .payload import ALLOWED_MEDIA_TYPES, ImagePayload

_DATA_URL = re.compile(r"^data:([A-Za-z0-9.+/-]+);base64,(.+)$", re.DOTALL)

_MEDIA_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}

_SUFFIX_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def normalise_media_type(value: str) -> str:
    lowered = value.strip().lower()
    return _MEDIA_ALIASES.get(lowered, lowered)


def decode(wire: str) -> ImagePayload:
    """Parse ``data:<media-type>;base64,<payload>`` into an :class:`ImagePayload`."""

    if not isinstance(wire, str):
        raise MalformedImageError("Image must be a data URL string")
    match = _DATA_URL.match(wire.strip())
    if match is None:
        raise MalformedImageError("Invalid image format: expected a base64 data URL")

    media_type = normalise_media_type(match.group(1))
    if media_type not in ALLOWED_MEDIA_TYPES:
        raise MalformedImageError(f"Unsupported media type: {match.group(1)!r}")

    encoded = "".join(match.group(2).split())
    try:
        data = base64.b64decode(encoded, validate=True)
    except (ValueError, binascii.Error) as exc:
        raise MalformedImageError("Image payload is not valid base64") from exc
    return ImagePayload(data=data, media_type=media_type)


def encode(payload: ImagePayload) -> str:
    encoded = base64.b64encode(payload.data).decode("ascii")
    return f"data:{payload.media_type};base64,{encoded}"


def guess_media_type(path: Path) -> str:
    media_type = _SUFFIX_MEDIA_TYPES.get(Path(path).suffix.lower())
    if media_type is None:
        raise MalformedImageError(f"Cannot infer an image media type from {path}")
    return media_type


def load_image(path: Path) -> ImagePayload:
    path = Path(path)
    return ImagePayload(data=path.read_bytes(), media_type=guess_media_type(path))


__all__ = ["decode", "encode", "guess_media_type", "load_image", "normalise_media_type"]
