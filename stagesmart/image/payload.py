from __future__ import annotations

from dataclasses import dataclass

from stagesmart.errors import MalformedImageError

ALLOWED_MEDIA_TYPES: tuple[str, ...] = ("image/jpeg", "image/png", "image/webp", "image/gif")


@dataclass(frozen=True)
class ImagePayload:
    """Raw image bytes plus the declared media type."""

    data: bytes
    media_type: str

    def __post_init__(self) -> None:
        if not isinstance(self.data, (bytes, bytearray)) or not self.data:
            raise MalformedImageError("Image payload is empty")
        if isinstance(self.data, bytearray):
            object.__setattr__(self, "data", bytes(self.data))
        if self.media_type not in ALLOWED_MEDIA_TYPES:
            raise MalformedImageError(f"Unsupported media type: {self.media_type!r}")

    @property
    def size(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"ImagePayload(media_type={self.media_type!r}, size={self.size})"


__all__ = ["ALLOWED_MEDIA_TYPES", "ImagePayload"]
