"""Image payload model and its data-URL wire codec."""

from .codec import decode, encode, guess_media_type, load_image
from .payload import ALLOWED_MEDIA_TYPES, ImagePayload

__all__ = ["ALLOWED_MEDIA_TYPES", "ImagePayload", "decode", "encode", "guess_media_type", "load_image"]
