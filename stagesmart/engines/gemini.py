"""Inline-result engine backed by Gemini image models (google-genai)."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Iterable

from google.genai import types

from stagesmart.errors import EngineTimeoutError, NoImageReturnedError, ProviderCallError
from stagesmart.image import ALLOWED_MEDIA_TYPES, ImagePayload
from stagesmart.image.codec import normalise_media_type

from .base import BaseEngine, Deadline

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-image"


def _coerce_bytes(blob) -> bytes | None:
    if isinstance(blob, (bytes, bytearray)):
        return bytes(blob)
    if isinstance(blob, str):
        try:
            return base64.b64decode(blob)
        except (ValueError, binascii.Error):
            return None
    return None


def _response_parts(response: Any) -> Iterable[Any]:
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            yield part


def extract_inline_image(response: Any) -> ImagePayload | None:
    """Return the first inline image part of a ``generate_content`` response."""

    for part in _response_parts(response):
        inline = getattr(part, "inline_data", None)
        if inline is None:
            continue
        blob = _coerce_bytes(getattr(inline, "data", None))
        if not blob:
            continue
        media_type = normalise_media_type(getattr(inline, "mime_type", None) or "image/png")
        if media_type not in ALLOWED_MEDIA_TYPES:
            media_type = "image/png"
        return ImagePayload(data=blob, media_type=media_type)
    return None


@dataclass
class GeminiEngine(BaseEngine):
    client: Any
    model: str = DEFAULT_GEMINI_MODEL
    engine_id: str = "gemini"

    def _request_config(self, deadline: Deadline) -> types.GenerateContentConfig:
        timeout_ms = max(1, int(deadline.remaining() * 1000))
        return types.GenerateContentConfig(
            response_modalities=["IMAGE", "TEXT"],
            http_options=types.HttpOptions(timeout=timeout_ms),
        )

    def _produce(self, image: ImagePayload, prompt: str, deadline: Deadline) -> ImagePayload:
        config = self._request_config(deadline)
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part(inline_data=types.Blob(data=image.data, mime_type=image.media_type)),
                    types.Part(text=prompt),
                ],
                config=config,
            )
        except Exception as exc:
            if deadline.expired():
                raise EngineTimeoutError("timeout") from exc
            raise ProviderCallError(f"Gemini request failed: {exc}") from exc

        generated = extract_inline_image(response)
        if generated is None:
            raise NoImageReturnedError("No image from Gemini")
        return generated


__all__ = ["DEFAULT_GEMINI_MODEL", "GeminiEngine", "extract_inline_image"]
