from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from google.genai import types

from stagesmart.errors import VisionError
from stagesmart.image import ImagePayload

from .rooms import ROOM_INSTRUCTION, RoomLabel, classify

logger = logging.getLogger(__name__)


class VisionClientProtocol(Protocol):
    def describe(self, image: ImagePayload, instruction: str) -> str:
        """Return the provider's unconstrained text answer for ``image``."""


@dataclass
class GeminiVisionClient(VisionClientProtocol):
    """Text-only Gemini call used to label a photo."""

    client: Any
    model: str = "gemini-2.5-flash"
    max_output_tokens: int = 20

    def describe(self, image: ImagePayload, instruction: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part(inline_data=types.Blob(data=image.data, mime_type=image.media_type)),
                    instruction,
                ],
                config=types.GenerateContentConfig(
                    max_output_tokens=self.max_output_tokens,
                    temperature=0.0,
                ),
            )
        except Exception as exc:
            raise VisionError(f"Vision request failed: {exc}") from exc

        text = getattr(response, "text", None)
        if not isinstance(text, str):
            raise VisionError("Vision provider returned no text")
        return text.strip()


@dataclass
class RoomClassifier:
    vision: VisionClientProtocol
    instruction: str = ROOM_INSTRUCTION

    def classify_image(self, image: ImagePayload) -> RoomLabel:
        raw = self.vision.describe(image, self.instruction)
        label = classify(raw)
        logger.debug("room classification raw=%r label=%s", raw, label)
        return label


__all__ = ["VisionClientProtocol", "GeminiVisionClient", "RoomClassifier"]
