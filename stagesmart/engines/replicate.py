"""Reference-result engine backed by a Replicate-hosted image-editing model.

The provider answers with a URL, so one invocation is two network steps:

1. create the prediction (``Prefer: wait``), polling its ``get`` URL while it
   is still running;
2. fetch the output URL to materialise bytes.

Failures are reported per step: a provider error or failed prediction is a
``provider_error``, an empty output is ``no_image_returned`` and a broken
download is ``fetch_failed``. Both steps spend the same deadline.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

import requests

from stagesmart.errors import (
    EngineTimeoutError,
    FetchFailedError,
    NoImageReturnedError,
    ProviderCallError,
)
from stagesmart.image import ALLOWED_MEDIA_TYPES, ImagePayload, encode
from stagesmart.image.codec import normalise_media_type

from .base import BaseEngine, Deadline

logger = logging.getLogger(__name__)

DEFAULT_REPLICATE_MODEL = "black-forest-labs/flux-kontext-pro"
DEFAULT_API_BASE = "https://api.replicate.com/v1"

_OUTPUT_MEDIA_TYPES = {"jpg": "image/jpeg", "jpeg": "image/jpeg", "png": "image/png", "webp": "image/webp"}
_PENDING_STATUSES = {"starting", "processing"}
_FAILED_STATUSES = {"failed", "canceled"}
# The API caps a synchronous wait at 60 seconds.
_MAX_SYNC_WAIT_S = 60


def _output_url(output: Any) -> str | None:
    if isinstance(output, str):
        return output.strip() or None
    if isinstance(output, (list, tuple)) and output:
        first = output[0]
        if isinstance(first, str) and first.strip():
            return first.strip()
    return None


@dataclass
class ReplicateEngine(BaseEngine):
    api_token: str
    model: str = DEFAULT_REPLICATE_MODEL
    output_format: str = "jpg"
    safety_tolerance: int = 2
    poll_interval_s: float = 1.0
    api_base: str = DEFAULT_API_BASE
    engine_id: str = "replicate"

    def __post_init__(self) -> None:
        self.api_base = self.api_base.rstrip("/") or self.api_base

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _input(self, image: ImagePayload, prompt: str) -> dict[str, object]:
        return {
            "prompt": prompt,
            "input_image": encode(image),
            "output_format": self.output_format,
            "safety_tolerance": int(self.safety_tolerance),
        }

    def _json(self, response: requests.Response, step: str) -> Mapping[str, Any]:
        if response.status_code >= 400:
            message = response.text.strip() or f"HTTP {response.status_code}"
            raise ProviderCallError(f"Replicate {step} failed ({response.status_code}): {message}")
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderCallError(f"Invalid JSON payload from Replicate {step}") from exc
        if not isinstance(data, Mapping):
            raise ProviderCallError(f"Unexpected response format from Replicate {step}")
        return data

    # ------------------------------------------------------------------
    # Step 1: prediction
    # ------------------------------------------------------------------
    def _create_prediction(self, image: ImagePayload, prompt: str, deadline: Deadline) -> Mapping[str, Any]:
        remaining = deadline.remaining()
        headers = self._headers()
        headers["Prefer"] = f"wait={max(1, min(_MAX_SYNC_WAIT_S, int(remaining)))}"
        try:
            response = requests.post(
                f"{self.api_base}/models/{self.model}/predictions",
                json={"input": self._input(image, prompt)},
                headers=headers,
                timeout=remaining,
            )
        except requests.Timeout as exc:
            raise EngineTimeoutError("timeout") from exc
        except requests.RequestException as exc:
            raise ProviderCallError(f"Failed to reach Replicate: {exc}") from exc
        return self._json(response, "prediction")

    def _await_prediction(self, prediction: Mapping[str, Any], deadline: Deadline) -> Mapping[str, Any]:
        while prediction.get("status") in _PENDING_STATUSES:
            poll_url = (prediction.get("urls") or {}).get("get")
            if not poll_url:
                raise ProviderCallError("Replicate prediction is pending without a status URL")
            time.sleep(min(self.poll_interval_s, deadline.remaining()))
            try:
                response = requests.get(poll_url, headers=self._headers(), timeout=deadline.remaining())
            except requests.Timeout as exc:
                raise EngineTimeoutError("timeout") from exc
            except requests.RequestException as exc:
                raise ProviderCallError(f"Failed to poll Replicate: {exc}") from exc
            if response.status_code == 429:
                continue
            prediction = self._json(response, "status")

        status = prediction.get("status")
        if status in _FAILED_STATUSES:
            detail = prediction.get("error") or status
            raise ProviderCallError(f"Replicate prediction {status}: {detail}")
        return prediction

    # ------------------------------------------------------------------
    # Step 2: fetch
    # ------------------------------------------------------------------
    def _media_type(self, response: requests.Response) -> str:
        header = response.headers.get("Content-Type", "") if response.headers else ""
        media_type = normalise_media_type(header.split(";", 1)[0]) if header else ""
        if media_type in ALLOWED_MEDIA_TYPES:
            return media_type
        return _OUTPUT_MEDIA_TYPES.get(self.output_format.lower(), "image/jpeg")

    def _fetch(self, url: str, deadline: Deadline) -> ImagePayload:
        try:
            response = requests.get(url, timeout=deadline.remaining())
        except requests.Timeout as exc:
            raise EngineTimeoutError("timeout") from exc
        except requests.RequestException as exc:
            raise FetchFailedError(f"Failed to fetch Replicate output: {exc}") from exc
        if response.status_code >= 400:
            raise FetchFailedError(f"Replicate output fetch returned HTTP {response.status_code}")
        if not response.content:
            raise FetchFailedError("Replicate output fetch returned an empty body")
        return ImagePayload(data=response.content, media_type=self._media_type(response))

    def _produce(self, image: ImagePayload, prompt: str, deadline: Deadline) -> ImagePayload:
        prediction = self._create_prediction(image, prompt, deadline)
        prediction = self._await_prediction(prediction, deadline)
        url = _output_url(prediction.get("output"))
        if url is None:
            raise NoImageReturnedError("No image from Replicate")
        logger.debug("replicate prediction %s ready, fetching %s", prediction.get("id"), url)
        return self._fetch(url, deadline)


__all__ = ["DEFAULT_REPLICATE_MODEL", "ReplicateEngine"]
