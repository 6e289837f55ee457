from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from stagesmart.errors import EngineError, EngineTimeoutError
from stagesmart.image import ImagePayload

from .interfaces import EngineOutcome, Failure, GenerationEngineProtocol, Success

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Deadline:
    """Monotonic deadline shared by every network step of one invocation."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + max(0.0, float(seconds)))

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def remaining(self) -> float:
        left = self.expires_at - time.monotonic()
        if left <= 0:
            raise EngineTimeoutError("timeout")
        return left


class BaseEngine(GenerationEngineProtocol):
    """Converts engine exceptions into :class:`EngineOutcome` failures.

    Subclasses implement :meth:`_produce` and raise the typed ``EngineError``
    subclasses; anything else a provider SDK throws is reported as a
    ``provider_error`` so one backend can never abort its siblings.
    """

    engine_id: str = "engine"

    def _produce(self, image: ImagePayload, prompt: str, deadline: Deadline) -> ImagePayload:
        raise NotImplementedError

    def generate(self, image: ImagePayload, prompt: str, *, timeout: float) -> EngineOutcome:
        start = time.perf_counter()
        deadline = Deadline.after(timeout)
        try:
            generated = self._produce(image, prompt, deadline)
        except EngineError as exc:
            result = Failure(code=exc.code, reason=str(exc) or exc.code)
        except Exception as exc:
            logger.warning("engine %s raised unexpectedly: %s", self.engine_id, exc)
            result = Failure(code="provider_error", reason=f"{type(exc).__name__}: {exc}")
        else:
            result = Success(image=generated)
        elapsed = (time.perf_counter() - start) * 1000.0

        if isinstance(result, Failure):
            logger.info("engine %s failed code=%s (ms=%.0f): %s", self.engine_id, result.code, elapsed, result.reason)
        else:
            logger.info("engine %s produced %s bytes (ms=%.0f)", self.engine_id, result.image.size, elapsed)
        return EngineOutcome(engine_id=self.engine_id, result=result, latency_ms=elapsed)


__all__ = ["BaseEngine", "Deadline"]
