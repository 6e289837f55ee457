from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence, Union

from stagesmart.errors import InvalidPromptError, UnknownEngineError
from stagesmart.image import ImagePayload

MAX_PROMPT_LENGTH = 2000


class EngineMode(str, Enum):
    GEMINI = "gemini"
    REPLICATE = "replicate"
    RACE_ALL = "both"

    @classmethod
    def parse(cls, value: "str | EngineMode | None", default: "EngineMode | None" = None) -> "EngineMode":
        if isinstance(value, EngineMode):
            return value
        if value is None or not str(value).strip():
            if default is None:
                raise UnknownEngineError("No engine mode given")
            return default
        lowered = str(value).strip().lower()
        for mode in cls:
            if mode.value == lowered or mode.name.lower() == lowered:
                return mode
        raise UnknownEngineError(f"Unknown engine mode: {value!r}")


@dataclass(frozen=True)
class GenerationRequest:
    image: ImagePayload
    prompt: str
    mode: EngineMode = EngineMode.RACE_ALL

    def __post_init__(self) -> None:
        prompt = (self.prompt or "").strip()
        if not prompt:
            raise InvalidPromptError("Prompt is required")
        if len(prompt) > MAX_PROMPT_LENGTH:
            raise InvalidPromptError(f"Prompt exceeds {MAX_PROMPT_LENGTH} characters")
        object.__setattr__(self, "prompt", prompt)


@dataclass(frozen=True)
class Success:
    image: ImagePayload


@dataclass(frozen=True)
class Failure:
    code: str
    reason: str


@dataclass(frozen=True)
class EngineOutcome:
    engine_id: str
    result: Union[Success, Failure]
    latency_ms: float

    @property
    def succeeded(self) -> bool:
        return isinstance(self.result, Success)

    @property
    def image(self) -> Optional[ImagePayload]:
        return self.result.image if isinstance(self.result, Success) else None

    @property
    def error(self) -> Optional[str]:
        return self.result.reason if isinstance(self.result, Failure) else None


@dataclass(frozen=True)
class OrchestrationResult:
    outcomes: Sequence[EngineOutcome]
    primary: Optional[ImagePayload]
    primary_engine: Optional[str]

    @property
    def succeeded(self) -> bool:
        return self.primary is not None

    def failures(self) -> dict[str, str]:
        return {
            outcome.engine_id: outcome.result.reason
            for outcome in self.outcomes
            if isinstance(outcome.result, Failure)
        }


class GenerationEngineProtocol(Protocol):
    engine_id: str

    def generate(self, image: ImagePayload, prompt: str, *, timeout: float) -> EngineOutcome:
        """Turn ``image`` + ``prompt`` into a staged image; never raises for provider failures."""


__all__ = [
    "MAX_PROMPT_LENGTH",
    "EngineMode",
    "GenerationRequest",
    "Success",
    "Failure",
    "EngineOutcome",
    "OrchestrationResult",
    "GenerationEngineProtocol",
]
