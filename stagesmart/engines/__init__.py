"""Generation engines and the orchestrator that fans requests out to them."""

from .base import BaseEngine, Deadline
from .interfaces import (
    MAX_PROMPT_LENGTH,
    EngineMode,
    EngineOutcome,
    Failure,
    GenerationEngineProtocol,
    GenerationRequest,
    OrchestrationResult,
    Success,
)
from .orchestrator import DEFAULT_PRIORITY, EngineOrchestrator

__all__ = [
    "BaseEngine",
    "Deadline",
    "MAX_PROMPT_LENGTH",
    "EngineMode",
    "EngineOutcome",
    "Failure",
    "GenerationEngineProtocol",
    "GenerationRequest",
    "OrchestrationResult",
    "Success",
    "DEFAULT_PRIORITY",
    "EngineOrchestrator",
]
