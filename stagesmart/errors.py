"""Exception hierarchy shared by the staging core and its adapters."""

from __future__ import annotations


class StagingError(Exception):
    """Base class for every error raised by the staging core."""

    code = "staging_error"


class MalformedImageError(StagingError, ValueError):
    """Raised when an image payload cannot be decoded or is not allow-listed."""

    code = "malformed_image"


class InvalidPromptError(StagingError, ValueError):
    """Raised when a staging prompt is empty or longer than the allowed limit."""

    code = "invalid_prompt"


class UnknownEngineError(StagingError, LookupError):
    """Raised when a mode names an engine that is not registered."""

    code = "unknown_engine"


class InsufficientCreditError(StagingError):
    """Raised by the pre-check when the owner cannot pay for one attempt."""

    code = "insufficient_credit"

    def __init__(self, owner_id: str, balance: int) -> None:
        super().__init__(f"Insufficient credits for {owner_id!r} (balance={balance})")
        self.owner_id = owner_id
        self.balance = balance


class UnknownPackageError(StagingError, LookupError):
    code = "unknown_package"


class VisionError(StagingError):
    """Raised when the vision provider cannot describe an image."""

    code = "vision_error"


class EngineError(StagingError):
    """Failure of a single engine invocation.

    Engines raise these internally; the engine wrapper converts them into
    failure outcomes so they never cross the orchestrator boundary.
    """

    code = "provider_error"


class ProviderCallError(EngineError):
    code = "provider_error"


class NoImageReturnedError(EngineError):
    code = "no_image_returned"


class FetchFailedError(EngineError):
    code = "fetch_failed"


class EngineTimeoutError(EngineError):
    code = "timeout"


__all__ = [
    "StagingError",
    "MalformedImageError",
    "InvalidPromptError",
    "UnknownEngineError",
    "InsufficientCreditError",
    "UnknownPackageError",
    "VisionError",
    "EngineError",
    "ProviderCallError",
    "NoImageReturnedError",
    "FetchFailedError",
    "EngineTimeoutError",
]
