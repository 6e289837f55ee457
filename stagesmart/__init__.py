"""Credit-gated virtual staging: engine orchestration, ledger and room classification."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - type checking helper
    from .config import StagingConfig, load_config
    from .factory import create_staging_container
    from .pipeline import StagingPipeline, StagingResult

__all__ = [
    "StagingConfig",
    "load_config",
    "create_staging_container",
    "StagingPipeline",
    "StagingResult",
]


def __getattr__(name: str) -> Any:  # pragma: no cover - dispatch helper
    if name in {"StagingConfig", "load_config"}:
        module = import_module(".config", __name__)
    elif name == "create_staging_container":
        module = import_module(".factory", __name__)
    elif name in {"StagingPipeline", "StagingResult"}:
        module = import_module(".pipeline", __name__)
    else:
        raise AttributeError(name)

    value = getattr(module, name)
    globals()[name] = value
    return value
