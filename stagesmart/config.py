from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .db.ledger import DEFAULT_STARTING_GRANT
from .engines.gemini import DEFAULT_GEMINI_MODEL
from .engines.interfaces import EngineMode
from .engines.replicate import DEFAULT_API_BASE, DEFAULT_REPLICATE_MODEL

GEMINI_KEY_ENV = "GEMINI_API_KEY"
REPLICATE_TOKEN_ENV = "REPLICATE_API_TOKEN"
ACTIVE_ENGINE_ENV = "ACTIVE_ENGINE"


@dataclass
class StorageConfig:
    database: Path = Path("stagesmart.sqlite")


@dataclass
class CreditsConfig:
    starting_grant: int = DEFAULT_STARTING_GRANT

    def __post_init__(self) -> None:
        self.starting_grant = int(self.starting_grant)
        if self.starting_grant < 0:
            raise ValueError("credits.starting_grant cannot be negative")


@dataclass
class GeminiConfig:
    model: str = DEFAULT_GEMINI_MODEL
    api_key: Optional[str] = None


@dataclass
class ReplicateConfig:
    model: str = DEFAULT_REPLICATE_MODEL
    api_token: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    output_format: str = "jpg"
    safety_tolerance: int = 2
    poll_interval_s: float = 1.0


@dataclass
class VisionConfig:
    enabled: bool = True
    model: str = "gemini-2.5-flash"
    max_output_tokens: int = 20


@dataclass
class EnginesConfig:
    default_mode: EngineMode = EngineMode.RACE_ALL
    timeout_s: float = 120.0
    priority: tuple[EngineMode, ...] = (EngineMode.GEMINI, EngineMode.REPLICATE)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    replicate: ReplicateConfig = field(default_factory=ReplicateConfig)

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ValueError("engines.timeout_s must be positive")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    logfile: Optional[Path] = None


@dataclass
class StagingConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    credits: CreditsConfig = field(default_factory=CreditsConfig)
    engines: EnginesConfig = field(default_factory=EnginesConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "StagingConfig":
        raw = raw or {}
        storage_data = _section(raw, "storage")
        credits_data = _section(raw, "credits")
        engines_data = _section(raw, "engines")
        gemini_data = _section(engines_data, "gemini")
        replicate_data = _section(engines_data, "replicate")
        vision_data = _section(raw, "vision")
        logging_data = _section(raw, "logging")

        priority_raw = engines_data.get("priority")
        if priority_raw:
            priority = tuple(EngineMode.parse(str(item)) for item in priority_raw)
        else:
            priority = (EngineMode.GEMINI, EngineMode.REPLICATE)

        engines = EnginesConfig(
            default_mode=EngineMode.parse(engines_data.get("default_mode"), default=EngineMode.RACE_ALL),
            timeout_s=float(engines_data.get("timeout_s", 120.0)),
            priority=priority,
            gemini=GeminiConfig(
                model=str(gemini_data.get("model", DEFAULT_GEMINI_MODEL)),
                api_key=_optional_str(gemini_data.get("api_key")),
            ),
            replicate=ReplicateConfig(
                model=str(replicate_data.get("model", DEFAULT_REPLICATE_MODEL)),
                api_token=_optional_str(replicate_data.get("api_token")),
                api_base=str(replicate_data.get("api_base", DEFAULT_API_BASE)),
                output_format=str(replicate_data.get("output_format", "jpg")),
                safety_tolerance=int(replicate_data.get("safety_tolerance", 2)),
                poll_interval_s=float(replicate_data.get("poll_interval_s", 1.0)),
            ),
        )

        logfile = logging_data.get("logfile")
        return cls(
            storage=StorageConfig(database=Path(str(storage_data.get("database", "stagesmart.sqlite")))),
            credits=CreditsConfig(starting_grant=credits_data.get("starting_grant", DEFAULT_STARTING_GRANT)),
            engines=engines,
            vision=VisionConfig(
                enabled=bool(vision_data.get("enabled", True)),
                model=str(vision_data.get("model", "gemini-2.5-flash")),
                max_output_tokens=int(vision_data.get("max_output_tokens", 20)),
            ),
            logging=LoggingConfig(
                level=str(logging_data.get("level", "INFO")).upper(),
                logfile=Path(str(logfile)) if logfile else None,
            ),
        )

    def with_environment(self, environ: Mapping[str, str] | None = None) -> "StagingConfig":
        """Fill secrets and the active engine from the process environment.

        Values already present in the file win over the environment for the
        credentials; ``ACTIVE_ENGINE`` always overrides ``engines.default_mode``.
        """

        if environ is None:
            load_dotenv()
            environ = os.environ
        gemini = self.engines.gemini
        replicate = self.engines.replicate
        if not gemini.api_key:
            gemini.api_key = _optional_str(environ.get(GEMINI_KEY_ENV))
        if not replicate.api_token:
            replicate.api_token = _optional_str(environ.get(REPLICATE_TOKEN_ENV))
        active = environ.get(ACTIVE_ENGINE_ENV)
        if active and active.strip():
            self.engines.default_mode = EngineMode.parse(active)
        return self


def _section(raw: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Configuration section '{key}' must be a mapping")
    return dict(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_config(path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> StagingConfig:
    """Read a YAML or JSON config file (or defaults) and apply the environment."""

    if path is None:
        return StagingConfig().with_environment(environ)
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return StagingConfig.from_dict(data).with_environment(environ)


__all__ = [
    "ACTIVE_ENGINE_ENV",
    "GEMINI_KEY_ENV",
    "REPLICATE_TOKEN_ENV",
    "CreditsConfig",
    "EnginesConfig",
    "GeminiConfig",
    "LoggingConfig",
    "ReplicateConfig",
    "StagingConfig",
    "StorageConfig",
    "VisionConfig",
    "load_config",
]
