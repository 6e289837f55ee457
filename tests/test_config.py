from __future__ import annotations

from pathlib import Path

import pytest

from stagesmart.config import StagingConfig, load_config
from stagesmart.engines import EngineMode
from stagesmart.errors import UnknownEngineError
from stagesmart.factory import create_staging_container


def test_defaults() -> None:
    config = StagingConfig.from_dict({})

    assert config.storage.database == Path("stagesmart.sqlite")
    assert config.credits.starting_grant == 3
    assert config.engines.default_mode is EngineMode.RACE_ALL
    assert config.engines.priority == (EngineMode.GEMINI, EngineMode.REPLICATE)
    assert config.engines.gemini.api_key is None
    assert config.logging.level == "INFO"


def test_load_yaml_with_environment(tmp_path: Path) -> None:
    path = tmp_path / "stagesmart.yaml"
    path.write_text(
        """
storage:
  database: data/credits.sqlite
credits:
  starting_grant: 10
engines:
  default_mode: gemini
  timeout_s: 30
  priority: [replicate, gemini]
  replicate:
    safety_tolerance: 5
logging:
  level: debug
""",
        encoding="utf-8",
    )

    config = load_config(
        path,
        environ={"GEMINI_API_KEY": "g-key", "REPLICATE_API_TOKEN": "r8", "ACTIVE_ENGINE": "both"},
    )

    assert config.storage.database == Path("data/credits.sqlite")
    assert config.credits.starting_grant == 10
    assert config.engines.timeout_s == 30.0
    assert config.engines.priority == (EngineMode.REPLICATE, EngineMode.GEMINI)
    assert config.engines.replicate.safety_tolerance == 5
    assert config.engines.gemini.api_key == "g-key"
    assert config.engines.replicate.api_token == "r8"
    assert config.engines.default_mode is EngineMode.RACE_ALL
    assert config.logging.level == "DEBUG"


def test_load_json(tmp_path: Path) -> None:
    path = tmp_path / "stagesmart.json"
    path.write_text('{"engines": {"default_mode": "replicate"}}', encoding="utf-8")

    config = load_config(path, environ={})

    assert config.engines.default_mode is EngineMode.REPLICATE


def test_invalid_values_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(UnknownEngineError):
        StagingConfig.from_dict({"engines": {"default_mode": "midjourney"}})
    with pytest.raises(ValueError):
        StagingConfig.from_dict({"credits": {"starting_grant": -1}})
    with pytest.raises(ValueError):
        StagingConfig.from_dict({"storage": "nope"})
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path, environ={})


def test_factory_registers_only_configured_engines(tmp_path: Path) -> None:
    config = StagingConfig.from_dict({"storage": {"database": str(tmp_path / "db.sqlite")}})
    config.with_environment({"REPLICATE_API_TOKEN": "r8"})

    container = create_staging_container(config)

    assert container.orchestrator.modes == (EngineMode.REPLICATE,)
    assert container.classifier is None
    assert container.client is None
    assert container.ledger.check_balance("u1") == 3


def test_factory_uses_client_factory_for_gemini(tmp_path: Path) -> None:
    config = StagingConfig.from_dict({"storage": {"database": str(tmp_path / "db.sqlite")}})
    config.with_environment({"GEMINI_API_KEY": "g-key"})
    seen: list[str] = []

    def client_factory(key: str) -> object:
        seen.append(key)
        return object()

    container = create_staging_container(config, client_factory=client_factory)

    assert seen == ["g-key"]
    assert container.orchestrator.modes == (EngineMode.GEMINI,)
    assert container.classifier is not None
