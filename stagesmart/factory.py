from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from google import genai

from .classify.vision import GeminiVisionClient, RoomClassifier
from .config import StagingConfig
from .db.generations import SQLiteGenerationLog
from .db.interfaces import CreditLedgerProtocol, GenerationLogProtocol
from .db.ledger import SQLiteCreditLedger
from .engines.gemini import GeminiEngine
from .engines.interfaces import EngineMode, GenerationEngineProtocol
from .engines.orchestrator import EngineOrchestrator
from .engines.replicate import ReplicateEngine
from .pipeline import StagingPipeline

logger = logging.getLogger(__name__)


@dataclass
class StagingContainer:
    config: StagingConfig
    ledger: CreditLedgerProtocol
    history: GenerationLogProtocol
    orchestrator: EngineOrchestrator
    classifier: RoomClassifier | None
    pipeline: StagingPipeline
    client: Any | None

    @property
    def default_mode(self) -> EngineMode:
        return self.config.engines.default_mode


def build_engine_registry(
    config: StagingConfig,
    client: Any | None,
) -> Dict[EngineMode, GenerationEngineProtocol]:
    """Engines whose credentials are configured, keyed by mode."""

    registry: Dict[EngineMode, GenerationEngineProtocol] = {}
    if client is not None:
        registry[EngineMode.GEMINI] = GeminiEngine(client=client, model=config.engines.gemini.model)
    else:
        logger.info("gemini engine disabled: no API key configured")

    replicate_cfg = config.engines.replicate
    if replicate_cfg.api_token:
        registry[EngineMode.REPLICATE] = ReplicateEngine(
            api_token=replicate_cfg.api_token,
            model=replicate_cfg.model,
            output_format=replicate_cfg.output_format,
            safety_tolerance=replicate_cfg.safety_tolerance,
            poll_interval_s=replicate_cfg.poll_interval_s,
            api_base=replicate_cfg.api_base,
        )
    else:
        logger.info("replicate engine disabled: no API token configured")
    return registry


def create_staging_container(
    config: StagingConfig,
    *,
    client_factory: Optional[Callable[[str], Any]] = None,
) -> StagingContainer:
    gemini_key = config.engines.gemini.api_key
    client: Any | None = None
    if gemini_key:
        factory = client_factory or (lambda key: genai.Client(api_key=key))
        client = factory(gemini_key)

    ledger = SQLiteCreditLedger(
        config.storage.database,
        starting_grant=config.credits.starting_grant,
    )
    history = SQLiteGenerationLog(config.storage.database)
    orchestrator = EngineOrchestrator(
        build_engine_registry(config, client),
        priority=config.engines.priority,
        timeout=config.engines.timeout_s,
    )

    classifier: RoomClassifier | None = None
    if config.vision.enabled and client is not None:
        classifier = RoomClassifier(
            GeminiVisionClient(
                client=client,
                model=config.vision.model,
                max_output_tokens=config.vision.max_output_tokens,
            )
        )

    pipeline = StagingPipeline(orchestrator, ledger, history=history, classifier=classifier)
    logger.info(
        "staging container ready engines=%s default_mode=%s database=%s",
        ",".join(mode.value for mode in orchestrator.modes) or "-",
        config.engines.default_mode.value,
        config.storage.database,
    )
    return StagingContainer(
        config=config,
        ledger=ledger,
        history=history,
        orchestrator=orchestrator,
        classifier=classifier,
        pipeline=pipeline,
        client=client,
    )


__all__ = ["StagingContainer", "build_engine_registry", "create_staging_container"]
