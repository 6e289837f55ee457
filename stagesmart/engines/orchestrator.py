"""Concurrent fan-out over the registered generation engines.

Selection:
    ``GEMINI``/``REPLICATE`` run exactly one engine, ``RACE_ALL`` runs every
    registered engine in registry order. Unknown engines fail before any
    network work starts.

Settlement:
    Every selected engine runs on its own worker thread with its own deadline.
    The orchestrator waits for all of them, even after a success is known, so
    callers always see every engine's outcome. An engine that overruns its
    deadline is reported as ``timeout`` and abandoned; siblings are untouched.

Determinism:
    Outcomes keep invocation order and the primary image is chosen by the
    fixed priority order, so results never depend on completion timing.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Mapping, Optional, Sequence

from stagesmart.errors import UnknownEngineError

from .interfaces import (
    EngineMode,
    EngineOutcome,
    Failure,
    GenerationEngineProtocol,
    GenerationRequest,
    OrchestrationResult,
)

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY: tuple[EngineMode, ...] = (EngineMode.GEMINI, EngineMode.REPLICATE)
# Grace period on top of the engine's own deadline before the worker is abandoned.
_JOIN_GRACE_S = 0.5


class EngineOrchestrator:
    def __init__(
        self,
        registry: Mapping[EngineMode, GenerationEngineProtocol],
        *,
        priority: Sequence[EngineMode] = DEFAULT_PRIORITY,
        timeout: float = 120.0,
    ) -> None:
        if EngineMode.RACE_ALL in registry:
            raise ValueError("RACE_ALL is a selection mode, not an engine")
        self._registry = dict(registry)
        ordered = [mode for mode in priority if mode in self._registry]
        ordered.extend(mode for mode in self._registry if mode not in ordered)
        self._priority = tuple(ordered)
        self._timeout = float(timeout)

    @property
    def modes(self) -> tuple[EngineMode, ...]:
        return tuple(self._registry)

    @property
    def timeout(self) -> float:
        return self._timeout

    def select(self, mode: EngineMode) -> list[tuple[EngineMode, GenerationEngineProtocol]]:
        if mode is EngineMode.RACE_ALL:
            if not self._registry:
                raise UnknownEngineError("No engines are registered")
            return list(self._registry.items())
        engine = self._registry.get(mode)
        if engine is None:
            raise UnknownEngineError(f"Engine {mode.value!r} is not configured")
        return [(mode, engine)]

    def run(self, request: GenerationRequest) -> OrchestrationResult:
        selected = self.select(request.mode)
        logger.info(
            "orchestrating mode=%s engines=%s",
            request.mode.value,
            ",".join(mode.value for mode, _ in selected),
        )

        executor = ThreadPoolExecutor(max_workers=len(selected), thread_name_prefix="engine")
        try:
            started = time.monotonic()
            futures: list[tuple[EngineMode, GenerationEngineProtocol, Future]] = [
                (
                    mode,
                    engine,
                    executor.submit(engine.generate, request.image, request.prompt, timeout=self._timeout),
                )
                for mode, engine in selected
            ]
            outcomes = [
                self._settle(engine, future, started + self._timeout + _JOIN_GRACE_S)
                for _, engine, future in futures
            ]
        finally:
            # Never join workers that overran their deadline.
            executor.shutdown(wait=False)

        by_mode = {mode: outcome for (mode, _, _), outcome in zip(futures, outcomes)}
        primary_outcome = self._pick_primary(by_mode)
        result = OrchestrationResult(
            outcomes=tuple(outcomes),
            primary=primary_outcome.image if primary_outcome else None,
            primary_engine=primary_outcome.engine_id if primary_outcome else None,
        )
        if result.succeeded:
            logger.info("orchestration succeeded primary=%s", result.primary_engine)
        else:
            logger.warning("all engines failed: %s", result.failures())
        return result

    def _settle(self, engine: GenerationEngineProtocol, future: Future, join_by: float) -> EngineOutcome:
        engine_id = getattr(engine, "engine_id", type(engine).__name__)
        try:
            outcome = future.result(timeout=max(0.0, join_by - time.monotonic()))
        except FutureTimeoutError:
            logger.warning("engine %s overran its deadline; abandoning it", engine_id)
            return EngineOutcome(
                engine_id=engine_id,
                result=Failure(code="timeout", reason="timeout"),
                latency_ms=self._timeout * 1000.0,
            )
        except Exception as exc:
            logger.exception("engine %s raised outside its failure contract", engine_id)
            return EngineOutcome(
                engine_id=engine_id,
                result=Failure(code="provider_error", reason=f"{type(exc).__name__}: {exc}"),
                latency_ms=0.0,
            )
        if not isinstance(outcome, EngineOutcome):
            return EngineOutcome(
                engine_id=engine_id,
                result=Failure(code="provider_error", reason="Engine returned an invalid outcome"),
                latency_ms=0.0,
            )
        return outcome

    def _pick_primary(self, by_mode: Mapping[EngineMode, EngineOutcome]) -> Optional[EngineOutcome]:
        for mode in self._priority:
            outcome = by_mode.get(mode)
            if outcome is not None and outcome.succeeded:
                return outcome
        return None


__all__ = ["DEFAULT_PRIORITY", "EngineOrchestrator"]
