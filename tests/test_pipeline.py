from __future__ import annotations

import logging
import threading

import pytest

from stagesmart.db import SQLiteCreditLedger
from stagesmart.engines import EngineMode, EngineOrchestrator, GenerationRequest
from stagesmart.errors import InsufficientCreditError, UnknownEngineError, VisionError
from stagesmart.classify import RoomClassifier, RoomLabel
from stagesmart.pipeline import StagingPipeline

from conftest import StubEngine


class _RefusingLedger:
    """Ledger whose balance says yes but whose debit always loses the race."""

    def __init__(self) -> None:
        self.debits: list[tuple[str, int, str | None]] = []

    def check_balance(self, owner_id: str) -> int:
        return 1

    def debit_balance(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> int | None:
        self.debits.append((owner_id, amount, reference))
        return None

    def try_debit(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> bool:
        return self.debit_balance(owner_id, amount, reference=reference) is not None


def _pipeline(ledger, history=None, **engines) -> StagingPipeline:
    registry = {}
    if "gemini" in engines:
        registry[EngineMode.GEMINI] = engines["gemini"]
    if "replicate" in engines:
        registry[EngineMode.REPLICATE] = engines["replicate"]
    return StagingPipeline(EngineOrchestrator(registry, timeout=5.0), ledger, history=history)


def _request(image, mode: EngineMode = EngineMode.RACE_ALL) -> GenerationRequest:
    return GenerationRequest(image=image, prompt="Photoreal modern virtual staging", mode=mode)


def test_race_all_with_two_successes_debits_exactly_once(ledger, history, png_image, staged_image) -> None:
    gemini = StubEngine("gemini", output=staged_image)
    replicate = StubEngine("replicate", output=staged_image)
    pipeline = _pipeline(ledger, history, gemini=gemini, replicate=replicate)

    result = pipeline.stage("u1", _request(png_image))

    assert result.succeeded
    assert result.primary_engine == "gemini"
    assert result.new_balance == 2
    assert ledger.check_balance("u1") == 2
    debits = [e for e in ledger.entries("u1") if e.kind == "debit"]
    assert len(debits) == 1
    assert debits[0].reference == result.generation_id
    assert len(gemini.calls) == 1 and len(replicate.calls) == 1

    record = history.get(result.generation_id)
    assert record is not None
    assert record.status == "completed"
    assert record.mode == "both"


def test_zero_balance_refuses_without_calling_engines(tmp_path, png_image, staged_image) -> None:
    ledger = SQLiteCreditLedger(tmp_path / "ledger.sqlite", starting_grant=0)
    gemini = StubEngine("gemini", output=staged_image)
    replicate = StubEngine("replicate", output=staged_image)
    pipeline = _pipeline(ledger, gemini=gemini, replicate=replicate)

    with pytest.raises(InsufficientCreditError) as excinfo:
        pipeline.stage("u1", _request(png_image))

    assert excinfo.value.balance == 0
    assert gemini.calls == [] and replicate.calls == []
    assert ledger.check_balance("u1") == 0


def test_primary_failure_falls_back_and_debits_once(ledger, png_image, staged_image) -> None:
    pipeline = _pipeline(
        ledger,
        gemini=StubEngine("gemini", reason="No image from Gemini", code="no_image_returned"),
        replicate=StubEngine("replicate", output=staged_image),
    )

    result = pipeline.stage("u1", _request(png_image))

    assert result.succeeded
    assert result.primary_engine == "replicate"
    assert result.primary == staged_image
    assert result.failures() == {"gemini": "No image from Gemini"}
    assert result.new_balance == 2


def test_all_engines_failing_leaves_balance_unchanged(ledger, history, png_image) -> None:
    pipeline = _pipeline(
        ledger,
        history,
        gemini=StubEngine("gemini", reason="quota"),
        replicate=StubEngine("replicate", reason="bad token"),
    )

    result = pipeline.stage("u1", _request(png_image))

    assert not result.succeeded
    assert result.primary is None
    assert result.new_balance == 3
    assert result.failures() == {"gemini": "quota", "replicate": "bad token"}
    assert [e.kind for e in ledger.entries("u1")] == []
    record = history.get(result.generation_id)
    assert record.status == "failed"
    assert record.engine_errors == {"gemini": "quota", "replicate": "bad token"}


def test_unknown_engine_does_not_debit(ledger, png_image, staged_image) -> None:
    gemini = StubEngine("gemini", output=staged_image)
    pipeline = _pipeline(ledger, gemini=gemini)

    with pytest.raises(UnknownEngineError):
        pipeline.stage("u1", _request(png_image, EngineMode.REPLICATE))

    assert gemini.calls == []
    assert ledger.check_balance("u1") == 3


def test_failed_debit_after_success_is_logged_not_raised(png_image, staged_image, caplog) -> None:
    ledger = _RefusingLedger()
    pipeline = _pipeline(ledger, gemini=StubEngine("gemini", output=staged_image))

    with caplog.at_level(logging.ERROR, logger="stagesmart.pipeline"):
        result = pipeline.stage("u1", _request(png_image, EngineMode.GEMINI))

    assert result.succeeded
    assert result.primary == staged_image
    assert result.anomaly is not None
    assert result.anomaly.generation_id == result.generation_id
    assert ledger.debits == [("u1", 1, result.generation_id)]
    assert any("reconciliation anomaly" in rec.getMessage() for rec in caplog.records)


def test_concurrent_stagings_at_balance_two_end_at_zero(ledger, png_image, staged_image) -> None:
    ledger.try_debit("u1")
    pipeline = _pipeline(ledger, gemini=StubEngine("gemini", output=staged_image, delay_s=0.05))
    results = []
    barrier = threading.Barrier(2)

    def worker() -> None:
        barrier.wait()
        results.append(pipeline.stage("u1", _request(png_image, EngineMode.GEMINI)))

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(result.succeeded for result in results)
    assert ledger.check_balance("u1") == 0


def test_analyze_delegates_to_classifier(ledger, png_image) -> None:
    class _Vision:
        def describe(self, image, instruction):
            return "Bathroom"

    pipeline = StagingPipeline(EngineOrchestrator({}), ledger, classifier=RoomClassifier(_Vision()))

    assert pipeline.analyze(png_image) is RoomLabel.BATHROOM


def test_analyze_without_classifier_raises(ledger, png_image) -> None:
    with pytest.raises(VisionError):
        StagingPipeline(EngineOrchestrator({}), ledger).analyze(png_image)


class _BrokenHistory:
    def __init__(self) -> None:
        self.attempts = 0

    def record(self, record) -> None:
        self.attempts += 1
        raise RuntimeError("disk full")

    def get(self, generation_id):
        return None

    def list_for_owner(self, owner_id, *, limit=50):
        return []


def test_history_failure_still_returns_paid_image(ledger, png_image, staged_image, caplog) -> None:
    history = _BrokenHistory()
    pipeline = _pipeline(ledger, history, gemini=StubEngine("gemini", output=staged_image))

    with caplog.at_level(logging.ERROR, logger="stagesmart.pipeline"):
        result = pipeline.stage("u1", _request(png_image, EngineMode.GEMINI))

    assert result.succeeded
    assert result.primary == staged_image
    assert result.new_balance == 2
    assert ledger.check_balance("u1") == 2
    assert history.attempts == 1
    assert any("failed to record generation" in rec.getMessage() for rec in caplog.records)


class _PurchaseRacingLedger:
    """Wraps a real ledger and credits a concurrent purchase right after each debit."""

    def __init__(self, inner: SQLiteCreditLedger) -> None:
        self.inner = inner

    def check_balance(self, owner_id: str) -> int:
        return self.inner.check_balance(owner_id)

    def debit_balance(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> int | None:
        balance = self.inner.debit_balance(owner_id, amount, reference=reference)
        self.inner.credit(owner_id, 10, reference="package:10pack")
        return balance


def test_new_balance_comes_from_the_debit_itself(ledger, png_image, staged_image) -> None:
    pipeline = _pipeline(_PurchaseRacingLedger(ledger), gemini=StubEngine("gemini", output=staged_image))

    result = pipeline.stage("u1", _request(png_image, EngineMode.GEMINI))

    assert result.new_balance == 2
    assert ledger.check_balance("u1") == 12
