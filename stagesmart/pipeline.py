"""The externally visible "stage this image" operation.

Order of work for one call:

1. credit pre-check; an owner who cannot pay gets ``InsufficientCreditError``
   before any engine is contacted;
2. orchestration across the selected engines (unknown engines fail here,
   still before network work);
3. exactly one debit when at least one engine succeeded, whatever the number
   of engines run or succeeded;
4. a history row for the attempt; a failed history write is logged and the
   result is returned anyway.

A debit that cannot complete after a success is a reconciliation anomaly:
it is logged and recorded, the image is still returned, and it is never
retried or charged to anyone else.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from .classify.rooms import RoomLabel
from .classify.vision import RoomClassifier
from .db.interfaces import CreditLedgerProtocol, GenerationLogProtocol, GenerationRecord
from .engines.interfaces import EngineOutcome, GenerationRequest
from .engines.orchestrator import EngineOrchestrator
from .errors import InsufficientCreditError, VisionError
from .image import ImagePayload

logger = logging.getLogger(__name__)

CREDITS_PER_STAGING = 1


@dataclass(frozen=True)
class LedgerReconciliationAnomaly:
    owner_id: str
    generation_id: str
    amount: int
    balance_seen: int
    detected_at: float


@dataclass(frozen=True)
class StagingResult:
    generation_id: str
    outcomes: Sequence[EngineOutcome]
    primary: Optional[ImagePayload]
    primary_engine: Optional[str]
    succeeded: bool
    new_balance: int
    anomaly: Optional[LedgerReconciliationAnomaly] = None

    def failures(self) -> dict[str, str]:
        return {outcome.engine_id: outcome.error for outcome in self.outcomes if outcome.error is not None}


class StagingPipeline:
    def __init__(
        self,
        orchestrator: EngineOrchestrator,
        ledger: CreditLedgerProtocol,
        *,
        history: GenerationLogProtocol | None = None,
        classifier: RoomClassifier | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.ledger = ledger
        self.history = history
        self.classifier = classifier

    def analyze(self, image: ImagePayload) -> RoomLabel:
        if self.classifier is None:
            raise VisionError("Room classification is not configured")
        return self.classifier.classify_image(image)

    def stage(self, owner_id: str, request: GenerationRequest) -> StagingResult:
        balance = self.ledger.check_balance(owner_id)
        if balance < CREDITS_PER_STAGING:
            logger.info("staging refused owner=%s balance=%d", owner_id, balance)
            raise InsufficientCreditError(owner_id, balance)

        generation_id = uuid.uuid4().hex
        result = self.orchestrator.run(request)

        anomaly: LedgerReconciliationAnomaly | None = None
        if result.succeeded:
            new_balance = self.ledger.debit_balance(owner_id, CREDITS_PER_STAGING, reference=generation_id)
            if new_balance is not None:
                status = "completed"
            else:
                status = "unbilled"
                new_balance = self.ledger.check_balance(owner_id)
                anomaly = LedgerReconciliationAnomaly(
                    owner_id=owner_id,
                    generation_id=generation_id,
                    amount=CREDITS_PER_STAGING,
                    balance_seen=new_balance,
                    detected_at=time.time(),
                )
                logger.error(
                    "ledger reconciliation anomaly: debit of %d failed after successful generation "
                    "owner=%s generation=%s balance=%d",
                    anomaly.amount,
                    anomaly.owner_id,
                    anomaly.generation_id,
                    anomaly.balance_seen,
                )
        else:
            status = "failed"
            new_balance = self.ledger.check_balance(owner_id)

        self._record(owner_id, generation_id, request, status, result.primary_engine, result.failures())
        logger.info(
            "staging %s owner=%s generation=%s primary=%s balance=%d",
            status,
            owner_id,
            generation_id,
            result.primary_engine,
            new_balance,
        )
        return StagingResult(
            generation_id=generation_id,
            outcomes=tuple(result.outcomes),
            primary=result.primary,
            primary_engine=result.primary_engine,
            succeeded=result.succeeded,
            new_balance=new_balance,
            anomaly=anomaly,
        )

    def _record(
        self,
        owner_id: str,
        generation_id: str,
        request: GenerationRequest,
        status: str,
        primary_engine: str | None,
        errors: dict[str, str],
    ) -> None:
        if self.history is None:
            return
        record = GenerationRecord(
            generation_id=generation_id,
            owner_id=owner_id,
            prompt=request.prompt,
            mode=request.mode.value,
            status=status,
            primary_engine=primary_engine,
            engine_errors=errors or None,
        )
        try:
            self.history.record(record)
        except Exception:
            logger.exception("failed to record generation %s owner=%s status=%s", generation_id, owner_id, status)


__all__ = ["CREDITS_PER_STAGING", "LedgerReconciliationAnomaly", "StagingResult", "StagingPipeline"]
