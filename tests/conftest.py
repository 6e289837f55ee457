from __future__ import annotations

from pathlib import Path
import sys
import threading
import time
from typing import Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stagesmart.db import SQLiteCreditLedger, SQLiteGenerationLog
from stagesmart.engines import EngineOutcome, Failure, Success
from stagesmart.image import ImagePayload

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x11" * 24


class StubEngine:
    """In-process engine that records calls and answers with a fixed outcome."""

    def __init__(
        self,
        engine_id: str,
        *,
        output: Optional[ImagePayload] = None,
        code: str = "provider_error",
        reason: str = "boom",
        delay_s: float = 0.0,
        raises: Optional[Exception] = None,
    ) -> None:
        self.engine_id = engine_id
        self.output = output
        self.code = code
        self.reason = reason
        self.delay_s = delay_s
        self.raises = raises
        self.calls: list[tuple[ImagePayload, str, float]] = []
        self.finished = threading.Event()

    def generate(self, image: ImagePayload, prompt: str, *, timeout: float) -> EngineOutcome:
        self.calls.append((image, prompt, timeout))
        start = time.perf_counter()
        try:
            if self.delay_s:
                time.sleep(self.delay_s)
            if self.raises is not None:
                raise self.raises
            if self.output is not None:
                result = Success(image=self.output)
            else:
                result = Failure(code=self.code, reason=self.reason)
            return EngineOutcome(self.engine_id, result, (time.perf_counter() - start) * 1000.0)
        finally:
            self.finished.set()


@pytest.fixture()
def png_image() -> ImagePayload:
    return ImagePayload(data=PNG_BYTES, media_type="image/png")


@pytest.fixture()
def staged_image() -> ImagePayload:
    return ImagePayload(data=JPEG_BYTES, media_type="image/jpeg")


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "stagesmart.sqlite"


@pytest.fixture()
def ledger(db_path: Path) -> SQLiteCreditLedger:
    return SQLiteCreditLedger(db_path, starting_grant=3)


@pytest.fixture()
def history(db_path: Path) -> SQLiteGenerationLog:
    return SQLiteGenerationLog(db_path)
