from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, TextIO, TypeVar, Union

from rich.console import Console
from rich.logging import RichHandler

T = TypeVar("T")

_STYLES = {logging.DEBUG: "dim", logging.INFO: "white", logging.WARNING: "yellow", logging.ERROR: "red"}


def _level_number(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    name = level.upper().strip()
    number = logging.getLevelName("WARNING" if name == "WARN" else name)
    return number if isinstance(number, int) else logging.INFO


@dataclass
class RunLogger:
    """Step-tagged console lines for CLI commands, mirrored to ``logfile`` when set."""

    console: Console
    level: int = logging.INFO
    logfile: Optional[Path] = None
    _mirror: Optional[TextIO] = field(init=False, repr=False, default=None)

    def __post_init__(self) -> None:
        self.level = _level_number(self.level)
        if self.logfile:
            self.logfile.parent.mkdir(parents=True, exist_ok=True)
            self._mirror = self.logfile.open("a", encoding="utf-8")

    def close(self) -> None:
        if self._mirror:
            self._mirror.close()
            self._mirror = None

    def log(self, step: str, message: str, level: Union[str, int] = "INFO", elapsed_ms: Optional[float] = None) -> None:
        number = _level_number(level)
        if number < self.level:
            return
        stamp = datetime.now().strftime("%H:%M:%S")
        timing = f" ({elapsed_ms:.0f} ms)" if elapsed_ms is not None else ""
        line = f"{stamp} {logging.getLevelName(number)[:4]:<4} {step:>8} | {message}{timing}"
        self.console.print(line, style=_STYLES.get(number, "white"), highlight=False, soft_wrap=True)
        if self._mirror:
            self._mirror.write(line + "\n")
            self._mirror.flush()

    def timed(
        self,
        step: str,
        message: Union[str, Callable[[T], str]],
        func: Callable[..., T],
        *args,
        **kwargs,
    ) -> T:
        """Run ``func`` and log its duration; failures are logged at ERROR and re-raised."""

        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            self.log(step, f"error: {exc}", level="ERROR", elapsed_ms=(time.perf_counter() - start) * 1000.0)
            raise
        text = message(result) if callable(message) else message
        self.log(step, text, elapsed_ms=(time.perf_counter() - start) * 1000.0)
        return result


def create_logger(level: str, logfile: Optional[Path] = None) -> RunLogger:
    return RunLogger(console=Console(stderr=True), level=_level_number(level), logfile=logfile)


def configure_logging(level: str, *, console: Console) -> None:
    """Send ``stagesmart.*`` library records to the CLI console."""

    logging.basicConfig(
        level=_level_number(level),
        format="%(name)s - %(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


__all__ = ["RunLogger", "configure_logging", "create_logger"]
