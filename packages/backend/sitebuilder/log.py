"""Structured JSON logging for the site builder backend.

Every module logs through ``logging.getLogger(__name__)``; components that
take a ``logger`` argument receive the instance built here at startup.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

ROOT_LOGGER_NAME = "sitebuilder"


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "data"):
            entry["data"] = record.data  # type: ignore[attr-defined]
        if record.exc_info and record.exc_info[1]:
            entry["error"] = str(record.exc_info[1])
        return json.dumps(entry, ensure_ascii=False, default=str)


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: int | str = logging.INFO,
    log_dir: Path | str | None = None,
) -> logging.Logger:
    """Configure structured logging for the backend.

    Args:
        level: Logging level (name or number).
        log_dir: Directory for a JSON-lines log file. If None, logs to stderr only.

    Returns:
        The root ``sitebuilder`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(_resolve_level(level))

    # Avoid duplicate handlers on repeated calls
    if logger.handlers:
        return logger

    fmt = JSONFormatter()

    if log_dir:
        directory = Path(log_dir).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(directory / "sitebuilder.jsonl", encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    logger.addHandler(sh)
    return logger


class GenerationCallLogger:
    """Context manager timing a single generation-service call."""

    def __init__(self, model: str, *, stage: str, attempt: int = 1, logger: logging.Logger | None = None):
        self.model = model
        self.stage = stage
        self.attempt = attempt
        self.start_time = 0.0
        self._logger = logger or logging.getLogger(f"{ROOT_LOGGER_NAME}.llm")

    def __enter__(self) -> GenerationCallLogger:
        self.start_time = time.monotonic()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        pass

    def success(self, output_len: int) -> None:
        elapsed = time.monotonic() - self.start_time
        self._logger.info(
            "generation_call",
            extra={"data": {
                "model": self.model,
                "stage": self.stage,
                "attempt": self.attempt,
                "elapsed_s": round(elapsed, 3),
                "output_len": output_len,
            }},
        )

    def error(self, error: str, partial_text_len: int = 0) -> None:
        elapsed = time.monotonic() - self.start_time
        self._logger.warning(
            "generation_call_error",
            extra={"data": {
                "model": self.model,
                "stage": self.stage,
                "attempt": self.attempt,
                "elapsed_s": round(elapsed, 3),
                "error": error,
                "partial_text_len": partial_text_len,
            }},
        )


__all__ = ["JSONFormatter", "setup_logging", "GenerationCallLogger", "ROOT_LOGGER_NAME"]
