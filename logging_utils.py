"""Logging setup helpers for the slide batch renderer."""
from __future__ import annotations

import logging
from logging import Logger, LoggerAdapter
from pathlib import Path
from typing import TYPE_CHECKING, Any, MutableMapping, Optional, Tuple

if TYPE_CHECKING:  # pragma: no cover - typing only
    from slide_mode.models import JobSpec

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str, log_file: Optional[Path] = None) -> Logger:
    """Configure root logger with a console handler and an optional file handler."""
    resolved_level = getattr(logging, str(level).upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(resolved_level)

    # Clear existing handlers to avoid duplicate logs during repeated runs
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(resolved_level)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(resolved_level)
        logger.addHandler(file_handler)

    # MoviePy/imageio chatter is noise at INFO
    for noisy in ("moviepy", "imageio", "imageio_ffmpeg", "PIL"):
        logging.getLogger(noisy).setLevel(max(resolved_level, logging.WARNING))

    logger.debug("Logging configured (level=%s, file=%s)", level, log_file)
    return logger


def get_logger(name: Optional[str] = None) -> Logger:
    """Return a module-level logger."""
    return logging.getLogger(name)


class _JobAdapter(LoggerAdapter):
    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        number, total = self.extra["job_number"], self.extra["job_total"]
        return f"[job {number}/{total}] {msg}", kwargs


def job_logger(logger: Logger, job: "JobSpec", total: int) -> LoggerAdapter:
    """Wrap ``logger`` so every record is prefixed with the job position."""
    return _JobAdapter(logger, {"job_number": job.display_number, "job_total": total})
