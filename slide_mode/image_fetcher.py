"""Download background images referenced by URL."""
from __future__ import annotations

import random
import time
from typing import Any, Dict, Optional

import requests

from logging_utils import get_logger

from .models import ImageSpec

logger = get_logger(__name__)

MAX_IMAGE_BYTES = 25 * 1024 * 1024


class ImageFetcher:
    """Retrieve background images over HTTP with retry and backoff."""

    def __init__(self, http_cfg: Optional[Dict[str, Any]] = None) -> None:
        http_cfg = http_cfg or {}
        self.retries = int(http_cfg.get("retries", 2))
        self.retry_backoff_base = float(http_cfg.get("retry_backoff_base", 1.0))
        # requests.get accepts a (connect, read) tuple.
        self.timeout_connect = float(http_cfg.get("timeout_connect", 5))
        self.timeout_read = float(http_cfg.get("timeout_read", 30))
        self.session = requests.Session()

    def fetch(self, url: str) -> ImageSpec:
        if not url.strip():
            raise ValueError("Background image URL is empty")

        attempt = 0
        while True:
            attempt += 1
            try:
                start = time.monotonic()
                response = self.session.get(
                    url,
                    timeout=(self.timeout_connect, self.timeout_read),
                    allow_redirects=True,
                )
                status = response.status_code
                logger.info("Image download: status=%s elapsed=%.2fs", status, time.monotonic() - start)
                # Retry on 429/5xx only
                if status == 429 or 500 <= status < 600:
                    raise requests.HTTPError(f"HTTP {status}", response=response)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
                if content_type and not content_type.startswith("image/"):
                    raise ValueError(f"URL did not return an image (Content-Type: {content_type})")
                if len(response.content) > MAX_IMAGE_BYTES:
                    raise ValueError(f"Background image exceeds {MAX_IMAGE_BYTES} bytes")
                return ImageSpec(data=response.content, mime_type=content_type or "application/octet-stream")
            except requests.HTTPError as exc:
                retriable = exc.response is not None and (
                    exc.response.status_code == 429 or exc.response.status_code >= 500
                )
                if not retriable or attempt > max(0, self.retries):
                    raise
                self._backoff(attempt, exc)
            except (requests.ConnectionError, requests.Timeout) as exc:
                if attempt > max(0, self.retries):
                    logger.error("Image download failed after %d attempts: %s", attempt, exc)
                    raise
                self._backoff(attempt, exc)

    def _backoff(self, attempt: int, exc: Exception) -> None:
        # Backoff with jitter
        wait = self.retry_backoff_base * (2 ** (attempt - 1))
        wait *= random.uniform(0.8, 1.2)
        logger.warning(
            "Image download failed (attempt %d/%d): %s; retrying in %.2fs",
            attempt,
            self.retries + 1,
            exc,
            wait,
        )
        time.sleep(max(0.1, min(wait, 10.0)))
