from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from logging_utils import get_logger

logger = get_logger(__name__)


class FFmpegError(RuntimeError):
    def __init__(self, returncode: int, stderr_tail: List[str]) -> None:
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        last = stderr_tail[-1] if stderr_tail else "no output"
        super().__init__(f"ffmpeg failed with exit code {returncode}: {last}")


def run_ffmpeg(
    args: Sequence[str],
    *,
    ffmpeg_path: str = "ffmpeg",
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> None:
    """Run ffmpeg with the given arguments, raising :class:`FFmpegError` on non-zero exit.

    Logs the full command for debuggability.
    """
    # Keep ffmpeg quiet: only errors; no stats; no banner
    cmd: List[str] = [ffmpeg_path, "-hide_banner", "-loglevel", "error", "-nostats"] + list(args)
    logger.debug("FFmpeg: %s", shlex.join(cmd))
    proc = subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        text=True,
        timeout=timeout,
    )
    if proc.returncode != 0:
        tail = (proc.stderr or "").splitlines()[-50:]
        for line in tail:
            logger.error("ffmpeg: %s", line)
        raise FFmpegError(proc.returncode, tail)


def probe_version(ffmpeg_path: str = "ffmpeg", *, timeout: float = 10.0) -> str:
    """Return the first line of ``ffmpeg -version``."""
    proc = subprocess.run(
        [ffmpeg_path, "-version"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        timeout=timeout,
    )
    if proc.returncode != 0:
        raise FFmpegError(proc.returncode, (proc.stderr or "").splitlines()[-5:])
    return (proc.stdout or "").splitlines()[0] if proc.stdout else ""
