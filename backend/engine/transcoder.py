"""
Media Transcoder.
Trims or remuxes recordings and probes their duration using ffmpeg/ffprobe.

Trimming uses input seeking with stream copy (no re-encode). It is fast, but
the cut lands on the nearest keyframe at or before the requested start, so the
output can be slightly longer than ``end - start``. That imprecision is
accepted; do not switch to re-encoding to make cuts frame-exact.
"""

import logging
import math
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from config import settings

logger = logging.getLogger(__name__)

# Bound on diagnostic text kept from a failing tool's stderr
STDERR_TAIL_CHARS = 500


@dataclass
class ToolResult:
    """Outcome of one external tool invocation."""
    success: bool
    error: Optional[str] = None
    stdout: str = ""


def run_tool(args: List[str]) -> ToolResult:
    """
    Run an external command to completion and map its exit status.

    Never raises for tool failures: a spawn error or non-zero exit becomes a
    failed ToolResult carrying the last STDERR_TAIL_CHARS of stderr.
    """
    tool = Path(args[0]).name
    try:
        result = subprocess.run(args, capture_output=True)
    except OSError as e:
        logger.error(f"Failed to start {tool}: {e}")
        return ToolResult(success=False, error=f"Failed to start {tool}: {e}")

    stdout = result.stdout.decode("utf-8", errors="replace")
    if result.returncode != 0:
        stderr_tail = result.stderr.decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:]
        logger.error(f"{tool} exited with code {result.returncode}: {stderr_tail}")
        return ToolResult(
            success=False,
            error=f"{tool} exited with code {result.returncode}: {stderr_tail}",
            stdout=stdout,
        )
    return ToolResult(success=True, stdout=stdout)


class MediaTranscoder:
    """
    Thin wrapper around ffmpeg/ffprobe.

    All methods block until the child process exits; async callers should run
    them in an executor.
    """

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path

    def trim(self, input_path: str, output_path: str, start_seconds: float, end_seconds: float) -> ToolResult:
        """Extract ``end_seconds - start_seconds`` seconds starting at ``start_seconds``."""
        duration = end_seconds - start_seconds
        logger.info(f"Trimming {input_path} from {start_seconds}s to {end_seconds}s")
        return run_tool([
            self.ffmpeg_path,
            "-y",
            "-ss", str(start_seconds),  # before -i: fast keyframe seek
            "-i", str(input_path),
            "-t", str(duration),
            "-c", "copy",
            str(output_path),
        ])

    def copy(self, input_path: str, output_path: str) -> ToolResult:
        """Remux the whole input into the output container without re-encoding."""
        logger.info(f"Copying {input_path} without trimming")
        return run_tool([
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-c", "copy",
            str(output_path),
        ])

    def probe_duration(self, file_path: str) -> Optional[float]:
        """
        Get the container duration of a media file in seconds.

        Returns None when the duration is unknown (tool failure, or output such
        as ``N/A`` that MediaRecorder WebM files commonly produce). Callers are
        expected to fall back to an estimate.
        """
        result = run_tool([
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(file_path),
        ])
        if not result.success:
            return None

        try:
            duration = float(result.stdout.strip())
        except ValueError:
            logger.warning(f"Could not parse duration for {file_path}: {result.stdout.strip()!r}")
            return None

        if math.isnan(duration) or math.isinf(duration) or duration <= 0:
            return None
        return duration


def get_transcoder() -> MediaTranscoder:
    """Dependency for the media transcoder."""
    return MediaTranscoder()
