import logging
import threading
import time
from pathlib import Path
from typing import List, Optional
from ibt.domain.errors import ToolNotFound
from ibt.infrastructure.tools import ToolResolver, run_tool

MAX_THUMBNAIL_SEEK_S = 0.5
FALLBACK_THUMBNAIL_SEEK_S = 0.1


def thumbnail_seek_seconds(duration: Optional[float]) -> float:
    """Seek offset for the thumbnail frame: min(duration/2, 0.5s), else 0.1s."""
    if duration is None:
        return FALLBACK_THUMBNAIL_SEEK_S
    seek = min(duration / 2, MAX_THUMBNAIL_SEEK_S)
    if seek <= 0:
        return FALLBACK_THUMBNAIL_SEEK_S
    return seek


def format_seek_timestamp(seconds: float) -> str:
    """Three decimals at most, trailing zeros trimmed ("0.5", "0.125", "2")."""
    if seconds <= 0:
        return "0"
    formatted = f"{seconds:.3f}".rstrip("0").rstrip(".")
    return formatted or "0"


class FFmpegAdapter:
    """Wrapper around ffmpeg for single-frame extraction."""

    def __init__(self, resolver: ToolResolver, executable: str = "ffmpeg", timeout_s: float = 60.0):
        self.resolver = resolver
        self.executable = executable
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(__name__)

    def _build_command(self, ffmpeg: str, input_path: Path, output_path: Path, seek_s: float) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        return [
            ffmpeg,
            "-ss", format_seek_timestamp(seek_s),
            "-i", str(input_path),
            "-vframes", "1",
            "-f", "image2",
            "-update", "1",
            "-y",
            str(output_path),
        ]

    def available(self) -> bool:
        return self.resolver.resolve(self.executable) is not None

    def extract_frame(
        self,
        input_path: Path,
        output_path: Path,
        seek_s: float,
        cancel_event: Optional[threading.Event] = None,
        debug: bool = False,
    ) -> None:
        """Writes exactly one frame at ``seek_s`` to ``output_path``.

        Raises ToolNotFound, ToolTimeout, ToolCancelled or ToolFailed.
        """
        ffmpeg = self.resolver.resolve(self.executable)
        if not ffmpeg:
            raise ToolNotFound(self.executable)

        cmd = self._build_command(ffmpeg, input_path, output_path, seek_s)
        if debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        start_time = time.monotonic()
        run_tool(cmd, self.timeout_s, cancel_event=cancel_event)
        if debug:
            elapsed = time.monotonic() - start_time
            self.logger.info(f"FFMPEG_END: {input_path.name} seek={format_seek_timestamp(seek_s)} elapsed={elapsed:.2f}s")
