import logging
import threading
from pathlib import Path
from typing import Optional
from ibt.domain.errors import ToolCancelled, ToolFailed, ToolTimeout
from ibt.infrastructure.tools import ToolResolver, run_tool


class FFprobeAdapter:
    """Wrapper around ffprobe for the two questions the thumbnailer asks.

    Every failure (tool missing, non-zero exit, timeout, garbage output) maps
    to "unknown" rather than an error; the caller decides the fallback.
    Only a shutdown cancellation propagates.
    """

    def __init__(self, resolver: ToolResolver, executable: str = "ffprobe", timeout_s: float = 10.0):
        self.resolver = resolver
        self.executable = executable
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(__name__)

    def _run(self, args, file_path: Path, cancel_event: Optional[threading.Event]) -> Optional[str]:
        ffprobe = self.resolver.resolve(self.executable)
        if not ffprobe:
            self.logger.info(f"ffprobe not available, cannot probe {file_path.name}")
            return None
        try:
            result = run_tool([ffprobe, *args, str(file_path)], self.timeout_s, cancel_event=cancel_event)
        except ToolCancelled:
            raise
        except (ToolTimeout, ToolFailed, OSError) as e:
            self.logger.warning(f"ffprobe lookup failed for {file_path.name}: {e}")
            return None
        return result.output.strip()

    @staticmethod
    def _parse_duration(text: Optional[str]) -> Optional[float]:
        if not text:
            return None
        first = text.splitlines()[0].strip()
        if not first or first == "N/A":
            return None
        try:
            duration = float(first)
        except ValueError:
            return None
        if duration <= 0:
            return None
        return duration

    def probe_duration(self, file_path: Path, cancel_event: Optional[threading.Event] = None) -> Optional[float]:
        """Container duration in seconds, or None when unknown."""
        output = self._run(
            ["-v", "error", "-show_entries", "format=duration", "-of", "default=noprint_wrappers=1:nokey=1"],
            file_path,
            cancel_event,
        )
        return self._parse_duration(output)

    def has_video_stream(self, file_path: Path, cancel_event: Optional[threading.Event] = None) -> Optional[bool]:
        """True/False when ffprobe answered, None when it could not be asked."""
        output = self._run(
            [
                "-v", "error",
                "-select_streams", "v:0",
                "-show_entries", "stream=codec_type",
                "-of", "default=noprint_wrappers=1:nokey=1",
            ],
            file_path,
            cancel_event,
        )
        if output is None:
            return None
        return "video" in output.split()
