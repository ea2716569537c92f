import logging
import threading
from pathlib import Path
from typing import Optional
from ibt.domain.errors import ToolNotFound
from ibt.infrastructure.tools import ToolResolver, run_tool


class HeicConverterAdapter:
    """Wrapper around the bundled ``heic-converter <input> <output>`` tool."""

    def __init__(self, resolver: ToolResolver, executable: str = "heic-converter", timeout_s: float = 30.0):
        self.resolver = resolver
        self.executable = executable
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(__name__)

    def available(self) -> bool:
        return self.resolver.resolve(self.executable) is not None

    def convert(self, input_path: Path, output_path: Path, cancel_event: Optional[threading.Event] = None) -> None:
        converter = self.resolver.resolve(self.executable)
        if not converter:
            raise ToolNotFound(self.executable)
        run_tool([converter, str(input_path), str(output_path)], self.timeout_s, cancel_event=cancel_event)
