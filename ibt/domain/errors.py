"""Failure taxonomy for per-file transformations and the extraction run.

Converters raise these; ``Transformer.process`` turns them into a
``TransformOutcome`` so nothing escapes a job's task.
"""

from pathlib import Path
from typing import Optional


class TransformError(Exception):
    """Base class for every per-file failure."""


class ToolNotFound(TransformError):
    def __init__(self, tool: str):
        super().__init__(f"{tool} not found in library dir, executable dir, working dir or PATH")
        self.tool = tool


class ToolTimeout(TransformError):
    def __init__(self, tool: str, timeout_s: float):
        super().__init__(f"{tool} timed out after {timeout_s:g}s")
        self.tool = tool
        self.timeout_s = timeout_s


class ToolCancelled(TransformError):
    def __init__(self, tool: str):
        super().__init__(f"{tool} cancelled by shutdown")
        self.tool = tool


class ToolFailed(TransformError):
    def __init__(self, tool: str, returncode: int, output: str = ""):
        detail = output.strip()
        message = f"{tool} exited with code {returncode}"
        if detail:
            message = f"{message}, output: {detail[-500:]}"
        super().__init__(message)
        self.tool = tool
        self.returncode = returncode
        self.output = output


class DecodeError(TransformError):
    pass


class AllocationTooLarge(TransformError):
    def __init__(self, width: int, height: int, limit_bytes: int):
        needed = width * height * 4
        super().__init__(
            f"resize target {width}x{height} too large: {needed} bytes exceeds limit of {limit_bytes} bytes"
        )
        self.width = width
        self.height = height
        self.limit_bytes = limit_bytes


class FileVanished(TransformError):
    def __init__(self, path: Path):
        super().__init__(f"file vanished: {path}")
        self.path = path


class RenameFailure(TransformError):
    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        super().__init__(f"failed to replace {path}: {cause}")
        self.path = path


class ExtractionFailed(Exception):
    """Run-level failure of the backup extraction subprocess."""
