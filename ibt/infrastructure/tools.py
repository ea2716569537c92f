"""External tool resolution and deadline-bounded invocation."""

import logging
import os
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from ibt.domain.errors import ToolCancelled, ToolFailed, ToolTimeout


def _executable_dir() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(sys.argv[0]).resolve().parent if sys.argv and sys.argv[0] else Path.cwd()


class ToolResolver:
    """Finds external executables and caches the answer for the process lifetime.

    Lookup order: bundled library directory, the executable's own directory,
    the current working directory, then PATH. A tool that cannot be found is
    cached as ``None`` ("tool unavailable") and is not an error.
    """

    def __init__(self, library_dir: Optional[Path] = None, executable_dir: Optional[Path] = None):
        self.executable_dir = Path(executable_dir) if executable_dir else _executable_dir()
        library = Path(library_dir) if library_dir else Path("libraries")
        self.library_dir = library if library.is_absolute() else self.executable_dir / library
        self._cache: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def _candidates(self, name: str) -> List[Path]:
        dirs = [self.library_dir, self.executable_dir]
        cwd = Path.cwd()
        if cwd not in dirs:
            dirs.append(cwd)
        names = [name]
        if os.name == "nt" and not Path(name).suffix:
            names.append(f"{name}.exe")
        return [d / n for d in dirs for n in names]

    def _lookup(self, name: str) -> Optional[str]:
        if os.sep in name or (os.altsep and os.altsep in name):
            path = Path(name)
            return str(path) if path.is_file() else None
        for candidate in self._candidates(name):
            if candidate.is_file():
                return str(candidate)
        return shutil.which(name)

    def resolve(self, name: str) -> Optional[str]:
        with self._lock:
            if name in self._cache:
                return self._cache[name]
            resolved = self._lookup(name)
            self._cache[name] = resolved
        if resolved:
            self.logger.debug(f"TOOL_RESOLVED: {name} -> {resolved}")
        else:
            self.logger.info(f"TOOL_MISSING: {name} not found in {self.library_dir}, {self.executable_dir}, cwd or PATH")
        return resolved


@dataclass
class ToolResult:
    returncode: int
    output: str


def run_tool(
    cmd: Sequence[str],
    timeout_s: float,
    cancel_event: Optional[threading.Event] = None,
    check: bool = True,
    poll_interval_s: float = 0.1,
) -> ToolResult:
    """Runs ``cmd`` with stdout+stderr captured, bounded by ``timeout_s``.

    Raises ToolTimeout when the deadline passes, ToolCancelled when
    ``cancel_event`` is set, and ToolFailed on a non-zero exit when ``check``.
    The child is always reaped before returning or raising.
    """
    tool = Path(cmd[0]).name
    deadline = time.monotonic() + timeout_s
    process = subprocess.Popen(
        list(cmd),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
    )

    output = b""
    try:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                _stop_process(process)
                raise ToolCancelled(tool)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                _stop_process(process, grace_s=0)
                raise ToolTimeout(tool, timeout_s)
            try:
                output, _ = process.communicate(timeout=min(poll_interval_s, remaining))
                break
            except subprocess.TimeoutExpired:
                continue
    except BaseException:
        if process.poll() is None:
            _stop_process(process, grace_s=0)
        raise

    text = (output or b"").decode("utf-8", errors="replace")
    if check and process.returncode != 0:
        raise ToolFailed(tool, process.returncode, text)
    return ToolResult(returncode=process.returncode, output=text)


def _stop_process(process: subprocess.Popen, grace_s: float = 3.0) -> None:
    if process.poll() is not None:
        return
    if grace_s > 0:
        process.terminate()
        try:
            process.communicate(timeout=grace_s)
            return
        except subprocess.TimeoutExpired:
            pass
    process.kill()
    process.communicate()
