"""Log-reader source: runs the backup extraction tool and follows its output.

The tool reports every file it finishes writing with a line such as::

    FILE_SAVED: path=00008110-X/Snapshot/ab/abcdef domain=/var/mobile/Media/DCIM/IMG_0001.HEIC

``path`` is relative to the parent of the backup directory; ``domain`` carries
the file's original path, whose extension is used as a type hint. Every other
line is echoed to the console and the log file.
"""

import logging
import os
import re
import subprocess
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, IO, List, Optional, Tuple
from rich.console import Console
from ibt.config.models import ExtractionConfig
from ibt.domain.errors import ExtractionFailed
from ibt.domain.models import DiscoveredFile, DiscoveryMethod
from ibt.infrastructure.logging import PASSTHROUGH_LOGGER
from ibt.infrastructure.tools import ToolResolver

SAVED_PREFIX = "FILE_SAVED: "
SAVED_PATTERN = re.compile(r"path=([^\s]+)(?:\s+domain=([^\s]+))?")
NOISE_PREFIXES = ("FILE_FILTERED:", "Receiving domain:")

Dispatch = Callable[[DiscoveredFile], None]


def parse_saved_file_line(line: str, backup_dir: Path) -> Optional[Tuple[Path, Optional[str]]]:
    """Returns (absolute path, domain) for a FILE_SAVED line, else None.

    Existence of the path is not checked here.
    """
    if not line.startswith(SAVED_PREFIX):
        return None
    match = SAVED_PATTERN.search(line)
    if not match:
        return None
    relative_path, domain = match.group(1), match.group(2)
    full_path = Path(os.path.normpath(Path(backup_dir).parent / relative_path))
    return full_path, domain


def is_noise(line: str) -> bool:
    return not line.strip() or line.startswith(NOISE_PREFIXES)


def extension_from_domain(domain: Optional[str]) -> Optional[str]:
    """Lowercased extension of the original path carried in ``domain``."""
    if not domain:
        return None
    ext = os.path.splitext(domain)[1].lower()
    return ext or None


class ExtractionRunner:
    """Runs the extraction subprocess and dispatches every file it reports.

    stdout and stderr are read by two threads; both may carry FILE_SAVED lines.
    The whole run is bounded by ``config.timeout_s``.
    """

    def __init__(
        self,
        backup_dir: Path,
        dispatch: Dispatch,
        resolver: ToolResolver,
        config: Optional[ExtractionConfig] = None,
        executable: Optional[str] = None,
        verbose: bool = False,
        stdout_console: Optional[Console] = None,
        stderr_console: Optional[Console] = None,
    ):
        self.backup_dir = Path(backup_dir)
        self.dispatch = dispatch
        self.resolver = resolver
        self.config = config or ExtractionConfig()
        self.executable = executable or self.config.executable
        self.verbose = verbose
        self.stdout_console = stdout_console or Console(emoji=False)
        self.stderr_console = stderr_console or Console(stderr=True, emoji=False)
        self.passthrough = logging.getLogger(PASSTHROUGH_LOGGER)
        self.logger = logging.getLogger(__name__)
        self.returncode: Optional[int] = None
        self._process: Optional[subprocess.Popen] = None
        self._stop_requested = threading.Event()
        self._count_lock = threading.Lock()
        self._files_reported = 0
        self._reader_errors: List[str] = []

    @property
    def files_reported(self) -> int:
        with self._count_lock:
            return self._files_reported

    def build_command(self, executable: str) -> List[str]:
        cmd = [executable]
        for domain in self.config.domains:
            cmd.extend(["--domain", domain])
        cmd.extend(["backup", str(self.backup_dir.parent)])
        return cmd

    def _handle_line(self, line: str, console: Console, stream_name: str) -> None:
        parsed = parse_saved_file_line(line, self.backup_dir)
        if parsed is not None:
            path, domain = parsed
            with self._count_lock:
                self._files_reported += 1
                seen = self._files_reported
            if self.verbose:
                self.logger.debug(f"FILE_SAVED #{seen} on {stream_name}: {path.name} (domain: {domain})")
            self._dispatch_reported(path, domain)

        if not self.verbose and is_noise(line):
            return
        console.print(line, markup=False, emoji=False, highlight=False, soft_wrap=True)
        self.passthrough.info(line)

    def _dispatch_reported(self, path: Path, domain: Optional[str]) -> None:
        try:
            stat = os.stat(path)
        except FileNotFoundError:
            if self.verbose:
                self.logger.debug(f"Reported file does not exist: {path}")
            return
        except OSError as e:
            self.logger.error(f"Error stating file {path}: {e}")
            return
        self.dispatch(
            DiscoveredFile(
                path=path,
                extension_hint=extension_from_domain(domain),
                discovery_method=DiscoveryMethod.EXTERNAL_REPORT,
                created_at=datetime.fromtimestamp(stat.st_mtime),
            )
        )

    def _read_stream(self, stream: IO[str], console: Console, stream_name: str) -> None:
        try:
            for raw in stream:
                self._handle_line(raw.rstrip("\r\n"), console, stream_name)
        except (OSError, ValueError) as e:
            self._reader_errors.append(f"{stream_name} error: {e}")
        finally:
            stream.close()

    def run(self) -> int:
        """Runs to completion; returns the number of FILE_SAVED lines seen.

        Raises ExtractionFailed when the tool is missing, fails to start,
        exits non-zero or exceeds the overall deadline.
        """
        executable = self.resolver.resolve(self.executable)
        if not executable:
            raise ExtractionFailed(f"{self.executable} not found")

        cmd = self.build_command(executable)
        self.logger.debug(f"EXTRACTION_CMD: {' '.join(cmd)}")
        try:
            self._process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise ExtractionFailed(f"failed to start {self.executable}: {e}") from e
        self.logger.info(f"Started {Path(executable).name} backup to: {self.backup_dir}")

        readers = [
            threading.Thread(
                target=self._read_stream,
                args=(self._process.stdout, self.stdout_console, "stdout"),
                name="ibt-extraction-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._read_stream,
                args=(self._process.stderr, self.stderr_console, "stderr"),
                name="ibt-extraction-stderr",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        timed_out = False
        try:
            self.returncode = self._process.wait(timeout=self.config.timeout_s)
        except subprocess.TimeoutExpired:
            timed_out = True
            self.returncode = self._terminate(self._process)
        finally:
            for reader in readers:
                reader.join()

        self.logger.info(f"Detected {self.files_reported} FILE_SAVED lines")

        if timed_out:
            raise ExtractionFailed(f"{self.executable} timed out after {self.config.timeout_s:g}s")
        if self._stop_requested.is_set():
            self.logger.info(f"{self.executable} stopped by shutdown (exit code {self.returncode})")
        elif self.returncode != 0:
            raise ExtractionFailed(f"{self.executable} failed with exit code {self.returncode}")

        if self._reader_errors:
            self.logger.warning(f"Output processing encountered errors: {self._reader_errors}")
        else:
            self.logger.info(f"{self.executable} completed successfully")
        return self.files_reported

    def _terminate(self, process: subprocess.Popen) -> int:
        # Pipes belong to the reader threads; only signal and reap here.
        process.terminate()
        try:
            return process.wait(timeout=self.config.terminate_grace_s)
        except subprocess.TimeoutExpired:
            process.kill()
            return process.wait()

    def stop(self) -> None:
        """Terminates the subprocess; ``run`` then returns once readers drain."""
        self._stop_requested.set()
        process = self._process
        if process is not None and process.poll() is None:
            self.logger.info(f"Stopping {self.executable}...")
            process.terminate()
