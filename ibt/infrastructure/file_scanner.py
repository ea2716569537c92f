import os
from pathlib import Path
from typing import Generator, Tuple

IGNORED_SUFFIXES = (".tmp", ".temp")

# Scratch files written next to the file being converted.
TEMP_PREFIX = ".ibt-"
TEMP_SUFFIX = ".tmp"
# External converters pick their output format from the extension.
TOOL_OUTPUT_SUFFIX = ".jpg"


def is_temp_artifact(path: Path) -> bool:
    name = Path(path).name
    return name.startswith(TEMP_PREFIX) and name.endswith((TEMP_SUFFIX, TOOL_OUTPUT_SUFFIX))


def is_ignored(path: Path) -> bool:
    """Hidden files, scratch files and our own temp artifacts are never dispatched."""
    path = Path(path)
    name = path.name
    if not name or name.startswith("."):
        return True
    if is_temp_artifact(path):
        return True
    return name.lower().endswith(IGNORED_SUFFIXES)


class FileScanner:
    """Walks a backup tree yielding candidate files."""

    def walk(self, root_dir: Path) -> Generator[Tuple[Path, list], None, None]:
        """Yields (directory, sorted file names) for every directory under root_dir."""
        for root, dirs, files in os.walk(str(root_dir)):
            # Deterministic traversal
            dirs.sort()
            files.sort()
            yield Path(root), files

    def scan(self, root_dir: Path) -> Generator[Path, None, None]:
        for directory, files in self.walk(root_dir):
            yield from self._candidates(directory, files)

    def scan_directory(self, directory: Path) -> Generator[Path, None, None]:
        """Non-recursive listing of candidate files in one directory."""
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError:
            return
        files = []
        for entry in entries:
            try:
                if entry.is_file():
                    files.append(entry.name)
            except OSError:
                continue
        yield from self._candidates(Path(directory), files)

    def _candidates(self, directory: Path, files) -> Generator[Path, None, None]:
        for file_name in files:
            file_path = directory / file_name
            if is_ignored(file_path):
                continue
            yield file_path
