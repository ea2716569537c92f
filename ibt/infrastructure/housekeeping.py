import logging
import os
from pathlib import Path
from ibt.infrastructure.file_scanner import is_temp_artifact


class HousekeepingService:
    """Service for cleaning up conversion leftovers."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def cleanup_temp_files(self, directory: Path) -> int:
        """Recursively removes temp artifacts left by an interrupted run."""
        removed = 0
        for root, dirs, files in os.walk(directory):
            for file in files:
                path = Path(root) / file
                if not is_temp_artifact(path):
                    continue
                try:
                    path.unlink()
                    removed += 1
                except OSError as e:
                    self.logger.debug(f"Could not remove stale temp file {path}: {e}")
        if removed:
            self.logger.info(f"Removed {removed} stale temp files under {directory}")
        return removed
