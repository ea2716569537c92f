"""Domain events for the ingestion pipeline.

Events flow through the EventBus so the orchestrator, the source adapters and
the console reporter never call into each other directly.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from .models import DiscoveredFile, TransformOutcome


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class FileDiscovered(Event):
    """Emitted when a source adapter hands a path to the orchestrator."""

    file: DiscoveredFile


class DiscoveryRejected(Event):
    """Emitted when a discovery is dropped before a job starts."""

    file: DiscoveredFile
    reason: str


class JobEvent(Event):
    file: DiscoveredFile


class JobStarted(JobEvent):
    """Emitted once the file is stable and transformation begins."""

    pass


class JobCompleted(JobEvent):
    """Emitted for converted, preserved and administratively disposed files."""

    outcome: TransformOutcome


class JobSkipped(JobEvent):
    """Emitted when a file is left untouched (unsupported, tool missing, vanished)."""

    outcome: TransformOutcome


class JobFailed(JobEvent):
    """Emitted when a job aborts; the original file is untouched."""

    error_message: str
    outcome: Optional[TransformOutcome] = None


class AllJobsIdle(Event):
    """Emitted whenever the active job count returns to zero."""

    total: int


class ExtractionStarted(Event):
    backup_dir: Path


class ExtractionFinished(Event):
    returncode: Optional[int] = None
    files_reported: int = 0


class ShutdownRequested(Event):
    pass


class ProcessingFinished(Event):
    """Emitted after the drain barrier; carries the final total."""

    total: int
