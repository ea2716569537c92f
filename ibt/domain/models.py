from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class DiscoveryMethod(str, Enum):
    WATCH = "watch"
    SCAN = "scan"
    EXTERNAL_REPORT = "external-report"


class Confidence(str, Enum):
    HIGH = "High (magic bytes)"
    LOW = "Low (extension-based)"
    NONE = "None"


class JobStatus(str, Enum):
    CONVERTED = "CONVERTED"
    SKIPPED = "SKIPPED"          # unsupported type or tool missing
    PRESERVED = "PRESERVED"      # explicitly kept (SQLite, manifest files)
    DISPOSED = "DISPOSED"        # truncated/deleted by an administrative mode
    VANISHED = "VANISHED"        # path disappeared before or during the job
    FAILED = "FAILED"


UNKNOWN_TYPE = "Unknown"


class ContentSignature(BaseModel):
    """Magic-byte signature for one content type."""

    model_config = ConfigDict(frozen=True)

    name: str
    magic: Tuple[bytes, ...]
    offset: int = 0
    description: str
    extensions: Tuple[str, ...] = ()

    def matches(self, buffer: bytes) -> bool:
        for pattern in self.magic:
            end = self.offset + len(pattern)
            if len(buffer) >= end and buffer[self.offset:end] == pattern:
                return True
        return False


class ClassificationResult(BaseModel):
    content_type: str = UNKNOWN_TYPE
    confidence: Confidence = Confidence.NONE
    description: str = "Unknown File Type"


class DiscoveredFile(BaseModel):
    path: Path
    extension_hint: Optional[str] = None
    discovery_method: DiscoveryMethod
    created_at: Optional[datetime] = None
    discovered_at: datetime = Field(default_factory=datetime.now)
    transform_started_at: Optional[datetime] = None


class TransformOutcome(BaseModel):
    path: Path
    status: JobStatus
    content_type: str = UNKNOWN_TYPE
    message: Optional[str] = None
    output_size_bytes: Optional[int] = None
    duration_seconds: Optional[float] = None
