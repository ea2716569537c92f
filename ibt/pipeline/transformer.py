"""Per-file transformation engine.

Every media type has exactly one converter. All of them end the same way: a
JPEG no wider than ``target_width`` is written to a temp file next to the
source and renamed over it, so a reader of the backup never sees a partial
file. Heavy converter classes (video, HEIC, GIF) run inside a governor pool.

Non-media files are left alone unless ``disposition.media_only`` is off, in
which case Snapshot files and non-essential property lists are truncated and
unsupported types deleted (or truncated). SQLite databases and the manifest
property lists are never touched.
"""

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple
from PIL import Image
from ibt.config.models import AppConfig
from ibt.domain.errors import (
    FileVanished,
    ToolCancelled,
    ToolNotFound,
    ToolTimeout,
    TransformError,
)
from ibt.domain.models import (
    ClassificationResult,
    Confidence,
    DiscoveredFile,
    JobStatus,
    TransformOutcome,
    UNKNOWN_TYPE,
)
from ibt.domain.signatures import VIDEO_TYPES
from ibt.infrastructure.ffmpeg import FFmpegAdapter, format_seek_timestamp, thumbnail_seek_seconds
from ibt.infrastructure.file_scanner import TOOL_OUTPUT_SUFFIX
from ibt.infrastructure.ffprobe import FFprobeAdapter
from ibt.infrastructure.heic import HeicConverterAdapter
from ibt.pipeline.classifier import ContentClassifier
from ibt.pipeline.governor import ConcurrencyGovernor
from ibt.pipeline.imaging import (
    decode_image,
    make_temp_path,
    remove_quietly,
    resize_to_width,
    write_jpeg_atomically,
)

SNAPSHOT_DIR = "Snapshot"

# Decoders Pillow may use per in-process type.
PILLOW_FORMATS = {
    "JPEG": ("JPEG",),
    "PNG": ("PNG",),
    "GIF": ("GIF",),
    "WEBP": ("WEBP",),
}

Converter = Callable[[Path, str, Optional[threading.Event]], TransformOutcome]


def pool_for(content_type: str) -> Optional[str]:
    """Governor pool gating the converter class of ``content_type``."""
    if content_type in VIDEO_TYPES:
        return "video"
    if content_type == "HEIC":
        return "heic"
    if content_type == "GIF":
        return "gif"
    return None


class Transformer:
    """Classifies one file and converts or disposes of it in place."""

    def __init__(
        self,
        config: AppConfig,
        classifier: ContentClassifier,
        governor: ConcurrencyGovernor,
        heic_adapter: HeicConverterAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        ffprobe_adapter: FFprobeAdapter,
    ):
        self.config = config
        self.classifier = classifier
        self.governor = governor
        self.heic = heic_adapter
        self.ffmpeg = ffmpeg_adapter
        self.ffprobe = ffprobe_adapter
        self.logger = logging.getLogger(__name__)
        self._converters: Dict[str, Converter] = {
            "JPEG": self._convert_jpeg,
            "PNG": self._convert_pillow,
            "WEBP": self._convert_pillow,
            "GIF": self._convert_pillow,
            "HEIC": self._convert_heic,
        }
        for video_type in VIDEO_TYPES:
            self._converters[video_type] = self._convert_video

    @property
    def target_width(self) -> int:
        return self.config.general.target_width

    def resolve_type(self, file: DiscoveredFile) -> ClassificationResult:
        """Extension hint first when it names a known type, else magic bytes."""
        if file.extension_hint:
            hinted = self.classifier.classify_extension(file.extension_hint)
            if hinted.confidence != Confidence.NONE:
                return hinted
        return self.classifier.classify_file(file.path)

    def process(self, file: DiscoveredFile, cancel_event: Optional[threading.Event] = None) -> TransformOutcome:
        """Transforms one file; every per-file failure becomes an outcome."""
        path = Path(file.path)
        start = time.monotonic()
        content_type = UNKNOWN_TYPE
        try:
            classification = self.resolve_type(file)
            content_type = classification.content_type
            outcome = self._dispatch(path, classification, cancel_event)
        except ToolNotFound as e:
            self.logger.info(f"SKIP_TOOL_MISSING: {path.name} type={content_type} ({e})")
            outcome = self._outcome(path, JobStatus.SKIPPED, content_type, str(e))
        except FileVanished as e:
            self.logger.debug(f"VANISHED: {path.name} ({e})")
            outcome = self._outcome(path, JobStatus.VANISHED, content_type, str(e))
        except ToolTimeout as e:
            self.logger.error(f"TOOL_TIMEOUT: {path.name} type={content_type}: {e}")
            outcome = self._outcome(path, JobStatus.FAILED, content_type, str(e))
        except ToolCancelled as e:
            self.logger.warning(f"CANCELLED: {path.name} type={content_type}: {e}")
            outcome = self._outcome(path, JobStatus.FAILED, content_type, str(e))
        except TransformError as e:
            self.logger.error(f"Error converting {content_type} {path.name}: {e}")
            outcome = self._outcome(path, JobStatus.FAILED, content_type, str(e))
        except FileNotFoundError as e:
            self.logger.debug(f"VANISHED: {path.name} ({e})")
            outcome = self._outcome(path, JobStatus.VANISHED, content_type, str(e))
        except OSError as e:
            self.logger.error(f"I/O error on {path.name}: {e}")
            outcome = self._outcome(path, JobStatus.FAILED, content_type, str(e))
        outcome.duration_seconds = time.monotonic() - start
        return outcome

    def _outcome(
        self,
        path: Path,
        status: JobStatus,
        content_type: str,
        message: Optional[str] = None,
        size: Optional[int] = None,
    ) -> TransformOutcome:
        return TransformOutcome(
            path=path, status=status, content_type=content_type, message=message, output_size_bytes=size
        )

    def _dispatch(
        self, path: Path, classification: ClassificationResult, cancel_event: Optional[threading.Event]
    ) -> TransformOutcome:
        content_type = classification.content_type
        disposition = self.config.disposition

        if content_type == "SQLite":
            return self._outcome(path, JobStatus.PRESERVED, content_type, "database preserved")
        if path.name.lower() in {name.lower() for name in disposition.preserved_names}:
            return self._outcome(path, JobStatus.PRESERVED, content_type, "manifest preserved")

        if not disposition.media_only and SNAPSHOT_DIR in path.parts:
            self._truncate(path)
            return self._outcome(path, JobStatus.DISPOSED, content_type, "snapshot file truncated", 0)

        converter = self._converters.get(content_type)
        if converter is not None:
            with self.governor.slot(pool_for(content_type)):
                return converter(path, content_type, cancel_event)

        if disposition.media_only:
            return self._outcome(path, JobStatus.SKIPPED, content_type, "not a convertible media type")
        if content_type == "PLIST" or disposition.truncate_unknown:
            self._truncate(path)
            return self._outcome(path, JobStatus.DISPOSED, content_type, "truncated", 0)
        path.unlink()
        self.logger.info(f"DELETED: {path.name} type={content_type}")
        return self._outcome(path, JobStatus.DISPOSED, content_type, "deleted")

    def _truncate(self, path: Path) -> None:
        os.truncate(path, 0)
        self.logger.info(f"TRUNCATED: {path.name}")

    def _finish(self, path: Path, content_type: str, image: Image.Image, original_size: Tuple[int, int]) -> TransformOutcome:
        resized = resize_to_width(image, self.target_width, self.config.general.max_resize_bytes)
        size = write_jpeg_atomically(resized, path, self.config.general.jpeg_quality)
        width, height = original_size
        self.logger.info(
            f"CONVERTED: {path.name} type={content_type} {width}x{height} -> "
            f"{resized.size[0]}x{resized.size[1]} bytes={size}"
        )
        return self._outcome(path, JobStatus.CONVERTED, content_type, None, size)

    def _convert_pillow(self, path: Path, content_type: str, cancel_event: Optional[threading.Event]) -> TransformOutcome:
        image = decode_image(path, PILLOW_FORMATS[content_type])
        return self._finish(path, content_type, image, image.size)

    def _convert_jpeg(self, path: Path, content_type: str, cancel_event: Optional[threading.Event]) -> TransformOutcome:
        image = decode_image(path, PILLOW_FORMATS["JPEG"])
        if image.size[0] <= self.target_width:
            return self._outcome(path, JobStatus.SKIPPED, "JPEG", "already within target width")
        return self._finish(path, "JPEG", image, image.size)

    def _convert_heic(self, path: Path, content_type: str, cancel_event: Optional[threading.Event]) -> TransformOutcome:
        if not self.heic.available():
            raise ToolNotFound(self.heic.executable)
        temp_path = make_temp_path(path.parent, TOOL_OUTPUT_SUFFIX)
        try:
            self.heic.convert(path, temp_path, cancel_event)
            image = decode_image(temp_path, PILLOW_FORMATS["JPEG"])
        finally:
            remove_quietly(temp_path)
        return self._finish(path, "HEIC", image, image.size)

    def _convert_video(self, path: Path, content_type: str, cancel_event: Optional[threading.Event]) -> TransformOutcome:
        if not self.ffmpeg.available():
            raise ToolNotFound(self.ffmpeg.executable)
        if not path.exists():
            raise FileVanished(path)

        has_video = self.ffprobe.has_video_stream(path, cancel_event)
        if has_video is False:
            self.logger.info(f"SKIP_NO_VIDEO_STREAM: {path.name}")
            return self._outcome(path, JobStatus.SKIPPED, content_type, "no video stream")

        duration = self.ffprobe.probe_duration(path, cancel_event)
        seek_s = thumbnail_seek_seconds(duration)
        self.logger.debug(
            f"THUMBNAIL_SEEK: {path.name} duration={duration if duration is not None else 'unknown'} "
            f"seek={format_seek_timestamp(seek_s)}"
        )

        temp_path = make_temp_path(path.parent, TOOL_OUTPUT_SUFFIX)
        try:
            self.ffmpeg.extract_frame(path, temp_path, seek_s, cancel_event, debug=self.config.general.debug)
            image = decode_image(temp_path)
        finally:
            remove_quietly(temp_path)
        return self._finish(path, content_type, image, image.size)
