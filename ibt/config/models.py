from typing import Dict, List
from pydantic import BaseModel, Field, field_validator

DEFAULT_POOLS = {"video": 5, "heic": 100, "gif": 5}

DEFAULT_DOMAINS = [
    "*SMS*",
    "*sms*",
    "*AddressBook*",
    "*WhatsApp*",
    "*whatsapp*",
    "*ChatStorage.sqlite*",
    "*Message/Media/*",
]


class GeneralConfig(BaseModel):
    target_width: int = Field(default=500, gt=0)
    jpeg_quality: int = Field(default=85, ge=1, le=95)
    max_resize_bytes: int = Field(default=50 * 1024 * 1024, gt=0)
    max_workers: int = Field(default=128, ge=1)
    debug: bool = False


class StabilityConfig(BaseModel):
    poll_interval_s: float = Field(default=0.2, gt=0)
    stable_for_s: float = Field(default=0.5, ge=0)
    max_wait_s: float = Field(default=30.0, gt=0)


class DedupConfig(BaseModel):
    window_s: float = Field(default=2.0, ge=0)
    max_entries: int = Field(default=100_000, ge=1)


class ToolsConfig(BaseModel):
    heic_converter: str = "heic-converter"
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    library_dir: str = "libraries"
    heic_timeout_s: float = Field(default=30.0, gt=0)
    frame_timeout_s: float = Field(default=60.0, gt=0)
    probe_timeout_s: float = Field(default=10.0, gt=0)


class DispositionConfig(BaseModel):
    """What happens to files that are not converted.

    ``media_only`` (the default) never touches non-media files. Turning it off
    enables the administrative modes: Snapshot files and non-essential property
    lists are truncated, unsupported types deleted (or truncated when
    ``truncate_unknown``).
    """
    media_only: bool = True
    truncate_unknown: bool = False
    preserved_names: List[str] = Field(default_factory=lambda: ["manifest.plist", "status.plist"])


class WatchConfig(BaseModel):
    rescan_interval_s: float = Field(default=30.0, gt=0)
    dir_scan_cooldown_s: float = Field(default=60.0, ge=0)
    recent_dir_window_s: float = Field(default=120.0, ge=0)
    max_tracked_dirs: int = Field(default=50_000, ge=1)
    scan_existing: bool = True


class ExtractionConfig(BaseModel):
    executable: str = "ios_backup"
    timeout_s: float = Field(default=24 * 3600.0, gt=0)
    terminate_grace_s: float = Field(default=5.0, ge=0)
    domains: List[str] = Field(default_factory=lambda: list(DEFAULT_DOMAINS))


class ShutdownConfig(BaseModel):
    grace_s: float = Field(default=120.0, ge=0)


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    stability: StabilityConfig = Field(default_factory=StabilityConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    pools: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_POOLS))
    disposition: DispositionConfig = Field(default_factory=DispositionConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    shutdown: ShutdownConfig = Field(default_factory=ShutdownConfig)

    @field_validator("pools")
    @classmethod
    def validate_pools(cls, v: Dict[str, int]) -> Dict[str, int]:
        for name, capacity in v.items():
            if capacity < 1:
                raise ValueError(f"Invalid capacity {capacity} for pool {name}. Must be >= 1.")
        return v
