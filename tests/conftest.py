import pytest
import sys
import textwrap
import yaml
from pathlib import Path
from PIL import Image
from ibt.config.models import AppConfig
from ibt.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns an AppConfig with fast timings for tests."""
    return AppConfig(
        general={
            "target_width": 500,
            "jpeg_quality": 85,
            "max_workers": 8,
            "debug": False,
        },
        stability={
            "poll_interval_s": 0.01,
            "stable_for_s": 0.03,
            "max_wait_s": 2.0,
        },
        dedup={"window_s": 2.0},
        shutdown={"grace_s": 5.0},
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "ibt.yaml"

    content = {
        'general': {
            'target_width': 320,
            'jpeg_quality': 80,
            'debug': True,
        },
        'pools': {
            'video': 2,
            'heic': 10,
            'gif': 1,
        },
        'disposition': {
            'media_only': False,
        },
        'extraction': {
            'executable': 'my_backup_tool',
            'timeout_s': 3600,
            'domains': ['*WhatsApp*'],
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def backup_dir(tmp_path):
    """Creates <tmp>/backups/<device id> as an extraction target."""
    device_dir = tmp_path / "backups" / "00008110-X"
    device_dir.mkdir(parents=True)
    return device_dir

@pytest.fixture
def make_image(tmp_path):
    """Factory writing a solid image of the given size and format."""
    def _make(name: str, size=(1000, 1000), fmt="PNG", mode="RGB", directory: Path = None):
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        color = (200, 30, 30, 255) if mode == "RGBA" else (200, 30, 30)
        Image.new(mode, size, color[: len(mode)]).save(path, format=fmt)
        return path
    return _make

# ============================================================================
# Fake external tool fixtures
# ============================================================================

@pytest.fixture
def make_script(tmp_path):
    """Factory writing an executable Python script usable as an external tool."""
    def _make(name: str, body: str) -> Path:
        scripts_dir = tmp_path / "bin"
        scripts_dir.mkdir(exist_ok=True)
        path = scripts_dir / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        path.chmod(0o755)
        return path
    return _make

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that spawn subprocesses or wait on real timers"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
