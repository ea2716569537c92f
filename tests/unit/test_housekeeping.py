import logging
from pathlib import Path
from unittest.mock import patch
from ibt.infrastructure.housekeeping import HousekeepingService

def test_housekeeping_cleanup_tmp(tmp_path):
    (tmp_path / ".ibt-1a2b.tmp").write_text("data")
    (tmp_path / "IMG_0001.jpg").write_text("data")
    (tmp_path / "notes.tmp").write_text("data")
    (tmp_path / "ab").mkdir()
    (tmp_path / "ab" / ".ibt-ffff.tmp").write_text("data")
    (tmp_path / "ab" / ".ibt-0c0d.jpg").write_text("frame")

    service = HousekeepingService()
    removed = service.cleanup_temp_files(tmp_path)

    assert removed == 3
    assert not (tmp_path / ".ibt-1a2b.tmp").exists()
    assert not (tmp_path / "ab" / ".ibt-ffff.tmp").exists()
    assert not (tmp_path / "ab" / ".ibt-0c0d.jpg").exists()
    assert (tmp_path / "IMG_0001.jpg").exists()
    # Only our own artifacts are touched
    assert (tmp_path / "notes.tmp").exists()

def test_housekeeping_logs_count(tmp_path, caplog):
    (tmp_path / ".ibt-1.tmp").write_text("data")
    with caplog.at_level(logging.INFO):
        HousekeepingService().cleanup_temp_files(tmp_path)
    assert "Removed 1 stale temp files" in caplog.text

def test_housekeeping_missing_directory(tmp_path):
    assert HousekeepingService().cleanup_temp_files(tmp_path / "absent") == 0

def test_housekeeping_handles_oserror(tmp_path):
    f = tmp_path / ".ibt-locked.tmp"
    f.write_text("data")

    service = HousekeepingService()
    with patch.object(Path, 'unlink', side_effect=OSError("Permission denied")):
        # Should not raise exception
        assert service.cleanup_temp_files(tmp_path) == 0
        assert f.exists()
