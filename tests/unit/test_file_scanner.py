import pytest
from pathlib import Path
from ibt.infrastructure.file_scanner import FileScanner, is_ignored, is_temp_artifact

def test_file_scanner_basic(tmp_path):
    (tmp_path / "ab").mkdir()
    (tmp_path / "ab" / "abcdef0123").write_bytes(b"\xff\xd8\xff")
    (tmp_path / "cd").mkdir()
    (tmp_path / "cd" / "cdef4567").write_bytes(b"bplist00")
    (tmp_path / "Manifest.db").write_bytes(b"SQLite format 3\x00")

    scanner = FileScanner()
    paths = [p.relative_to(tmp_path).as_posix() for p in scanner.scan(tmp_path)]

    assert paths == ["Manifest.db", "ab/abcdef0123", "cd/cdef4567"]

def test_file_scanner_skips_hidden_and_temp(tmp_path):
    (tmp_path / "keep").write_text("x")
    (tmp_path / ".DS_Store").write_text("x")
    (tmp_path / ".ibt-0a1b.tmp").write_text("x")
    (tmp_path / "partial.TMP").write_text("x")
    (tmp_path / "download.temp").write_text("x")

    names = {p.name for p in FileScanner().scan(tmp_path)}
    assert names == {"keep"}

def test_scan_directory_is_not_recursive(tmp_path):
    (tmp_path / "top").write_text("x")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "nested").write_text("x")

    names = [p.name for p in FileScanner().scan_directory(tmp_path)]
    assert names == ["top"]

def test_scan_directory_missing_dir_yields_nothing(tmp_path):
    assert list(FileScanner().scan_directory(tmp_path / "gone")) == []

def test_walk_yields_sorted_files(tmp_path):
    for name in ("c", "a", "b"):
        (tmp_path / name).write_text("x")
    walked = list(FileScanner().walk(tmp_path))
    assert walked[0] == (tmp_path, ["a", "b", "c"])

@pytest.mark.parametrize("name, artifact", [
    (".ibt-123.tmp", True),
    (".ibt-123.jpg", True),
    ("IMG_0001.jpg", False),
    ("ibt-123.tmp", False),
])
def test_is_temp_artifact(name, artifact):
    assert is_temp_artifact(Path("/b") / name) is artifact

@pytest.mark.parametrize("name, ignored", [
    ("abcdef", False),
    ("IMG_0001.HEIC", False),
    (".hidden", True),
    ("x.tmp", True),
    ("x.Temp", True),
])
def test_is_ignored(name, ignored):
    assert is_ignored(Path("/b") / name) is ignored
