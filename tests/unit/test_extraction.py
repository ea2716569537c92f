import io
import logging
import threading
import pytest
from pathlib import Path
from unittest.mock import MagicMock
from rich.console import Console
from ibt.config.models import ExtractionConfig
from ibt.domain.errors import ExtractionFailed
from ibt.domain.models import DiscoveryMethod
from ibt.infrastructure.extraction import (
    ExtractionRunner,
    extension_from_domain,
    is_noise,
    parse_saved_file_line,
)
from ibt.infrastructure.logging import PASSTHROUGH_LOGGER
from ibt.infrastructure.tools import ToolResolver


# ----------------------------------------------------------------------------
# Line parsing
# ----------------------------------------------------------------------------

def test_parse_saved_line_resolves_against_backup_parent(tmp_path):
    backup_dir = tmp_path / "backups" / "00008110-X"
    line = "FILE_SAVED: path=00008110-X/Snapshot/test.txt domain=MediaDomain"

    path, domain = parse_saved_file_line(line, backup_dir)

    assert path == tmp_path / "backups" / "00008110-X" / "Snapshot" / "test.txt"
    assert domain == "MediaDomain"


def test_parse_saved_line_without_domain(tmp_path):
    backup_dir = tmp_path / "00008110-X"
    path, domain = parse_saved_file_line("FILE_SAVED: path=00008110-X/ab/abcdef", backup_dir)
    assert path == backup_dir / "ab" / "abcdef"
    assert domain is None


@pytest.mark.parametrize("line", [
    "Not a FILE_SAVED line",
    "FILE_FILTERED: path=00008110-X/a",
    "  FILE_SAVED: path=x",
    "FILE_SAVED: nothing useful",
    "",
])
def test_non_saved_lines_are_ignored(line, tmp_path):
    assert parse_saved_file_line(line, tmp_path / "dev") is None


def test_parse_does_not_check_existence(tmp_path):
    result = parse_saved_file_line("FILE_SAVED: path=dev/missing.bin", tmp_path / "dev")
    assert result is not None
    assert not result[0].exists()


@pytest.mark.parametrize("line, noisy", [
    ("FILE_FILTERED: path=a", True),
    ("Receiving domain: HomeDomain", True),
    ("   ", True),
    ("Backup progress 42%", False),
    ("FILE_SAVED: path=a", False),
])
def test_is_noise(line, noisy):
    assert is_noise(line) is noisy


@pytest.mark.parametrize("domain, ext", [
    ("/var/mobile/Media/DCIM/IMG_0001.HEIC", ".heic"),
    ("AppDomain-net.whatsapp/Message/Media/clip.MOV", ".mov"),
    ("MediaDomain", None),
    (None, None),
    ("", None),
])
def test_extension_from_domain(domain, ext):
    assert extension_from_domain(domain) == ext


# ----------------------------------------------------------------------------
# Runner
# ----------------------------------------------------------------------------

def _consoles():
    out, err = io.StringIO(), io.StringIO()
    return out, err, Console(file=out, width=200), Console(file=err, width=200)


def _runner(backup_dir, tool, dispatch, tmp_path, verbose=False, **config):
    out, err, out_console, err_console = _consoles()
    runner = ExtractionRunner(
        backup_dir,
        dispatch,
        ToolResolver(executable_dir=tmp_path),
        config=ExtractionConfig(**config),
        executable=str(tool),
        verbose=verbose,
        stdout_console=out_console,
        stderr_console=err_console,
    )
    return runner, out, err


FAKE_TOOL = """
import os, sys
args = sys.argv[1:]
assert args[-2] == "backup", args
parent = args[-1]
device = os.path.join(parent, "00008110-X")
os.makedirs(os.path.join(device, "ab"), exist_ok=True)
with open(os.path.join(device, "ab", "photo"), "wb") as f:
    f.write(b"data")
print("Receiving domain: CameraRollDomain", flush=True)
print("FILE_SAVED: path=00008110-X/ab/photo domain=/var/mobile/Media/DCIM/IMG_1.PNG", flush=True)
print("FILE_SAVED: path=00008110-X/ab/gone domain=MediaDomain", file=sys.stderr, flush=True)
print("Backup finished", flush=True)
"""


def test_runner_dispatches_reported_files_that_exist(backup_dir, make_script, tmp_path):
    tool = make_script("ios_backup", FAKE_TOOL)
    dispatched = []
    runner, out, _ = _runner(backup_dir, tool, dispatched.append, tmp_path, domains=["*WhatsApp*"])

    assert runner.run() == 2
    assert runner.returncode == 0
    assert runner.files_reported == 2
    assert len(dispatched) == 1

    file = dispatched[0]
    assert file.path == backup_dir / "ab" / "photo"
    assert file.extension_hint == ".png"
    assert file.discovery_method == DiscoveryMethod.EXTERNAL_REPORT
    assert file.created_at is not None

    text = out.getvalue()
    assert "Backup finished" in text
    assert "Receiving domain" not in text


def test_runner_verbose_echoes_everything(backup_dir, make_script, tmp_path):
    tool = make_script("ios_backup", FAKE_TOOL)
    runner, out, err = _runner(backup_dir, tool, MagicMock(), tmp_path, verbose=True)
    runner.run()
    assert "Receiving domain: CameraRollDomain" in out.getvalue()
    assert "FILE_SAVED: path=00008110-X/ab/gone" in err.getvalue()


def test_runner_passes_domains_and_backup_parent(backup_dir, tmp_path):
    runner, _, _ = _runner(backup_dir, "ios_backup", MagicMock(), tmp_path, domains=["*SMS*", "*WhatsApp*"])
    cmd = runner.build_command("/usr/local/bin/ios_backup")
    assert cmd == [
        "/usr/local/bin/ios_backup",
        "--domain", "*SMS*",
        "--domain", "*WhatsApp*",
        "backup", str(backup_dir.parent),
    ]


def test_runner_echoed_lines_reach_passthrough_logger(backup_dir, make_script, tmp_path):
    tool = make_script("ios_backup", FAKE_TOOL)
    runner, _, _ = _runner(backup_dir, tool, MagicMock(), tmp_path)
    assert runner.passthrough.name == PASSTHROUGH_LOGGER
    runner.passthrough = MagicMock()
    runner.run()
    echoed = [c.args[0] for c in runner.passthrough.info.call_args_list]
    assert "Backup finished" in echoed
    assert "Receiving domain: CameraRollDomain" not in echoed


def test_runner_nonzero_exit_is_failure(backup_dir, make_script, tmp_path):
    tool = make_script("ios_backup", """
        import sys
        print("device locked", file=sys.stderr)
        sys.exit(2)
    """)
    runner, _, _ = _runner(backup_dir, tool, MagicMock(), tmp_path)
    with pytest.raises(ExtractionFailed, match="exit code 2"):
        runner.run()
    assert runner.returncode == 2


def test_runner_missing_executable(backup_dir, tmp_path):
    runner, _, _ = _runner(backup_dir, str(tmp_path / "bin" / "absent"), MagicMock(), tmp_path)
    with pytest.raises(ExtractionFailed, match="not found"):
        runner.run()


@pytest.mark.slow
def test_runner_overall_deadline(backup_dir, make_script, tmp_path):
    tool = make_script("ios_backup", """
        import time
        print("starting", flush=True)
        time.sleep(60)
    """)
    runner, _, _ = _runner(backup_dir, tool, MagicMock(), tmp_path, timeout_s=0.5, terminate_grace_s=1.0)
    with pytest.raises(ExtractionFailed, match="timed out after 0.5s"):
        runner.run()


@pytest.mark.slow
def test_runner_stop_is_not_a_failure(backup_dir, make_script, tmp_path, caplog):
    tool = make_script("ios_backup", """
        import time
        print("starting", flush=True)
        time.sleep(60)
    """)
    runner, _, _ = _runner(backup_dir, tool, MagicMock(), tmp_path)
    threading.Timer(0.5, runner.stop).start()
    with caplog.at_level(logging.INFO):
        assert runner.run() == 0
    assert "stopped by shutdown" in caplog.text


def test_dispatch_skips_files_that_do_not_exist(backup_dir, tmp_path):
    dispatch = MagicMock()
    runner, _, _ = _runner(backup_dir, "ios_backup", dispatch, tmp_path)
    runner._handle_line("FILE_SAVED: path=00008110-X/nope domain=MediaDomain", runner.stdout_console, "stdout")
    dispatch.assert_not_called()
    assert runner.files_reported == 1


def test_echoed_lines_are_printed_verbatim(backup_dir, tmp_path):
    runner, out, _ = _runner(backup_dir, "ios_backup", MagicMock(), tmp_path)
    line = "Receiving file Library/SMS/:smile:/[bold]a.txt[/bold]"
    runner._handle_line(line, runner.stdout_console, "stdout")
    assert out.getvalue() == line + "\n"
