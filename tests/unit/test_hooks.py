# tests/unit/test_hooks.py: Unit tests for the post-sync command runner.

import subprocess
from pathlib import Path

import pytest

from tagsync.errors import ExitCode, HookError
from tagsync.hooks import run_post_sync_command


def test_command_receives_tag_and_branch(monkeypatch, tmp_path: Path):
    seen = {}

    def mock_run(cmd, **kwargs):
        seen["cmd"] = cmd
        seen.update(kwargs)
        return subprocess.CompletedProcess(args=cmd, returncode=0)

    monkeypatch.setattr(subprocess, "run", mock_run)
    run_post_sync_command("make notify", cwd=tmp_path, tag="v1.0", branch="sync-v1.0", timeout=10)

    assert seen["cmd"] == ["bash", "-c", "make notify"]
    assert seen["cwd"] == tmp_path
    assert seen["timeout"] == 10
    assert seen["env"]["TAGSYNC_TAG"] == "v1.0"
    assert seen["env"]["TAGSYNC_BRANCH"] == "sync-v1.0"


def test_non_zero_exit(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kwargs: subprocess.CompletedProcess(args=cmd, returncode=2))
    with pytest.raises(HookError, match="post-sync command failed for tag 'v1.0': exited with status 2") as excinfo:
        run_post_sync_command("false", cwd=tmp_path, tag="v1.0", branch="sync-v1.0")
    assert excinfo.value.exit_code == ExitCode.HOOK_ERROR


def test_bash_missing(monkeypatch, tmp_path: Path):
    def mock_run(cmd, **kwargs):
        raise FileNotFoundError("bash")

    monkeypatch.setattr(subprocess, "run", mock_run)
    with pytest.raises(HookError, match="could not start bash"):
        run_post_sync_command("true", cwd=tmp_path, tag="v1.0", branch="sync-v1.0")


def test_timeout(monkeypatch, tmp_path: Path):
    def mock_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(subprocess, "run", mock_run)
    with pytest.raises(HookError, match="timed out after 1 seconds"):
        run_post_sync_command("sleep 5", cwd=tmp_path, tag="v1.0", branch="sync-v1.0", timeout=1)
