# tests/conftest.py: Shared fixtures.

import logging
from pathlib import Path
from typing import Any, Dict

import pytest

from tagsync.config import Settings


def make_settings(workspace: Path, **overrides: Any) -> Settings:
    """Builds Settings the way load_config would, without touching the environment."""
    data: Dict[str, Any] = {
        "base_repo": "upstream-org/project",
        "head_repo": "fork-org/project",
        "workspace": str(workspace),
        "github_token": "ghs_testtoken",
        "github_actor": "sync-bot",
    }
    data.update(overrides)
    return Settings.model_validate(data)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path / "workspace")


@pytest.fixture(autouse=True)
def _propagate_logs():
    """Let caplog see 'tagsync' records and undo any setup_logging done by a test."""
    logger = logging.getLogger("tagsync")
    saved = (logger.propagate, logger.level, list(logger.handlers))
    logger.propagate = True
    yield
    logger.propagate, level, handlers = saved
    logger.setLevel(level)
    logger.handlers[:] = handlers


@pytest.fixture(autouse=True)
def _no_github_output(monkeypatch):
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)


@pytest.fixture
def settings_factory(tmp_path: Path):
    def factory(**overrides: Any) -> Settings:
        return make_settings(tmp_path / "workspace", **overrides)
    return factory
