# src/tagsync/util/paths.py: Platform path resolution.
# This module resolves the per-user directories used when the tool runs outside
# a CI workspace, and expands user-supplied paths.

import os
from pathlib import Path

import platformdirs

APP_NAME = "tagsync"


def get_config_home() -> Path:
    """Get the user config directory for the application."""
    return Path(platformdirs.user_config_dir(APP_NAME))


def get_cache_home() -> Path:
    """Get the user cache directory, the default workspace outside CI."""
    return Path(platformdirs.user_cache_dir(APP_NAME))


def get_default_config_path() -> Path:
    return get_config_home() / "tagsync.yaml"


def expand_path(path: str | Path) -> Path:
    """Expand environment variables and user home directory in a path."""
    return Path(os.path.expandvars(os.path.expanduser(str(path)))).resolve()
