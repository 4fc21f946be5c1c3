# src/tagsync/config.py
"""Configuration loading and validation using Pydantic.

Settings come from an optional YAML file overlaid with environment variables.
The variable names are the ones the GitHub Action exports (``BASE_REPO``,
``FILTER_TAGS``, ``GITHUB_TOKEN``...). Everything is validated once, up front,
so a bad repository spec or tag filter fails before any network or git
activity. The resulting :class:`Settings` object is passed explicitly to every
component; nothing else reads the environment for configuration.
"""

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from .errors import ConfigError
from .util.log import register_secret
from .util.paths import expand_path, get_cache_home

BOT_NAME = "github-actions[bot]"
BOT_EMAIL = "github-actions[bot]@users.noreply.github.com"

NEW_TAGS_FILENAME = "new_tags.txt"
SYNCED_BRANCHES_FILENAME = "synced_branches.txt"

# Environment variable -> key path inside the settings mapping.
ENV_VARS: Dict[str, Tuple[str, ...]] = {
    "BASE_REPO": ("base_repo",),
    "HEAD_REPO": ("head_repo",),
    "GITHUB_WORKSPACE": ("workspace",),
    "CLONED_PATH": ("cloned_path",),
    "FILTER_TAGS": ("filter_tags",),
    "PATCH_URL": ("patch", "url"),
    "PATCH_MESSAGE": ("patch", "message"),
    "PATCH_AUTHOR": ("patch", "author", "name"),
    "PATCH_AUTHOR_EMAIL": ("patch", "author", "email"),
    "PATCH_COMMITTER": ("patch", "committer", "name"),
    "PATCH_COMMITTER_EMAIL": ("patch", "committer", "email"),
    "COMMANDS_AFTER_SYNC": ("commands_after_sync",),
    "GITHUB_TOKEN": ("github_token",),
    "GITHUB_ACTOR": ("github_actor",),
    "GITHUB_API_URL": ("api_url",),
    "GITHUB_SERVER_URL": ("server_url",),
    "TAGSYNC_ON_ERROR": ("on_error",),
    "TAGSYNC_GIT_TIMEOUT": ("git_timeout",),
    "TAGSYNC_HTTP_TIMEOUT": ("http_timeout",),
    "TAGSYNC_HOOK_TIMEOUT": ("hook_timeout",),
    "TAGSYNC_LOG_LEVEL": ("logging", "level"),
    "TAGSYNC_LOG_JSON": ("logging", "json"),
}


class RepoRole(str, Enum):
    """Which side of the sync a repository plays."""
    BASE = "base"
    HEAD = "head"


def _split_repo(value: str) -> Tuple[str, str]:
    parts = value.split("/")
    if len(parts) != 2 or not all(part.strip() for part in parts):
        raise ValueError(f"'{value}' must be in format 'owner/repo'.")
    return parts[0].strip(), parts[1].strip()


class RepoSpec(BaseModel):
    """A repository identified by owner and name."""
    model_config = ConfigDict(frozen=True)

    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> "RepoSpec":
        try:
            owner, name = _split_repo(value)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


class Identity(BaseModel):
    """A git signature without a timestamp."""
    name: str = BOT_NAME
    email: str = BOT_EMAIL


class PatchConfig(BaseModel):
    """Optional patch applied on top of every new sync branch."""
    url: Optional[str] = None
    message: str = ""
    author: Identity = Field(default_factory=Identity)
    committer: Identity = Field(default_factory=Identity)

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @property
    def commit_message(self) -> str:
        return self.message or f"Apply patch from {self.url}"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(populate_by_name=True)

    level: str = "INFO"
    json_format: bool = Field(False, alias="json")


class Settings(BaseModel):
    """Root configuration model."""
    base_repo: RepoSpec
    head_repo: RepoSpec
    workspace: Path = Field(default_factory=get_cache_home)
    cloned_path: str = "head-repo"
    filter_tags: re.Pattern = re.compile(".*")
    patch: PatchConfig = Field(default_factory=PatchConfig)
    commands_after_sync: Optional[str] = None
    github_token: SecretStr
    github_actor: str
    api_url: str = "https://api.github.com"
    server_url: str = "https://github.com"
    on_error: Literal["abort", "continue"] = "abort"
    git_timeout: int = 600
    http_timeout: float = 30.0
    hook_timeout: Optional[float] = None
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("base_repo", "head_repo", mode="before")
    @classmethod
    def _parse_repo(cls, value: Any) -> Any:
        if isinstance(value, str):
            owner, name = _split_repo(value)
            return {"owner": owner, "name": name}
        return value

    @field_validator("filter_tags", mode="before")
    @classmethod
    def _compile_filter(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid tag filter pattern '{value}': {e}") from e
        return value

    @field_validator("workspace", mode="before")
    @classmethod
    def _expand_workspace(cls, value: Any) -> Any:
        if isinstance(value, (str, Path)):
            return expand_path(value)
        return value

    @field_validator("github_actor")
    @classmethod
    def _require_actor(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def clone_path(self) -> Path:
        return self.workspace / self.cloned_path

    @property
    def new_tags_file(self) -> Path:
        return self.workspace / NEW_TAGS_FILENAME

    @property
    def synced_branches_file(self) -> Path:
        return self.workspace / SYNCED_BRANCHES_FILENAME

    @property
    def token(self) -> str:
        return self.github_token.get_secret_value()

    def repo(self, role: RepoRole) -> RepoSpec:
        return self.base_repo if role is RepoRole.BASE else self.head_repo


def _set_path(data: Dict[str, Any], keys: Tuple[str, ...], value: str) -> None:
    for key in keys[:-1]:
        child = data.get(key)
        if not isinstance(child, dict):
            child = {}
            data[key] = child
        data = child
    data[keys[-1]] = value


def _overlay_environ(data: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Apply environment overrides; empty values count as unset."""
    for var, keys in ENV_VARS.items():
        value = environ.get(var)
        if value:
            _set_path(data, keys, value)
    return data


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.is_file():
        raise ConfigError(f"Configuration file not found at '{config_path}'.")
    try:
        data = yaml.safe_load(config_path.read_bytes())
    except (IOError, PermissionError) as e:
        raise ConfigError(f"Failed to read configuration file '{config_path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration file '{config_path}': {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file '{config_path}' must contain a mapping.")
    return data


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Load, merge and validate the run configuration.

    Args:
        path: Optional YAML file. Falls back to ``TAGSYNC_CONFIG`` when None.
        environ: Environment mapping, ``os.environ`` by default.

    Returns:
        A validated Settings instance.

    Raises:
        ConfigError: If the file cannot be read or the merged values fail validation.
    """
    if environ is None:
        environ = os.environ

    config_path = path or environ.get("TAGSYNC_CONFIG") or None
    data = _read_yaml(Path(config_path)) if config_path else {}
    data = _overlay_environ(data, environ)

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed:\n{e}") from e

    register_secret(settings.token)
    return settings
