# src/tagsync/errors.py
"""Typed exceptions and exit codes for the application."""

from enum import IntEnum
from typing import List, Optional, Tuple


class ExitCode(IntEnum):
    """Enumeration for application exit codes."""
    OK = 0
    UNKNOWN_ERROR = 1
    CONFIG_ERROR = 10
    REMOTE_ACCESS_ERROR = 11
    GIT_ERROR = 12
    PATCH_ERROR = 13
    HOOK_ERROR = 14
    PARTIAL_SYNC = 15


class TagSyncError(Exception):
    """Base exception for all tagsync errors."""
    def __init__(self, message: str, exit_code: ExitCode = ExitCode.UNKNOWN_ERROR):
        super().__init__(message)
        self.exit_code = exit_code

    def __str__(self) -> str:
        return f"[{self.exit_code.name}] {super().__str__()}"


class ConfigError(TagSyncError):
    """Bad repository spec, invalid regex, missing variable or unreadable config file."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.CONFIG_ERROR)


class RemoteAccessError(TagSyncError):
    """Failure talking to the hosting API or downloading the patch."""
    def __init__(self, message: str):
        super().__init__(message, ExitCode.REMOTE_ACCESS_ERROR)


class GitError(TagSyncError):
    """A git operation failed, optionally scoped to a single tag."""
    def __init__(
        self,
        message: str,
        *,
        tag: Optional[str] = None,
        operation: Optional[str] = None,
        exit_code: ExitCode = ExitCode.GIT_ERROR,
    ):
        self.detail = message
        self.tag = tag
        self.operation = operation
        if tag is not None and operation is not None:
            message = f"{operation} failed for tag '{tag}': {message}"
        elif operation is not None:
            message = f"{operation} failed: {message}"
        super().__init__(message, exit_code)

    def for_tag(self, tag: str, operation: str) -> "GitError":
        """Return a copy of this error that names the tag and operation."""
        return type(self)(self.detail, tag=tag, operation=self.operation or operation)


class PatchError(GitError):
    """The patch could not be applied or committed."""
    def __init__(self, message: str, *, tag: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message, tag=tag, operation=operation, exit_code=ExitCode.PATCH_ERROR)


class HookError(TagSyncError):
    """The post-sync command exited non-zero or could not be started."""
    def __init__(self, message: str, tag: Optional[str] = None):
        self.tag = tag
        if tag is not None:
            message = f"post-sync command failed for tag '{tag}': {message}"
        super().__init__(message, ExitCode.HOOK_ERROR)


class PartialSyncError(TagSyncError):
    """Some tags failed during a run that continues past per-tag errors."""
    def __init__(self, failed: List[Tuple[str, TagSyncError]]):
        self.failed = failed
        names = ", ".join(tag for tag, _ in failed)
        super().__init__(f"{len(failed)} tag(s) failed to sync: {names}", ExitCode.PARTIAL_SYNC)
