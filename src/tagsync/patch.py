# src/tagsync/patch.py
"""Downloading and applying the optional patch for each sync branch."""

from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from .config import Identity, PatchConfig
from .errors import GitError, PatchError, RemoteAccessError
from .gitwrap import (
    git_apply_index,
    git_commit_tree,
    git_get_head_sha,
    git_update_ref,
    git_write_tree,
)
from .repocache import RepositoryHandle
from .util.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PatchSpec:
    """Everything needed to turn a diff into one commit."""
    author: Identity
    committer: Identity
    message: str
    diff: bytes

    @classmethod
    def from_config(cls, config: PatchConfig, diff: bytes) -> "PatchSpec":
        return cls(
            author=config.author,
            committer=config.committer,
            message=config.commit_message,
            diff=diff,
        )

    def commit_env(self) -> Dict[str, str]:
        return {
            "GIT_AUTHOR_NAME": self.author.name,
            "GIT_AUTHOR_EMAIL": self.author.email,
            "GIT_COMMITTER_NAME": self.committer.name,
            "GIT_COMMITTER_EMAIL": self.committer.email,
        }


class PatchSource:
    """
    Fetches the patch once per run and serves the cached bytes afterwards.

    The same diff is applied to every new branch, so there is no reason to
    download it more than once.
    """

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.BaseTransport] = None):
        self._timeout = timeout
        self._transport = transport
        self._cache: Dict[str, bytes] = {}

    def load(self, url: str) -> bytes:
        """
        Returns the raw diff bytes at `url`.

        Raises:
            RemoteAccessError: If the download fails.
            PatchError: If the server returns an empty body.
        """
        if url in self._cache:
            return self._cache[url]

        logger.info(f"Downloading patch from {url}")
        try:
            with httpx.Client(timeout=self._timeout, follow_redirects=True, transport=self._transport) as client:
                response = client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise RemoteAccessError(f"Failed to download patch from {url}: {e}") from e

        diff = response.content
        if not diff.strip():
            raise PatchError(f"patch downloaded from {url} is empty", operation="load patch")

        logger.debug(f"Downloaded {len(diff)} bytes of patch")
        self._cache[url] = diff
        return diff


def apply_patch(handle: RepositoryHandle, spec: PatchSpec) -> str:
    """
    Applies `spec.diff` to the checked-out branch and commits it on top of HEAD.

    The diff goes to both index and working tree. `git apply` rejects the
    whole patch if any hunk fails, so a failed apply leaves nothing staged.

    Returns:
        The id of the new commit.

    Raises:
        PatchError: If the diff does not apply or the commit cannot be created.
    """
    parent = git_get_head_sha(handle.path)
    logger.debug(f"Parent commit: {parent}")

    try:
        git_apply_index(handle.path, spec.diff)
    except GitError as e:
        raise PatchError(e.detail, operation="apply patch") from e

    try:
        tree = git_write_tree(handle.path)
        commit = git_commit_tree(handle.path, tree, parent, spec.message, spec.commit_env())
        subject = (spec.message.splitlines() or [""])[0]
        git_update_ref(handle.path, "HEAD", commit, parent, f"tagsync: {subject}")
    except GitError as e:
        raise PatchError(e.detail, operation="commit patch") from e

    logger.info(f"Committed patch as {commit}")
    return commit
