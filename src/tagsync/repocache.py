# src/tagsync/repocache.py: Local clone lifecycle.
# This module owns the working clone of the head repository. The clone path is
# itself the cache: when it exists it is reopened as-is (remotes included),
# otherwise the head repository is cloned and the base repository registered
# as 'upstream'. Either way the 'origin' URL is rewritten with the current
# credentials, since tokens rotate between runs.

import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Protocol
from urllib.parse import quote, urlsplit, urlunsplit

from .config import RepoRole, Settings
from .errors import GitError
from .gitwrap import (
    ORIGIN,
    UPSTREAM,
    askpass_env,
    git_branch_exists,
    git_checkout,
    git_clone,
    git_create_branch,
    git_fetch_refspecs,
    git_get_head_sha,
    git_head_ref,
    git_is_repo_root,
    git_list_branches,
    git_push,
    git_remote_add,
    git_remote_names,
    git_remote_set_url,
)
from .tagdiff import sync_branch_name, sync_tag_ref
from .util.log import get_logger

logger = get_logger(__name__)


class RepositoryInfoProvider(Protocol):
    def clone_url(self, role: RepoRole) -> str:
        ...


class RepositoryHandle:
    """
    A working copy with 'origin' (head) and 'upstream' (base) remotes.

    All git operations for a run go through one handle. It is not safe to
    share a clone path between concurrent runs.
    """

    def __init__(self, path: Path, settings: Settings):
        self.path = path
        self._settings = settings

    def __repr__(self) -> str:
        return f"RepositoryHandle({str(self.path)!r})"

    @property
    def timeout(self) -> int:
        return self._settings.git_timeout

    @contextmanager
    def credentials(self) -> Iterator[Dict[str, str]]:
        """Environment carrying the current token for the duration of one git call."""
        with askpass_env(self._settings.github_actor, self._settings.token) as env:
            yield env

    def remotes(self) -> List[str]:
        return git_remote_names(self.path)

    def local_branches(self) -> List[str]:
        return git_list_branches(self.path)

    def head_ref(self) -> str:
        return git_head_ref(self.path)

    def head_commit(self) -> str:
        return git_get_head_sha(self.path)

    def fetch_upstream_tags(self, tags: List[str]) -> None:
        """Fetches only `tags` from upstream, each into its refs/tags/sync-<tag> namespace."""
        refspecs = [f"+refs/tags/{tag}:{sync_tag_ref(tag)}" for tag in tags]
        logger.debug(f"Fetching refspecs: {' '.join(refspecs)}")
        with self.credentials() as env:
            git_fetch_refspecs(self.path, UPSTREAM, refspecs, timeout=self.timeout, env=env)

    def checkout_tag(self, tag: str) -> str:
        """
        Creates branch sync-<tag> at the fetched tag's commit and switches to it.

        Returns:
            The commit the new branch points at.

        Raises:
            GitError: If the branch already exists or any git step fails.
        """
        commit = git_get_head_sha(self.path, sync_tag_ref(tag))
        logger.debug(f"Tag '{tag}' commit '{commit}'")

        branch = sync_branch_name(tag)
        if git_branch_exists(self.path, branch):
            raise GitError(f"local branch '{branch}' already exists", tag=tag, operation="checkout")
        git_create_branch(self.path, branch, commit)

        logger.debug(f"Checking out branch '{branch}'")
        git_checkout(self.path, branch, force=True)
        logger.debug(f"Current branch='{self.head_ref()}', id='{commit}'")
        return commit

    def push_head(self) -> str:
        """Pushes the current branch to origin under the same name and returns its ref."""
        head_ref = self.head_ref()
        with self.credentials() as env:
            git_push(self.path, ORIGIN, f"{head_ref}:{head_ref}", timeout=self.timeout, env=env)
        logger.debug(f"Pushed reference='{head_ref}'")
        return head_ref


class RepositoryCache:
    """Clones the head repository once and reopens it on later acquisitions."""

    def __init__(self, settings: Settings, repo_info: RepositoryInfoProvider):
        self._settings = settings
        self._repo_info = repo_info

    @property
    def path(self) -> Path:
        return self._settings.clone_path

    def acquire(self) -> RepositoryHandle:
        path = self.path
        if not path.exists():
            self._clone(path)
        else:
            if not git_is_repo_root(path):
                raise GitError(
                    f"cached clone path '{path}' exists but is not a git repository",
                    operation="open",
                )
            logger.info(f"Reusing cached clone at {path}")

        git_remote_set_url(path, ORIGIN, self.origin_url())
        logger.debug(f"Cloned repository path: {path}")
        return RepositoryHandle(path, self._settings)

    def _clone(self, path: Path) -> None:
        head_url = self._repo_info.clone_url(RepoRole.HEAD)
        base_url = self._repo_info.clone_url(RepoRole.BASE)
        logger.debug(f"Git urls: head='{head_url}', base='{base_url}'")

        with askpass_env(self._settings.github_actor, self._settings.token) as env:
            git_clone(head_url, path, timeout=self._settings.git_timeout, env=env)
        try:
            git_remote_add(path, UPSTREAM, base_url)
        except GitError:
            # A clone without 'upstream' would be reused as-is next run.
            shutil.rmtree(path, ignore_errors=True)
            raise
        logger.info(f"Cloned {self._settings.head_repo} into {path}")

    def origin_url(self) -> str:
        """The head repository URL with the actor and token embedded.

        Only HTTP(S) servers carry credentials; other schemes (e.g. file://
        mirrors) get the bare path.
        """
        server = urlsplit(self._settings.server_url)
        head = self._settings.head_repo
        path = f"{server.path.rstrip('/')}/{head.owner}/{head.name}.git"
        scheme = server.scheme or "https"
        if scheme not in ("http", "https"):
            return urlunsplit((scheme, server.netloc, path, "", ""))

        user = quote(self._settings.github_actor, safe="")
        token = quote(self._settings.token, safe="")
        return urlunsplit((scheme, f"{user}:{token}@{server.netloc}", path, "", ""))
