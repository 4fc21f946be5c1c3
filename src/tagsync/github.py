# src/tagsync/github.py: GitHub REST adapter.
# This module provides the read side of the hosting API: paginated listing of
# a repository's tags and branches, and repository metadata such as the clone
# URL. Transient server and network failures on these idempotent reads are
# retried with backoff; everything else surfaces as a RemoteAccessError.

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .config import RepoRole, RepoSpec, Settings
from .errors import RemoteAccessError
from .util.log import get_logger
from .util.retry import retry_with_backoff

logger = get_logger(__name__)

PER_PAGE = 100

T = TypeVar("T", bound="_Named")


class _Named(BaseModel):
    name: str


class Tag(_Named):
    """A tag in the base repository."""
    commit_id: str

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Tag":
        return cls(name=item["name"], commit_id=item["commit"]["sha"])


class Branch(_Named):
    """A branch in the head repository."""
    commit_id: str
    protected: bool = False

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Branch":
        return cls(
            name=item["name"],
            commit_id=item["commit"]["sha"],
            protected=bool(item.get("protected", False)),
        )


class _TransientError(Exception):
    """A retryable failure (5xx or transport error)."""


def unique_by_name(items: List[T]) -> List[T]:
    """Drop repeated names, keeping the first occurrence and the order."""
    seen = set()
    result = []
    for item in items:
        if item.name in seen:
            continue
        seen.add(item.name)
        result.append(item)
    return result


class GitHubClient:
    """
    Thin client over the GitHub REST API.

    Use as a context manager so the underlying connection pool is closed.
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        retries: int = 3,
        backoff_in_seconds: float = 1,
    ):
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "tagsync",
            },
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )
        self._get_json = retry_with_backoff(
            retries=retries,
            backoff_in_seconds=backoff_in_seconds,
            retry_on=(_TransientError,),
        )(self._get_json_once)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "GitHubClient":
        return cls(settings.token, api_url=settings.api_url, timeout=settings.http_timeout, **kwargs)

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _get_json_once(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = self._client.get(path, params=params)
        except httpx.RequestError as e:
            logger.warning(f"Network error requesting {path}: {e}")
            raise _TransientError(f"Network error requesting {path}: {e}") from e
        if response.status_code >= 500:
            logger.warning(f"Server error {response.status_code} requesting {path}")
            raise _TransientError(f"GitHub returned {response.status_code} for {path}")
        return response

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = self._get_json(path, params=params)
        except _TransientError as e:
            raise RemoteAccessError(str(e)) from e
        if response.is_error:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise RemoteAccessError(f"GitHub returned {response.status_code} for {path}: {detail}")
        return response

    def _list_all(self, path: str, parse: Callable[[Dict[str, Any]], T]) -> List[T]:
        """Request every page of `path`, stopping when no next page is linked."""
        items: List[T] = []
        page = 1
        while True:
            response = self._get(path, params={"per_page": PER_PAGE, "page": page})
            try:
                items.extend(parse(item) for item in response.json())
            except (ValueError, KeyError, TypeError, ValidationError) as e:
                raise RemoteAccessError(f"Unexpected response for {path} page {page}: {e}") from e
            if "next" not in response.links:
                break
            page += 1
        logger.debug(f"Fetched {len(items)} items from {path} in {page} page(s)")
        return unique_by_name(items)

    def list_all_tags(self, repo: RepoSpec) -> List[Tag]:
        """Returns all tags in a given repository, in API order."""
        return self._list_all(f"/repos/{repo.full_name}/tags", Tag.from_api)

    def list_all_branches(self, repo: RepoSpec) -> List[Branch]:
        """Returns all branches of a given repository."""
        return self._list_all(f"/repos/{repo.full_name}/branches", Branch.from_api)

    def get_repository(self, repo: RepoSpec) -> Dict[str, Any]:
        response = self._get(f"/repos/{repo.full_name}")
        try:
            return response.json()
        except ValueError as e:
            raise RemoteAccessError(f"Unexpected response for repository {repo}: {e}") from e

    def clone_url(self, repo: RepoSpec) -> str:
        url = self.get_repository(repo).get("clone_url")
        if not url:
            raise RemoteAccessError(f"Failed to get clone URL for repository '{repo}'.")
        return url


class RepositoryInfo:
    """Resolves repository details by role, so head and base share one lookup path."""

    def __init__(self, client: GitHubClient, settings: Settings):
        self._client = client
        self._settings = settings

    def spec(self, role: RepoRole) -> RepoSpec:
        return self._settings.repo(role)

    def clone_url(self, role: RepoRole) -> str:
        try:
            return self._client.clone_url(self.spec(role))
        except RemoteAccessError as e:
            raise RemoteAccessError(f"Failed to get clone URL for {role.value} repository: {e.args[0]}") from e
