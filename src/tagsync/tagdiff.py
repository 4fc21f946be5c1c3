# src/tagsync/tagdiff.py: New-tag detection.
# This module owns the naming convention that links an upstream tag to its
# mirrored branch, and computes which tags still need to be synced. The
# branch and ref names produced here must stay stable across releases,
# because previous runs' branches are what mark a tag as already synced.

import re
from typing import Iterable, List, TYPE_CHECKING

from .util.log import get_logger

if TYPE_CHECKING:
    from .config import Settings
    from .github import Branch, GitHubClient, Tag

logger = get_logger(__name__)

SYNC_PREFIX = "sync-"


def sync_branch_name(tag: str) -> str:
    """The branch that mirrors `tag`, e.g. 'v1.0' -> 'sync-v1.0'."""
    return f"{SYNC_PREFIX}{tag}"


def sync_tag_ref(tag: str) -> str:
    """The local ref a fetched upstream tag is stored under."""
    return f"refs/tags/{SYNC_PREFIX}{tag}"


def compute_new_tags(
    base_tags: Iterable["Tag"],
    head_branches: Iterable["Branch"],
    filter_tags: re.Pattern,
) -> List[str]:
    """
    Returns the names of base tags that have no sync branch in the head repository.

    Tags are kept in the order given. A tag whose name does not match
    `filter_tags` is skipped silently.
    """
    head_branch_names = {branch.name for branch in head_branches}
    new_tags = []
    for tag in base_tags:
        if sync_branch_name(tag.name) in head_branch_names:
            continue
        if not filter_tags.search(tag.name):
            continue
        new_tags.append(tag.name)
    return new_tags


def detect_new_tags(client: "GitHubClient", settings: "Settings") -> List[str]:
    """Lists the remote tags and branches and returns the unsynced tag names."""
    base_tags = client.list_all_tags(settings.base_repo)
    head_branches = client.list_all_branches(settings.head_repo)
    logger.info(
        f"Found {len(base_tags)} tags in {settings.base_repo} "
        f"and {len(head_branches)} branches in {settings.head_repo}"
    )
    return compute_new_tags(base_tags, head_branches, settings.filter_tags)
