# src/tagsync/stages.py: Detect and sync stage dispatch.
# This module wires configuration, the GitHub client, and the sync workflow
# into the two pipeline stages. Detect writes the new-tag list that the host
# pipeline can cache on; sync consumes it, pushes branches, and reports which
# branches were created. Stages are a closed set selected by name.

from enum import Enum
from pathlib import Path
from typing import List, Optional

from .action import read_tag_list, write_output, write_tag_list
from .config import Settings
from .errors import ConfigError, PartialSyncError
from .github import GitHubClient, RepositoryInfo
from .repocache import RepositoryCache
from .tagdiff import detect_new_tags, sync_branch_name
from .util.log import get_logger
from .workflow import SyncReport, SyncWorkflow

logger = get_logger(__name__)


class Stage(str, Enum):
    DETECT = "detect"
    SYNC = "sync"
    RUN = "run"

    @classmethod
    def parse(cls, value: str) -> "Stage":
        """Parses a stage name case-insensitively ('Detect' and 'detect' both work)."""
        normalized = value.strip().lower()
        for stage in cls:
            if stage.value == normalized:
                return stage
        choices = ", ".join(stage.value for stage in cls)
        raise ConfigError(f"Unknown stage '{value}'. Expected one of: {choices}.")


def run_detect(settings: Settings, client: GitHubClient) -> List[str]:
    """Finds unsynced tags and writes them to the handoff file."""
    new_tags = detect_new_tags(client, settings)

    # Written even when empty: the file's hash keys the clone cache.
    write_tag_list(settings.new_tags_file, new_tags)
    if new_tags:
        logger.info(f"New tags found: '{', '.join(new_tags)}'")
        write_output("new-tags-file", str(settings.new_tags_file))
    else:
        logger.info("Nothing to sync.")
        write_output("new-tags-file", "")
    write_output("new-tags", ",".join(new_tags))
    return new_tags


def _drop_synced(client: GitHubClient, settings: Settings, tags: List[str]) -> List[str]:
    """Removes tags whose sync branch appeared since the list was written."""
    existing = {branch.name for branch in client.list_all_branches(settings.head_repo)}
    remaining = [tag for tag in tags if sync_branch_name(tag) not in existing]
    for tag in tags:
        if tag not in remaining:
            logger.info(f"Tag '{tag}' is already synced, skipping")
    return remaining


def run_sync(
    settings: Settings,
    client: GitHubClient,
    tags_file: Optional[Path] = None,
    workflow: Optional[SyncWorkflow] = None,
) -> SyncReport:
    """
    Syncs the tags listed in the handoff file.

    Detection is re-run when the file does not exist. On an aborted run the
    failing tag's error is raised and no outputs are written.

    Raises:
        TagSyncError: The first per-tag error under the 'abort' policy.
        PartialSyncError: Any per-tag errors under the 'continue' policy,
            after outputs for the successful branches are written.
    """
    tags_file = tags_file or settings.new_tags_file
    if tags_file.exists():
        tags = _drop_synced(client, settings, read_tag_list(tags_file))
    else:
        logger.info(f"No tag list at {tags_file}, detecting new tags")
        tags = detect_new_tags(client, settings)

    if not tags:
        logger.info("Nothing to sync.")
        return SyncReport()

    logger.info(f"Syncing {len(tags)} tag(s): {', '.join(tags)}")
    if workflow is None:
        cache = RepositoryCache(settings, RepositoryInfo(client, settings))
        workflow = SyncWorkflow(settings, cache)
    report = workflow.run(tags)

    if report.aborted:
        tag, error = report.failed[-1]
        if report.skipped:
            logger.error(f"Aborted after '{tag}'; not attempted: {', '.join(report.skipped)}")
        raise error

    if report.synced_branches:
        write_tag_list(settings.synced_branches_file, report.synced_branches)
        write_output("synced-branches-file", str(settings.synced_branches_file))
        write_output("synced-branches", ",".join(report.synced_branches))
        logger.info(f"Synced {len(report.synced_branches)} branch(es) successfully.")

    if report.failed:
        raise PartialSyncError(report.failed)
    return report


def run_stage(stage: Stage, settings: Settings, client: GitHubClient, tags_file: Optional[Path] = None) -> None:
    if stage is Stage.DETECT:
        run_detect(settings, client)
    elif stage is Stage.SYNC:
        run_sync(settings, client, tags_file=tags_file)
    else:
        run_detect(settings, client)
        run_sync(settings, client)
