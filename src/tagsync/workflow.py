# src/tagsync/workflow.py: Per-tag synchronization pipeline.
# This module drives the sync of a list of new tags through a shared working
# clone. Each tag runs fetch -> branch -> (patch) -> push -> (post-sync
# command) to completion before the next one starts, because every step
# mutates the same working tree. What happens after a tag fails is decided by
# the configured policy: 'abort' stops at the first failure, 'continue'
# records it and moves on.

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .config import Settings
from .errors import GitError, HookError, TagSyncError
from .gitwrap import git_branch_exists, git_checkout, git_delete_branch, git_reset_hard
from .hooks import run_post_sync_command
from .patch import PatchSource, PatchSpec, apply_patch
from .repocache import RepositoryCache, RepositoryHandle
from .tagdiff import sync_branch_name
from .util.log import get_logger, tag_context

logger = get_logger(__name__)


class TagState(Enum):
    """How far a tag got through the pipeline."""
    FETCHED = "fetched"
    BRANCHED = "branched"
    PATCHED = "patched"
    PUSHED = "pushed"
    POST_HOOK_RUN = "post_hook_run"


@dataclass
class TagResult:
    tag: str
    branch: str
    state: TagState = TagState.FETCHED
    commit_id: Optional[str] = None
    error: Optional[TagSyncError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def pushed(self) -> bool:
        return self.state in (TagState.PUSHED, TagState.POST_HOOK_RUN)


@dataclass
class SyncReport:
    results: List[TagResult] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    aborted: bool = False

    @property
    def synced_branches(self) -> List[str]:
        """Branches now present on origin, including any whose post-sync command failed."""
        return [result.branch for result in self.results if result.pushed]

    @property
    def failed(self) -> List[Tuple[str, TagSyncError]]:
        return [(result.tag, result.error) for result in self.results if result.error is not None]


class SyncWorkflow:
    """
    Materializes new tags as branches in the head repository.

    The clone is acquired once per run and all requested tags are fetched
    from upstream in a single call before the per-tag loop starts.
    """

    def __init__(
        self,
        settings: Settings,
        cache: RepositoryCache,
        patch_source: Optional[PatchSource] = None,
        hook_runner: Callable[..., None] = run_post_sync_command,
    ):
        self.settings = settings
        self.cache = cache
        self.patch_source = patch_source or PatchSource(timeout=settings.http_timeout)
        self.hook_runner = hook_runner

    def run(self, tags: List[str]) -> SyncReport:
        """
        Syncs `tags` in order and returns what happened to each.

        Fatal errors (patch download, clone, fetch) propagate. Per-tag errors
        are recorded on the report; under the 'abort' policy the remaining
        tags are listed in `report.skipped` and `report.aborted` is set.
        """
        report = SyncReport()
        if not tags:
            return report

        patch = self._load_patch()
        handle = self.cache.acquire()
        try:
            handle.fetch_upstream_tags(tags)
        except GitError as e:
            raise GitError(e.detail, operation="fetch upstream tags") from e
        logger.debug(f"Branches: {', '.join(handle.local_branches())}")

        attempted = set()
        for index, tag in enumerate(tags):
            token = tag_context.set(tag)
            try:
                result = self._sync_tag(handle, tag, patch, repeated=tag in attempted)
            finally:
                tag_context.reset(token)
            attempted.add(tag)
            report.results.append(result)

            if result.ok:
                continue
            logger.error(f"Failed to sync tag '{tag}': {result.error}")
            if self.settings.on_error == "abort":
                report.aborted = True
                report.skipped = list(tags[index + 1:])
                break

        return report

    def _load_patch(self) -> Optional[PatchSpec]:
        config = self.settings.patch
        if not config.enabled:
            return None
        diff = self.patch_source.load(config.url)
        return PatchSpec.from_config(config, diff)

    def _sync_tag(
        self,
        handle: RepositoryHandle,
        tag: str,
        patch: Optional[PatchSpec],
        repeated: bool = False,
    ) -> TagResult:
        result = TagResult(tag=tag, branch=sync_branch_name(tag))
        previous = handle.head_commit()
        branch_existed = git_branch_exists(handle.path, result.branch)
        operation = "checkout"

        try:
            # Only tags without a branch on origin get here, so a local branch
            # of the same name is left over from an interrupted attempt.
            if branch_existed and not repeated:
                self._discard_leftover_branch(handle, result.branch, previous)
                branch_existed = False
            handle.checkout_tag(tag)
            result.state = TagState.BRANCHED

            if patch is not None:
                operation = "apply patch"
                result.commit_id = apply_patch(handle, patch)
                result.state = TagState.PATCHED

            operation = "push"
            self._push(handle, result)
            result.state = TagState.PUSHED
            logger.info(f"Pushed branch '{result.branch}'")

            if self.settings.commands_after_sync:
                self.hook_runner(
                    self.settings.commands_after_sync,
                    cwd=handle.path,
                    tag=tag,
                    branch=result.branch,
                    timeout=self.settings.hook_timeout,
                )
                result.state = TagState.POST_HOOK_RUN
        except GitError as e:
            result.error = e if e.tag is not None else e.for_tag(tag, operation)
        except HookError as e:
            result.error = e

        if result.error is not None and not result.pushed:
            self._rollback(handle, result, previous, delete_branch=not branch_existed)
        return result

    def _push(self, handle: RepositoryHandle, result: TagResult) -> None:
        try:
            handle.push_head()
        except GitError as e:
            raise GitError(
                f"could not push branch '{result.branch}' to origin: {e.detail}",
                tag=result.tag,
                operation="push",
            ) from e

    def _discard_leftover_branch(self, handle: RepositoryHandle, branch: str, previous: str) -> None:
        logger.warning(f"Removing local branch '{branch}' left by an earlier attempt")
        git_checkout(handle.path, previous, force=True, detach=True)
        git_delete_branch(handle.path, branch)

    def _rollback(self, handle: RepositoryHandle, result: TagResult, previous: str, delete_branch: bool) -> None:
        """Puts the clone back where it was before this tag, so a rerun starts clean."""
        try:
            git_reset_hard(handle.path)
            git_checkout(handle.path, previous, force=True, detach=True)
            if delete_branch and git_branch_exists(handle.path, result.branch):
                git_delete_branch(handle.path, result.branch)
        except GitError as e:
            logger.warning(f"Could not restore clone after '{result.tag}' failed: {e}")
