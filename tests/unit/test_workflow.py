# tests/unit/test_workflow.py: Unit tests for the per-tag sync pipeline.

from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from tagsync.errors import GitError, HookError, PatchError
from tagsync.workflow import SyncWorkflow, TagState

REPO = Path("/repo")
START = "0" * 40


@pytest.fixture
def handle():
    handle = MagicMock()
    handle.path = REPO
    handle.head_commit.return_value = START
    handle.push_head.return_value = "refs/heads/sync"
    return handle


@pytest.fixture
def cache(handle):
    cache = MagicMock()
    cache.acquire.return_value = handle
    return cache


@pytest.fixture
def local_branches(handle):
    """Simulated local branch set, grown by checkout_tag."""
    branches = set()

    def checkout_tag(tag):
        if f"sync-{tag}" in branches:
            raise GitError(f"local branch 'sync-{tag}' already exists", tag=tag, operation="checkout")
        branches.add(f"sync-{tag}")

    handle.checkout_tag.side_effect = checkout_tag
    with patch("tagsync.workflow.git_branch_exists", side_effect=lambda path, name: name in branches):
        yield branches


@pytest.fixture
def rollback(local_branches):
    with patch("tagsync.workflow.git_reset_hard") as mock_reset, \
         patch("tagsync.workflow.git_checkout") as mock_checkout, \
         patch("tagsync.workflow.git_delete_branch", side_effect=lambda path, name: local_branches.discard(name)) as mock_delete:
        yield mock_reset, mock_checkout, mock_delete


def _fail_push_for(handle, failing_tag):
    def push():
        current = handle.checkout_tag.call_args.args[0]
        if current == failing_tag:
            raise GitError("! [rejected] (fetch first)")
        return f"refs/heads/sync-{current}"
    handle.push_head.side_effect = push


def test_all_tags_synced_in_order(settings, cache, handle, local_branches, rollback):
    """Tests that tags are fetched once, then branched and pushed in order."""
    workflow = SyncWorkflow(settings, cache)
    report = workflow.run(["v1", "v2", "v3"])

    handle.fetch_upstream_tags.assert_called_once_with(["v1", "v2", "v3"])
    assert handle.checkout_tag.call_args_list == [call("v1"), call("v2"), call("v3")]
    assert report.synced_branches == ["sync-v1", "sync-v2", "sync-v3"]
    assert report.failed == []
    assert not report.aborted
    assert all(result.state is TagState.PUSHED for result in report.results)
    rollback[0].assert_not_called()


def test_no_tags_is_a_no_op(settings, cache):
    report = SyncWorkflow(settings, cache).run([])
    assert report.results == []
    cache.acquire.assert_not_called()


def test_push_failure_aborts(settings, cache, handle, local_branches, rollback):
    """Tests that under 'abort' the second tag's push failure stops the run."""
    _fail_push_for(handle, "v2")
    report = SyncWorkflow(settings, cache).run(["v1", "v2", "v3"])

    assert report.aborted
    assert report.synced_branches == ["sync-v1"]
    assert report.skipped == ["v3"]
    [(tag, error)] = report.failed
    assert tag == "v2"
    assert isinstance(error, GitError)
    assert error.tag == "v2"
    assert error.operation == "push"
    assert "could not push branch 'sync-v2' to origin" in str(error)
    assert handle.checkout_tag.call_count == 2


def test_push_failure_continues(settings_factory, cache, handle, local_branches, rollback):
    """Tests that under 'continue' later tags are still attempted."""
    settings = settings_factory(on_error="continue")
    _fail_push_for(handle, "v2")
    report = SyncWorkflow(settings, cache).run(["v1", "v2", "v3"])

    assert not report.aborted
    assert report.skipped == []
    assert report.synced_branches == ["sync-v1", "sync-v3"]
    assert [tag for tag, _ in report.failed] == ["v2"]


def test_failed_tag_is_rolled_back(settings, cache, handle, local_branches, rollback):
    """Tests that the clone is reset, detached to the prior commit and the new branch removed."""
    mock_reset, mock_checkout, mock_delete = rollback
    _fail_push_for(handle, "v1")
    SyncWorkflow(settings, cache).run(["v1"])

    mock_reset.assert_called_once_with(REPO)
    mock_checkout.assert_called_once_with(REPO, START, force=True, detach=True)
    mock_delete.assert_called_once_with(REPO, "sync-v1")


def test_leftover_local_branch_is_replaced(settings, cache, handle, local_branches, rollback):
    """Tests that a local branch left by an interrupted run is removed before branching again."""
    mock_reset, mock_checkout, mock_delete = rollback
    local_branches.add("sync-v1")

    report = SyncWorkflow(settings, cache).run(["v1"])

    assert report.failed == []
    assert report.synced_branches == ["sync-v1"]
    mock_checkout.assert_called_once_with(REPO, START, force=True, detach=True)
    mock_delete.assert_called_once_with(REPO, "sync-v1")
    mock_reset.assert_not_called()


def test_tag_repeated_in_one_run_fails(settings_factory, cache, handle, local_branches, rollback):
    """Tests that a tag listed twice keeps its first, pushed branch and fails the second time."""
    settings = settings_factory(on_error="continue")

    report = SyncWorkflow(settings, cache).run(["v1", "v1"])

    assert report.synced_branches == ["sync-v1"]
    [(tag, error)] = report.failed
    assert "already exists" in str(error)
    rollback[2].assert_not_called()
    assert "sync-v1" in local_branches


def test_rollback_failure_is_only_logged(settings, cache, handle, local_branches, rollback, caplog):
    rollback[0].side_effect = GitError("index.lock exists")
    _fail_push_for(handle, "v1")

    report = SyncWorkflow(settings, cache).run(["v1"])

    assert report.failed[0][1].operation == "push"
    assert "Could not restore clone" in caplog.text


def test_fetch_failure_is_fatal(settings, cache, handle):
    handle.fetch_upstream_tags.side_effect = GitError("couldn't find remote ref refs/tags/v9")
    with pytest.raises(GitError, match="fetch upstream tags failed"):
        SyncWorkflow(settings, cache).run(["v9"])
    handle.checkout_tag.assert_not_called()


def test_patch_is_downloaded_once_and_applied_per_tag(settings_factory, cache, handle, local_branches, rollback):
    settings = settings_factory(patch={"url": "https://patches.test/fix.patch", "message": "Fix"})
    source = MagicMock()
    source.load.return_value = b"diff"

    with patch("tagsync.workflow.apply_patch", return_value="c" * 40) as mock_apply:
        report = SyncWorkflow(settings, cache, patch_source=source).run(["v1", "v2"])

    source.load.assert_called_once_with("https://patches.test/fix.patch")
    assert mock_apply.call_count == 2
    spec = mock_apply.call_args.args[1]
    assert spec.diff == b"diff"
    assert spec.message == "Fix"
    assert report.results[0].commit_id == "c" * 40


def test_patch_conflict_is_tag_scoped(settings_factory, cache, handle, local_branches, rollback):
    settings = settings_factory(patch={"url": "https://patches.test/fix.patch"})
    source = MagicMock()
    source.load.return_value = b"diff"

    with patch("tagsync.workflow.apply_patch", side_effect=PatchError("patch does not apply", operation="apply patch")):
        report = SyncWorkflow(settings, cache, patch_source=source).run(["v1"])

    [(tag, error)] = report.failed
    assert isinstance(error, PatchError)
    assert str(error).endswith("apply patch failed for tag 'v1': patch does not apply")
    handle.push_head.assert_not_called()
    rollback[2].assert_called_once_with(REPO, "sync-v1")


def test_post_sync_command_runs_after_push(settings_factory, cache, handle, local_branches, rollback):
    settings = settings_factory(commands_after_sync="./notify.sh", hook_timeout=30)
    hook = MagicMock()

    report = SyncWorkflow(settings, cache, hook_runner=hook).run(["v1"])

    hook.assert_called_once_with("./notify.sh", cwd=REPO, tag="v1", branch="sync-v1", timeout=30)
    assert report.results[0].state is TagState.POST_HOOK_RUN


def test_post_sync_command_failure(settings_factory, cache, handle, local_branches, rollback):
    """Tests that a failing command fails the tag but keeps the pushed branch."""
    settings = settings_factory(commands_after_sync="exit 3")
    hook = MagicMock(side_effect=HookError("exited with status 3", tag="v1"))

    report = SyncWorkflow(settings, cache, hook_runner=hook).run(["v1", "v2"])

    assert report.aborted
    assert report.synced_branches == ["sync-v1"]
    assert isinstance(report.failed[0][1], HookError)
    rollback[0].assert_not_called()
