# src/tagsync/hooks.py: Post-sync command execution.
# This module runs the user-configured shell command after each branch is
# pushed. The command runs to completion in the clone directory before the
# next tag starts; its exit code decides whether the tag counts as synced.

import os
import subprocess
from pathlib import Path
from typing import Optional

from .errors import HookError
from .util.log import get_logger

logger = get_logger(__name__)


def run_post_sync_command(
    command: str,
    cwd: Path,
    tag: str,
    branch: str,
    timeout: Optional[float] = None,
) -> None:
    """
    Run `command` with bash and wait for it.

    The tag and branch are exposed to the command as TAGSYNC_TAG and
    TAGSYNC_BRANCH. Output is inherited so it shows up in the pipeline log.

    Raises:
        HookError: If bash cannot be started, the command times out, or it exits non-zero.
    """
    env = os.environ.copy()
    env["TAGSYNC_TAG"] = tag
    env["TAGSYNC_BRANCH"] = branch

    logger.info(f"Running post-sync command for '{branch}'")
    try:
        result = subprocess.run(
            ["bash", "-c", command],
            cwd=cwd,
            env=env,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise HookError(f"could not start bash: {e}", tag=tag) from e
    except subprocess.TimeoutExpired as e:
        raise HookError(f"timed out after {timeout} seconds", tag=tag) from e
    except OSError as e:
        raise HookError(f"could not start command: {e}", tag=tag) from e

    if result.returncode != 0:
        raise HookError(f"exited with status {result.returncode}", tag=tag)
