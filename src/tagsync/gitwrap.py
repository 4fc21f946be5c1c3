# src/tagsync/gitwrap.py: Safe subprocess wrappers for Git.
# This module provides functions for interacting with the system's 'git' command
# in a safe and controlled manner. It uses subprocess execution with timeouts,
# a non-interactive environment, secret redaction in error messages, and clear
# error handling to prevent common security and reliability issues.

import os
import stat
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .errors import GitError
from .util.log import get_logger, redact

logger = get_logger(__name__)

ORIGIN = "origin"
UPSTREAM = "upstream"

DEFAULT_TIMEOUT = 120

_ASKPASS_SCRIPT = """#!/bin/sh
case "$1" in
  Username*) printf '%s\\n' "$TAGSYNC_GIT_USERNAME" ;;
  *) printf '%s\\n' "$TAGSYNC_GIT_PASSWORD" ;;
esac
"""

# --- Core Git Execution ---

def run_git(
    args: List[str],
    cwd: Path,
    timeout: Optional[int] = DEFAULT_TIMEOUT,
    check: bool = True,
    env: Optional[Dict[str, str]] = None,
    input: Optional[Union[str, bytes]] = None,
) -> subprocess.CompletedProcess:
    """
    Runs a git command in a specified directory with a timeout and error handling.

    Args:
        args: A list of arguments for the git command.
        cwd: The working directory for the command.
        timeout: The command timeout in seconds, or None to wait indefinitely.
        check: If True, raises GitError on a non-zero exit code.
        env: Extra environment variables layered over the current environment.
        input: Data written to the command's stdin. Bytes are passed through
            unchanged (patches must not be re-encoded).

    Returns:
        The CompletedProcess object, with text stdout/stderr.

    Raises:
        GitError: If git is not found, the command fails, or it times out.
    """
    if not cwd.is_dir():
        raise GitError(f"Git working directory not found: {cwd}")

    base_env = os.environ.copy()
    base_env["GIT_TERMINAL_PROMPT"] = "0"  # Disable interactive prompts
    if env:
        base_env.update(env)

    command = redact(" ".join(args))
    text = not isinstance(input, bytes)
    logger.debug(f"Running git {command} in {cwd}")

    try:
        process = subprocess.run(
            ["git"] + args,
            cwd=cwd,
            capture_output=True,
            text=text,
            input=input,
            timeout=timeout,
            check=check,
            env=base_env,
        )
    except FileNotFoundError:
        raise GitError("The 'git' command was not found. Is it installed and in your PATH?")
    except subprocess.CalledProcessError as e:
        error_message = _decode(e.stderr).strip() or _decode(e.stdout).strip()
        raise GitError(f"Git command '{command}' failed: {redact(error_message)}")
    except subprocess.TimeoutExpired:
        raise GitError(f"Git command '{command}' timed out after {timeout} seconds.")

    if not text:
        process.stdout = _decode(process.stdout)
        process.stderr = _decode(process.stderr)
    return process


def _decode(value: Union[str, bytes, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


@contextmanager
def askpass_env(username: str, password: str) -> Iterator[Dict[str, str]]:
    """
    Yields environment variables that answer git's credential prompts.

    The helper script only echoes variables from its own environment, so the
    password never appears on a command line or on disk.
    """
    with tempfile.TemporaryDirectory(prefix="tagsync-askpass-") as tmp:
        script = Path(tmp) / "askpass.sh"
        script.write_text(_ASKPASS_SCRIPT)
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        yield {
            "GIT_ASKPASS": str(script),
            "TAGSYNC_GIT_USERNAME": username,
            "TAGSYNC_GIT_PASSWORD": password,
        }

# --- High-Level Git Operations ---

def git_is_repo_root(cwd: Path) -> bool:
    """Checks whether `cwd` is the top level of a git working tree (not merely inside one)."""
    result = run_git(["rev-parse", "--show-toplevel"], cwd=cwd, check=False)
    if result.returncode != 0:
        return False
    return Path(result.stdout.strip()).resolve() == cwd.resolve()

def git_clone(url: str, dest: Path, timeout: Optional[int] = DEFAULT_TIMEOUT, env: Optional[dict] = None) -> None:
    """Clones `url` into `dest`, creating parent directories as needed."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    run_git(["clone", url, str(dest)], cwd=dest.parent, timeout=timeout, env=env)

def git_remote_names(cwd: Path) -> List[str]:
    result = run_git(["remote"], cwd=cwd)
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]

def git_remote_add(cwd: Path, name: str, url: str) -> None:
    run_git(["remote", "add", name, url], cwd=cwd)

def git_remote_set_url(cwd: Path, name: str, url: str) -> None:
    run_git(["remote", "set-url", name, url], cwd=cwd)

def git_fetch_refspecs(
    cwd: Path,
    remote: str,
    refspecs: List[str],
    timeout: Optional[int] = DEFAULT_TIMEOUT,
    env: Optional[dict] = None,
) -> None:
    """Fetches only the given refspecs, without following tags."""
    run_git(["fetch", "--no-tags", remote] + refspecs, cwd=cwd, timeout=timeout, env=env)

def git_get_head_sha(cwd: Path, ref: str = "HEAD") -> str:
    """Gets the SHA of the commit a reference points to (defaults to HEAD)."""
    result = run_git(["rev-parse", "--verify", f"{ref}^{{commit}}"], cwd=cwd)
    return result.stdout.strip()

def git_head_ref(cwd: Path) -> str:
    """Gets the full name of the branch HEAD points to, e.g. 'refs/heads/main'."""
    result = run_git(["symbolic-ref", "HEAD"], cwd=cwd)
    return result.stdout.strip()

def git_branch_exists(cwd: Path, branch: str) -> bool:
    result = run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=cwd, check=False)
    return result.returncode == 0

def git_list_branches(cwd: Path) -> List[str]:
    result = run_git(["for-each-ref", "--format=%(refname:short)", "refs/heads/"], cwd=cwd)
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]

def git_create_branch(cwd: Path, branch: str, start_point: str) -> None:
    """Creates `branch` at `start_point`; fails if the branch already exists."""
    run_git(["branch", "--no-track", branch, start_point], cwd=cwd)

def git_checkout(cwd: Path, target: str, force: bool = False, detach: bool = False) -> None:
    args = ["checkout"]
    if force:
        args.append("--force")
    if detach:
        args.append("--detach")
    run_git(args + [target], cwd=cwd)

def git_delete_branch(cwd: Path, branch: str) -> None:
    run_git(["branch", "-D", branch], cwd=cwd)

def git_reset_hard(cwd: Path, ref: str = "HEAD") -> None:
    run_git(["reset", "--hard", ref], cwd=cwd)

def git_apply_index(cwd: Path, diff: bytes) -> None:
    """Applies a patch to both index and working tree; all hunks or nothing."""
    run_git(["apply", "--index", "--whitespace=nowarn", "-"], cwd=cwd, input=diff)

def git_write_tree(cwd: Path) -> str:
    result = run_git(["write-tree"], cwd=cwd)
    return result.stdout.strip()

def git_commit_tree(cwd: Path, tree: str, parent: str, message: str, env: Dict[str, str]) -> str:
    """Creates a commit object for `tree` with a single parent and returns its SHA."""
    result = run_git(["commit-tree", tree, "-p", parent, "-F", "-"], cwd=cwd, env=env, input=message)
    return result.stdout.strip()

def git_update_ref(cwd: Path, ref: str, new_sha: str, old_sha: str, message: str) -> None:
    run_git(["update-ref", "-m", message, ref, new_sha, old_sha], cwd=cwd)

def git_push(
    cwd: Path,
    remote: str,
    refspec: str,
    timeout: Optional[int] = DEFAULT_TIMEOUT,
    env: Optional[dict] = None,
) -> None:
    """Pushes a refspec to a remote, following HTTP redirects."""
    run_git(["-c", "http.followRedirects=true", "push", remote, refspec], cwd=cwd, timeout=timeout, env=env)
