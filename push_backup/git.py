"""Thin wrappers around the git command line.

Everything that shells out to git lives here: remote enumeration, URL
lookup and editing, branch detection, and the only two operations the push
engine performs against the outside world, the availability probe and the
push itself. Both of those enforce their own timeout and kill exactly the
subprocess that overran it.
"""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass, field

# Exit codes for results synthesized by run_git_command
TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127


class GitError(Exception):
    """A git command could not be run or exited unsuccessfully."""


class GitTimeoutError(GitError):
    """A git command was killed after exceeding its timeout."""

    def __init__(self, message: str, timeout: float) -> None:
        super().__init__(message)
        self.timeout = timeout


@dataclass
class PushOptions:
    """Flags composed into a ``git push`` invocation."""

    force: bool = False
    force_with_lease: bool = False
    set_upstream: bool = False
    tags: bool = False
    extra_args: list[str] = field(default_factory=list)  # Appended verbatim, always last


def effective_timeout(timeout: float | None) -> float | None:
    """Map a timeout of 0 (or None) to "wait forever"."""
    if timeout is None or timeout <= 0:
        return None
    return timeout


def format_seconds(seconds: float) -> str:
    """Format a duration for messages, e.g. ``30s`` or ``2.5s``."""
    return f"{seconds:g}s"


def run_git_command(
    args: list[str],
    timeout: float | None = None,
    capture_output: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run a git command and return the result."""
    cmd = ["git"] + args
    try:
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=effective_timeout(timeout),
            check=False,
        )
    except subprocess.TimeoutExpired:
        return subprocess.CompletedProcess(
            cmd, TIMEOUT_EXIT_CODE, stdout="", stderr=f"Command timed out after {timeout}s"
        )
    except FileNotFoundError:
        return subprocess.CompletedProcess(
            cmd, NOT_FOUND_EXIT_CODE, stdout="", stderr="git command not found"
        )


def run_git_checked(args: list[str], timeout: float | None = None) -> str:
    """Run a git command, returning stripped stdout or raising GitError."""
    result = run_git_command(args, timeout=timeout)
    if result.returncode != 0:
        detail = result.stderr.strip() or f"exit status {result.returncode}"
        raise GitError(f"git {' '.join(args)} failed: {detail}")
    return result.stdout.strip()


def is_git_available() -> bool:
    """Check that a git executable can be run."""
    return run_git_command(["--version"]).returncode == 0


def is_git_repo() -> bool:
    """Check whether the working directory is inside a git repository."""
    return run_git_command(["rev-parse", "--git-dir"]).returncode == 0


def get_remote_names() -> set[str]:
    """Get the names of the remotes configured in the repository."""
    output = run_git_checked(["remote"])
    return {line.strip() for line in output.splitlines() if line.strip()}


def get_current_branch() -> str:
    """Get the checked-out branch, refusing a detached HEAD."""
    branch = run_git_checked(["rev-parse", "--abbrev-ref", "HEAD"])
    if branch == "HEAD":
        raise GitError("Detached HEAD; check out a branch before pushing")
    return branch


def get_remote_url(remote: str) -> str | None:
    """Get the fetch URL of a remote."""
    result = run_git_command(["remote", "get-url", remote])
    if result.returncode == 0:
        return result.stdout.strip()
    return None


def get_push_urls(remote: str) -> list[str]:
    """Get every push URL of a remote, in configured order."""
    output = run_git_checked(["remote", "get-url", "--push", "--all", remote])
    return [line.strip() for line in output.splitlines() if line.strip()]


def get_remote_branch_commit(url: str, branch: str, timeout: float = 0) -> str | None:
    """
    Look up the commit a URL has for ``refs/heads/<branch>``.

    Returns None when the branch does not exist there; raises GitError when
    the URL cannot be queried.
    """
    ref = f"refs/heads/{branch}"
    output = run_git_checked(["ls-remote", url, ref], timeout=timeout)
    for line in output.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1] == ref:
            return parts[0]
    return None


def count_ahead_behind(commit: str) -> tuple[int, int] | None:
    """
    Count commits HEAD has that ``commit`` lacks, and the reverse.

    Returns None when the comparison is impossible, typically because the
    commit has never been fetched into the local repository.
    """
    result = run_git_command(["rev-list", "--left-right", "--count", f"HEAD...{commit}"])
    if result.returncode != 0:
        return None

    parts = result.stdout.strip().split()
    if len(parts) != 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def add_remote(name: str, url: str) -> None:
    run_git_checked(["remote", "add", name, url])


def add_push_url(name: str, url: str) -> None:
    run_git_checked(["remote", "set-url", "--add", "--push", name, url])


def remove_remote(name: str) -> None:
    run_git_checked(["remote", "remove", name])


def check_remote_available(url: str, timeout: float = 0) -> bool:
    """
    Check whether a remote URL answers ``git ls-remote``.

    Output is discarded at the OS level so a chatty remote can never block
    the child on a full pipe. Returns the exit status as a bool; raises
    GitTimeoutError (after killing the child) when the deadline passes and
    GitError when git cannot be started. A timeout of 0 waits forever.
    """
    cmd = ["git", "ls-remote", "--heads", url]
    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        raise GitError(f"Could not run git: {e}") from e

    try:
        returncode = process.wait(timeout=effective_timeout(timeout))
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()
        raise GitTimeoutError(
            f"availability check timed out after {format_seconds(timeout)}", timeout
        ) from None

    return returncode == 0


def build_push_args(url: str, branch: str, options: PushOptions) -> list[str]:
    """Build the ``git push`` arguments (without the leading ``git``)."""
    args = ["push"]
    if options.force:
        args.append("--force")
    if options.force_with_lease:
        args.append("--force-with-lease")
    if options.set_upstream:
        args.append("--set-upstream")
    if options.tags:
        args.append("--tags")
    args.extend([url, branch])
    args.extend(options.extra_args)
    return args


def format_push_command(url: str, branch: str, options: PushOptions) -> str:
    """Render the push invocation as a copy-pasteable command line."""
    return shlex.join(["git"] + build_push_args(url, branch, options))


def run_git_push(url: str, branch: str, options: PushOptions, timeout: float = 0) -> None:
    """
    Push a branch to a single URL.

    Raises GitError carrying git's trimmed stderr when the push is rejected,
    and GitTimeoutError after killing the child when the deadline passes.
    """
    cmd = ["git"] + build_push_args(url, branch, options)
    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        raise GitError(f"Could not run git: {e}") from e

    try:
        _, stderr = process.communicate(timeout=effective_timeout(timeout))
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
        raise GitTimeoutError(
            f"push timed out after {format_seconds(timeout)}", timeout
        ) from None

    if process.returncode != 0:
        message = (stderr or "").strip()
        raise GitError(message or f"git push exited with status {process.returncode}")
