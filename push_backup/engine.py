"""Push orchestration engine.

Takes the push URLs of the aggregate remote, resolves each to a configured
name, filters them, and pushes the current branch to every eligible target
in retry rounds:

    round 0      every task, in parallel
    round 1..N   only the tasks that failed, after sleeping retry_delay

A round never starts before every attempt of the previous round has
finished. Workers only read their target and return an AttemptResult; the
driving thread folds those results into the tasks once the round is over,
so no task is ever shared between threads.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, TypeVar

from push_backup.config import RemoteEntry
from push_backup.git import (
    GitError,
    GitTimeoutError,
    PushOptions,
    check_remote_available,
    count_ahead_behind,
    format_push_command,
    format_seconds,
    get_remote_branch_commit,
    run_git_push,
)

T = TypeVar("T")
from push_backup.output import logger

# Display name of a URL that matches no configured base
UNNAMED = "unnamed"

UNKNOWN_ERROR = "unknown error"
UNREACHABLE_ERROR = "remote is unreachable"


class SetupError(Exception):
    """The run cannot start. Raised before any task is created."""


class TaskStatus(Enum):
    """Status of a push task."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class AttemptStage(Enum):
    """The step at which an attempt ended."""

    CHECK = "check"
    PUSH = "push"


@dataclass(frozen=True)
class PushTarget:
    """One push destination."""

    url: str
    display_name: str = UNNAMED


@dataclass
class PushTask:
    """Mutable state of one target across retry rounds."""

    target: PushTarget
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    last_error: str | None = None

    @property
    def url(self) -> str:
        return self.target.url

    @property
    def display_name(self) -> str:
        return self.target.display_name


@dataclass
class RetryPolicy:
    """How many retry rounds to run and how long to wait."""

    max_retries: int = 3  # Rounds after the first attempt
    delay: float = 2.0  # Seconds slept before each retry round
    timeout: float = 30.0  # Seconds per probe and per push, 0 = no limit

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")
        if self.timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {self.timeout}")


@dataclass
class RunConfig:
    """Everything one push run needs besides the URLs themselves."""

    branch: str
    options: PushOptions = field(default_factory=PushOptions)
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    only: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    skip_check: bool = False
    dry_run: bool = False
    parallel: bool = True
    max_workers: int = 4


@dataclass
class AttemptResult:
    """Outcome of one attempt, returned by a worker to the driving thread."""

    index: int
    success: bool
    error: str | None = None
    stage: AttemptStage = AttemptStage.PUSH
    timed_out: bool = False


@dataclass
class PushSummary:
    """Final state of a push run."""

    tasks: list[PushTask] = field(default_factory=list)
    rounds: int = 0
    dry_run: bool = False
    commands: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> list[PushTask]:
        """Successful tasks, in task order."""
        return [t for t in self.tasks if t.status == TaskStatus.SUCCESS]

    @property
    def failed(self) -> list[PushTask]:
        """Tasks that never succeeded, in task order."""
        return [t for t in self.tasks if t.status != TaskStatus.SUCCESS]

    @property
    def retried_successes(self) -> list[PushTask]:
        """Tasks that only succeeded after at least one retry."""
        return [t for t in self.succeeded if t.attempts > 1]

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def all_succeeded(self) -> bool:
        return all(t.status == TaskStatus.SUCCESS for t in self.tasks)

    @staticmethod
    def error_message(task: PushTask) -> str:
        return task.last_error or UNKNOWN_ERROR


@dataclass
class CheckResult:
    """Result of an availability check of one push URL."""

    url: str
    display_name: str
    reachable: bool
    timed_out: bool = False
    latency_ms: float = 0.0
    error: str = ""


class SyncState(Enum):
    """How the local branch compares with one mirror."""

    IN_SYNC = "in_sync"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"
    NO_REMOTE = "no_remote"
    UNREACHABLE = "unreachable"
    UNKNOWN = "unknown"


@dataclass
class SyncStatus:
    """Sync state of the current branch for one push URL."""

    url: str
    display_name: str
    state: SyncState
    ahead: int = 0
    behind: int = 0
    remote_commit: str | None = None
    error: str = ""


def match_display_name(url: str, remotes: list[RemoteEntry]) -> str:
    """
    Resolve a push URL to the name of the configured remote it belongs to.

    The longest matching base wins. A prefix only counts when it ends on a
    path boundary: the URL equals the base, the base ends in ``/`` or ``:``,
    or the rest of the URL starts with one of them. That keeps
    ``https://host/foo`` from claiming ``https://host/foobar.git``.
    """
    for remote in sorted(remotes, key=lambda r: len(r.base), reverse=True):
        if not remote.base or not url.startswith(remote.base):
            continue
        remainder = url[len(remote.base):]
        if (
            not remainder
            or remote.base.endswith(("/", ":"))
            or remainder.startswith(("/", ":"))
        ):
            return remote.name
    return UNNAMED


def should_push(display_name: str, only: list[str], exclude: list[str]) -> bool:
    """Apply the ``only`` filter, then the ``except`` filter, to one target."""
    if only and (display_name == UNNAMED or display_name not in only):
        return False
    if exclude and display_name != UNNAMED and display_name in exclude:
        return False
    return True


def build_tasks(
    urls: list[str],
    remotes: list[RemoteEntry],
    only: list[str] | None = None,
    exclude: list[str] | None = None,
) -> list[PushTask]:
    """Create one pending task per eligible URL, keeping URL order."""
    only = only or []
    exclude = exclude or []
    tasks: list[PushTask] = []
    for url in urls:
        display_name = match_display_name(url, remotes)
        if should_push(display_name, only, exclude):
            tasks.append(PushTask(target=PushTarget(url=url, display_name=display_name)))
        else:
            logger.debug(f"Skipping {display_name} ({url})")
    return tasks


def attempt_push(index: int, target: PushTarget, config: RunConfig) -> AttemptResult:
    """Check and push one target. Runs on a worker thread; touches no task."""
    timeout = config.policy.timeout

    if not config.skip_check:
        logger.debug(f"Checking availability of {target.display_name} ({target.url})...")
        try:
            reachable = check_remote_available(target.url, timeout)
        except GitTimeoutError as e:
            return AttemptResult(index, False, str(e), AttemptStage.CHECK, timed_out=True)
        except GitError as e:
            return AttemptResult(
                index, False, f"availability check failed: {e}", AttemptStage.CHECK
            )
        if not reachable:
            return AttemptResult(index, False, UNREACHABLE_ERROR, AttemptStage.CHECK)

    logger.debug(f"Pushing {config.branch} to {target.url}...")
    try:
        run_git_push(target.url, config.branch, config.options, timeout)
    except GitTimeoutError as e:
        return AttemptResult(index, False, str(e), timed_out=True)
    except GitError as e:
        return AttemptResult(index, False, str(e) or UNKNOWN_ERROR)

    return AttemptResult(index, True)


def dispatch_round(
    tasks: list[PushTask],
    indices: list[int],
    config: RunConfig,
) -> list[AttemptResult]:
    """Run one attempt for each task index and wait for all of them."""
    if config.parallel and len(indices) > 1:
        workers = max(1, min(config.max_workers, len(indices)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(attempt_push, index, tasks[index].target, config)
                for index in indices
            ]
            results = [future.result() for future in as_completed(futures)]
    else:
        results = [attempt_push(index, tasks[index].target, config) for index in indices]

    return sorted(results, key=lambda r: r.index)


def apply_results(tasks: list[PushTask], results: list[AttemptResult], branch: str) -> None:
    """Fold the results of a finished round into the tasks."""
    for result in results:
        task = tasks[result.index]
        task.attempts += 1

        if result.success:
            task.status = TaskStatus.SUCCESS
            task.last_error = None
            logger.success(f"Pushed {branch} to {task.display_name} ({task.url})")
            continue

        task.status = TaskStatus.FAILED
        task.last_error = result.error or UNKNOWN_ERROR
        if result.stage == AttemptStage.CHECK:
            logger.warning(
                f"{task.display_name} ({task.url}) failed availability check: {task.last_error}"
            )
        else:
            logger.warning(f"Push to {task.display_name} ({task.url}) failed: {task.last_error}")


def run_rounds(tasks: list[PushTask], config: RunConfig) -> int:
    """
    Drive retry rounds until every task succeeded or retries are exhausted.

    Returns the number of rounds that were executed.
    """
    policy = config.policy
    round_number = 0

    while True:
        pending = [i for i, task in enumerate(tasks) if task.status != TaskStatus.SUCCESS]
        if not pending:
            break

        if round_number > 0:
            if round_number > policy.max_retries:
                break
            logger.info(
                f"Retry {round_number}/{policy.max_retries} for {len(pending)} remote(s), "
                f"waiting {format_seconds(policy.delay)}..."
            )
            time.sleep(policy.delay)

        # After round 0 only failed tasks are retried; pending ones are left alone
        eligible = [
            i
            for i in pending
            if tasks[i].status == TaskStatus.FAILED
            or (round_number == 0 and tasks[i].status == TaskStatus.PENDING)
        ]

        results = dispatch_round(tasks, eligible, config)
        apply_results(tasks, results, config.branch)
        round_number += 1

    return round_number


def summarize(tasks: list[PushTask], rounds: int = 0) -> PushSummary:
    """Wrap final task states into a summary."""
    return PushSummary(tasks=tasks, rounds=rounds)


def run(urls: list[str], remotes: list[RemoteEntry], config: RunConfig) -> PushSummary:
    """
    Push ``config.branch`` to every eligible URL.

    In dry-run mode nothing is probed or pushed; the summary carries the
    command that would run for each eligible target, and every task stays
    pending. An empty task set after filtering returns an empty summary.
    """
    tasks = build_tasks(urls, remotes, config.only, config.exclude)

    if config.dry_run:
        commands = [format_push_command(t.url, config.branch, config.options) for t in tasks]
        return PushSummary(tasks=tasks, dry_run=True, commands=commands)

    if not tasks:
        return summarize(tasks)

    rounds = run_rounds(tasks, config)
    return summarize(tasks, rounds)


def check_one(url: str, display_name: str, timeout: float) -> CheckResult:
    """Probe a single URL and time it."""
    start_time = time.monotonic()
    try:
        reachable = check_remote_available(url, timeout)
    except GitTimeoutError as e:
        return CheckResult(url, display_name, False, timed_out=True, error=str(e))
    except GitError as e:
        return CheckResult(url, display_name, False, error=str(e))
    latency = (time.monotonic() - start_time) * 1000

    return CheckResult(
        url,
        display_name,
        reachable,
        latency_ms=round(latency, 2),
        error="" if reachable else UNREACHABLE_ERROR,
    )


def map_targets(
    func: Callable[[str, str], T],
    urls: list[str],
    remotes: list[RemoteEntry],
    parallel: bool = True,
    max_workers: int = 4,
) -> list[T]:
    """Call ``func(url, display_name)`` for every URL, returning results in URL order."""
    named = [(url, match_display_name(url, remotes)) for url in urls]

    if parallel and len(named) > 1:
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(named)))) as executor:
            futures = [executor.submit(func, url, name) for url, name in named]
            return [future.result() for future in futures]

    return [func(url, name) for url, name in named]


def check_targets(
    urls: list[str],
    remotes: list[RemoteEntry],
    timeout: float,
    parallel: bool = True,
    max_workers: int = 4,
) -> list[CheckResult]:
    """Probe every URL, returning results in URL order."""
    return map_targets(
        lambda url, name: check_one(url, name, timeout),
        urls,
        remotes,
        parallel=parallel,
        max_workers=max_workers,
    )


def sync_status_one(url: str, display_name: str, branch: str, timeout: float) -> SyncStatus:
    """Compare the local branch with what one URL has for it."""
    try:
        commit = get_remote_branch_commit(url, branch, timeout)
    except GitError as e:
        return SyncStatus(url, display_name, SyncState.UNREACHABLE, error=str(e))

    if commit is None:
        return SyncStatus(url, display_name, SyncState.NO_REMOTE)

    counts = count_ahead_behind(commit)
    if counts is None:
        return SyncStatus(url, display_name, SyncState.UNKNOWN, remote_commit=commit)

    ahead, behind = counts
    if ahead and behind:
        state = SyncState.DIVERGED
    elif ahead:
        state = SyncState.AHEAD
    elif behind:
        state = SyncState.BEHIND
    else:
        state = SyncState.IN_SYNC
    return SyncStatus(url, display_name, state, ahead, behind, commit)


def sync_statuses(
    urls: list[str],
    remotes: list[RemoteEntry],
    branch: str,
    timeout: float,
    parallel: bool = True,
    max_workers: int = 4,
) -> list[SyncStatus]:
    """Get the sync state of ``branch`` for every URL, in URL order."""
    return map_targets(
        lambda url, name: sync_status_one(url, name, branch, timeout),
        urls,
        remotes,
        parallel=parallel,
        max_workers=max_workers,
    )
