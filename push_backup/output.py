"""Terminal output: colors, the shared logger and report printers."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from push_backup.config import RemoteEntry
    from push_backup.engine import CheckResult, PushSummary, SyncStatus


class Colors:
    """ANSI escape codes; every attribute becomes "" once disabled."""

    PALETTE = {
        "RESET": "\033[0m",
        "BOLD": "\033[1m",
        "DIM": "\033[2m",
        "RED": "\033[31m",
        "GREEN": "\033[32m",
        "YELLOW": "\033[33m",
        "BLUE": "\033[34m",
        "CYAN": "\033[36m",
    }

    RESET = PALETTE["RESET"]
    BOLD = PALETTE["BOLD"]
    DIM = PALETTE["DIM"]
    RED = PALETTE["RED"]
    GREEN = PALETTE["GREEN"]
    YELLOW = PALETTE["YELLOW"]
    BLUE = PALETTE["BLUE"]
    CYAN = PALETTE["CYAN"]

    @classmethod
    def disable(cls) -> None:
        """Blank every code, for pipes and --no-color."""
        for name in cls.PALETTE:
            setattr(cls, name, "")


class Logger:
    """Icon-prefixed console messages, filtered by verbosity.

    Errors always go to stderr; everything else goes to stdout and is
    dropped in quiet mode. Debug lines need verbose mode.
    """

    def __init__(self, verbose: bool = False, quiet: bool = False) -> None:
        self.configure(verbose, quiet)
        if not sys.stdout.isatty():
            Colors.disable()

    def configure(self, verbose: bool = False, quiet: bool = False) -> None:
        """Change verbosity in place so every importer sees it."""
        self.verbose = verbose
        self.quiet = quiet

    def _emit(self, icon: str, color: str, message: str, stream: TextIO | None = None) -> None:
        print(f"{color}{icon}{Colors.RESET} {message}", file=stream or sys.stdout)

    def info(self, message: str) -> None:
        if not self.quiet:
            self._emit("ℹ", Colors.BLUE, message)

    def success(self, message: str) -> None:
        if not self.quiet:
            self._emit("✓", Colors.GREEN, message)

    def warning(self, message: str) -> None:
        if not self.quiet:
            self._emit("⚠", Colors.YELLOW, message)

    def error(self, message: str) -> None:
        self._emit("✗", Colors.RED, message, sys.stderr)

    def debug(self, message: str) -> None:
        if self.verbose:
            print(f"{Colors.DIM}  {message}{Colors.RESET}")

    def header(self, message: str) -> None:
        if not self.quiet:
            print(f"\n{Colors.BOLD}{Colors.CYAN}{message}{Colors.RESET}")


logger = Logger()


def print_dry_run_commands(commands: list[str]) -> None:
    """Print the exact push command for every eligible target."""
    for command in commands:
        print(command)


def print_push_summary(summary: PushSummary) -> None:
    """Print the final success/failure report of a push run."""
    logger.header("Push Summary")
    print(f"  {Colors.GREEN}Succeeded: {summary.success_count}{Colors.RESET}")
    print(f"  {Colors.RED}Failed: {summary.failed_count}{Colors.RESET}")

    retried = summary.retried_successes
    if retried:
        print()
        print(f"  {Colors.BOLD}Succeeded after retry:{Colors.RESET}")
        for task in retried:
            print(
                f"    {Colors.GREEN}✓{Colors.RESET} {task.display_name} "
                f"{Colors.DIM}({task.attempts} attempts){Colors.RESET}"
            )

    failed = summary.failed
    if failed:
        print()
        print(f"  {Colors.BOLD}Failed remotes:{Colors.RESET}")
        for task in failed:
            print(
                f"    {Colors.RED}✗{Colors.RESET} {task.display_name} "
                f"{Colors.DIM}({task.attempts} attempts){Colors.RESET}: "
                f"{summary.error_message(task)}"
            )
            logger.debug(f"URL: {task.url}")


def print_check_results(results: list[CheckResult]) -> None:
    """Print availability check results."""
    logger.header("Remote Availability")

    for result in results:
        if result.reachable:
            icon, color, text = "✓", Colors.GREEN, f"reachable ({result.latency_ms:.0f}ms)"
        elif result.timed_out:
            icon, color, text = "✗", Colors.RED, "timed out"
        else:
            icon, color, text = "✗", Colors.RED, "unreachable"

        print(f"  {color}{icon}{Colors.RESET} {Colors.BOLD}{result.display_name}{Colors.RESET}")
        print(f"    URL: {Colors.DIM}{result.url}{Colors.RESET}")
        print(f"    Status: {color}{text}{Colors.RESET}")
        if result.error and not result.reachable:
            print(f"    Error: {Colors.RED}{result.error}{Colors.RESET}")

    reachable = sum(1 for r in results if r.reachable)
    print()
    print(f"  {Colors.BOLD}Summary:{Colors.RESET} ", end="")
    print(f"{Colors.GREEN}{reachable} reachable{Colors.RESET}, ", end="")
    print(f"{Colors.RED}{len(results) - reachable} failed{Colors.RESET}")


def print_remote_list(remotes: list[RemoteEntry]) -> None:
    """Print the configured remotes."""
    logger.header("Configured Remotes")
    print(f"  {len(remotes)} remote(s)")
    print()

    for remote in remotes:
        print(f"  • {Colors.CYAN}{remote.name}{Colors.RESET}")
        print(f"    Base: {Colors.DIM}{remote.base}{Colors.RESET}")
        if remote.note:
            print(f"    Note: {remote.note}")


def print_remote_detail(remote: RemoteEntry, example_url: str | None = None) -> None:
    """Print one configured remote in full."""
    logger.header(f"Remote: {remote.name}")
    print(f"  Name: {Colors.CYAN}{remote.name}{Colors.RESET}")
    print(f"  Base: {remote.base}")
    if remote.note:
        print(f"  Note: {remote.note}")
    if example_url:
        print(f"  URL:  {Colors.DIM}{example_url}{Colors.RESET}")


def print_sync_statuses(branch: str, statuses: list[SyncStatus]) -> None:
    """Print how the current branch compares with every mirror."""
    from push_backup.engine import SyncState

    logger.header("Mirror Status")
    print(f"  Branch: {Colors.CYAN}{branch}{Colors.RESET}")
    print()

    for status in statuses:
        if status.state == SyncState.IN_SYNC:
            icon, color, text = "✓", Colors.GREEN, "in sync"
        elif status.state == SyncState.AHEAD:
            icon, color, text = "↑", Colors.YELLOW, f"ahead by {status.ahead} commit(s)"
        elif status.state == SyncState.BEHIND:
            icon, color, text = "↓", Colors.YELLOW, f"behind by {status.behind} commit(s)"
        elif status.state == SyncState.DIVERGED:
            icon, color, text = "⚠", Colors.RED, f"diverged (+{status.ahead}/-{status.behind})"
        elif status.state == SyncState.NO_REMOTE:
            icon, color, text = "○", Colors.DIM, "branch not on remote"
        elif status.state == SyncState.UNREACHABLE:
            icon, color, text = "✗", Colors.RED, "unreachable"
        else:
            icon, color, text = "?", Colors.DIM, "unknown (remote commit not fetched)"

        print(f"  {color}{icon}{Colors.RESET} {Colors.BOLD}{status.display_name}{Colors.RESET}")
        print(f"    URL: {Colors.DIM}{status.url}{Colors.RESET}")
        print(f"    State: {color}{text}{Colors.RESET}")
        if status.remote_commit:
            print(f"    Remote: {Colors.DIM}{status.remote_commit}{Colors.RESET}")
        if status.error:
            print(f"    Error: {Colors.RED}{status.error}{Colors.RESET}")
