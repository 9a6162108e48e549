"""push-backup - Push the current branch to every mirror in one go.

Mirrors are the push URLs of a single aggregate git remote (default
``push-backup``) created by ``push-backup apply`` from the base URLs kept in
the configuration file.

Usage:
    push-backup [--config PATH] [--verbose | --quiet] <command> [options]

Commands:
    push        Push the current branch to every mirror, with retries
    check       Check that every mirror is reachable
    status      Show how the current branch compares with every mirror
    add         Add or update a named base URL
    remove      Remove a named base URL
    list        List configured base URLs
    show        Show one configured base URL in detail
    apply       Create the aggregate remote in the current repository
    clean       Remove the aggregate remote from the current repository

Environment Variables:
    PUSH_BACKUP_DRY_RUN         Set to 'true' for dry run
    PUSH_BACKUP_VERBOSE         Set to 'true' for verbose output
    (see push_backup.config for configuration overrides)
"""

from __future__ import annotations

import argparse
import os
import re
import sys
from pathlib import Path

from push_backup import __version__
from push_backup.config import (
    PushBackupConfig,
    build_remote_url,
    default_config_path,
    load_config,
    load_config_file,
    save_config_file,
)
from push_backup.engine import (
    RetryPolicy,
    RunConfig,
    SetupError,
    check_targets,
    run,
    sync_statuses,
)
from push_backup.git import (
    GitError,
    PushOptions,
    add_push_url,
    add_remote,
    get_current_branch,
    get_push_urls,
    get_remote_names,
    get_remote_url,
    is_git_available,
    is_git_repo,
    remove_remote,
)
from push_backup.output import (
    Colors,
    logger,
    print_check_results,
    print_dry_run_commands,
    print_push_summary,
    print_remote_detail,
    print_remote_list,
    print_sync_statuses,
)


def split_names(values: list[str] | None) -> list[str]:
    """Flatten repeated and comma-separated name options."""
    names: list[str] = []
    for value in values or []:
        for name in value.split(","):
            name = name.strip()
            if name and name not in names:
                names.append(name)
    return names


def split_git_args(argv: list[str]) -> tuple[list[str], list[str]]:
    """Split the command line at the first ``--`` into our args and git's."""
    if "--" not in argv:
        return argv, []
    index = argv.index("--")
    return argv[:index], argv[index + 1:]


def non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def non_negative_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return number


def ensure_git_repo() -> None:
    """Fail setup unless git is installed and the cwd is a repository."""
    if not is_git_available():
        raise SetupError("Git is not available. Install git and make sure it is on PATH")
    if not is_git_repo():
        raise SetupError("Current directory is not a git repository")


def resolve_push_urls(aggregate_remote: str) -> list[str]:
    """Get the mirror URLs of the aggregate remote, failing setup if there are none."""
    ensure_git_repo()
    if aggregate_remote not in get_remote_names():
        raise SetupError(
            f"Aggregate remote '{aggregate_remote}' not found. "
            "Run 'push-backup apply' first"
        )
    urls = get_push_urls(aggregate_remote)
    if not urls:
        raise SetupError(f"Remote '{aggregate_remote}' has no push URLs configured")
    return urls


def warn_unknown_names(names: list[str], config: PushBackupConfig) -> None:
    for name in names:
        if config.get_remote(name) is None:
            logger.warning(f"'{name}' is not a configured remote")


def detect_repo_name(existing: set[str], aggregate_remote: str) -> str | None:
    """Guess the repository name from an existing remote, then the directory name."""
    if "origin" in existing:
        candidate: str | None = "origin"
    else:
        candidate = next((name for name in sorted(existing) if name != aggregate_remote), None)

    if candidate:
        url = get_remote_url(candidate)
        if url:
            url = url.strip().rstrip("/")
            if url.endswith(".git"):
                url = url[: -len(".git")]
            name = re.split(r"[/:]", url)[-1]
            if name:
                return name

    return Path.cwd().name or None


def cmd_push(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """Push the current branch to every eligible mirror."""
    try:
        policy = RetryPolicy(
            max_retries=args.retries if args.retries is not None else config.max_retries,
            delay=args.retry_delay if args.retry_delay is not None else config.retry_delay,
            timeout=args.timeout if args.timeout is not None else config.timeout,
        )
    except ValueError as e:
        logger.error(f"Invalid retry settings: {e}")
        return 1

    only = split_names(args.only)
    exclude = split_names(args.exclude)
    warn_unknown_names(only + exclude, config)

    urls = resolve_push_urls(config.aggregate_remote)
    branch = get_current_branch()

    run_config = RunConfig(
        branch=branch,
        options=PushOptions(
            force=args.force,
            force_with_lease=args.force_with_lease,
            set_upstream=args.set_upstream,
            tags=args.tags,
            extra_args=list(args.extra_args),
        ),
        policy=policy,
        only=only,
        exclude=exclude,
        skip_check=args.skip_check or config.skip_check,
        dry_run=config.dry_run,
        parallel=config.parallel and not args.no_parallel,
        max_workers=args.max_workers or config.max_workers,
    )

    if not run_config.dry_run:
        logger.header(f"Pushing {branch} via '{config.aggregate_remote}'")

    summary = run(urls, config.remotes, run_config)

    if not summary.tasks:
        logger.warning("No remotes left to push to after filtering; nothing to do")
        return 0

    if summary.dry_run:
        print_dry_run_commands(summary.commands)
        return 0

    print_push_summary(summary)
    return 0 if summary.all_succeeded else 1


def cmd_check(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """Check that every mirror of the aggregate remote is reachable."""
    urls = resolve_push_urls(config.aggregate_remote)
    timeout = args.timeout if args.timeout is not None else config.timeout

    results = check_targets(
        urls,
        config.remotes,
        timeout,
        parallel=config.parallel,
        max_workers=config.max_workers,
    )
    print_check_results(results)
    return 0 if all(r.reachable for r in results) else 1


def cmd_status(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """Show whether every mirror has the current branch, and how far apart they are."""
    urls = resolve_push_urls(config.aggregate_remote)
    branch = get_current_branch()
    timeout = args.timeout if args.timeout is not None else config.timeout

    statuses = sync_statuses(
        urls,
        config.remotes,
        branch,
        timeout,
        parallel=config.parallel,
        max_workers=config.max_workers,
    )
    print_sync_statuses(branch, statuses)
    return 0


def cmd_add(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """Add or update a named base URL."""
    name = args.name.strip()
    base = args.base.strip()
    if not name or not base:
        logger.error("Both NAME and BASE must be non-empty")
        return 1

    stored = PushBackupConfig.from_dict(load_config_file(config_path))
    updated = stored.set_remote(name, base, args.note)
    if not save_config_file(stored, config_path):
        return 1

    logger.success(f"{'Updated' if updated else 'Added'} remote '{name}' -> {base}")
    logger.debug(f"Saved to {config_path}")
    return 0


def cmd_remove(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """Remove a named base URL."""
    stored = PushBackupConfig.from_dict(load_config_file(config_path))
    if not stored.remove_remote(args.name):
        logger.warning(f"No remote named '{args.name}' is configured")
        return 1
    if not save_config_file(stored, config_path):
        return 1

    logger.success(f"Removed remote '{args.name}'")
    return 0


def cmd_list(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """List configured base URLs."""
    if not config.remotes:
        logger.info("No remotes configured. Add one with 'push-backup add NAME BASE'")
        return 0
    print_remote_list(config.remotes)
    return 0


def cmd_show(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """Show one configured remote, or all of them without a name."""
    if not config.remotes:
        logger.info("No remotes configured. Add one with 'push-backup add NAME BASE'")
        return 0

    if args.name is None:
        print_remote_list(config.remotes)
        return 0

    remote = config.get_remote(args.name)
    if remote is None:
        logger.warning(f"No remote named '{args.name}' is configured")
        return 1

    print_remote_detail(remote, build_remote_url(remote.base, args.repo) if args.repo else None)
    return 0


def cmd_apply(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """Create (or recreate) the aggregate remote with one push URL per mirror."""
    if not config.remotes:
        logger.error("No remotes configured. Add one with 'push-backup add NAME BASE'")
        return 1

    ensure_git_repo()
    aggregate = config.aggregate_remote
    existing = get_remote_names()

    repo = args.repo or detect_repo_name(existing, aggregate)
    if not repo:
        raise SetupError("Could not detect the repository name; pass it explicitly")
    logger.info(f"Repository name: {repo}")

    urls = [build_remote_url(remote.base, repo) for remote in config.remotes]
    dry_run = config.dry_run

    if aggregate in existing:
        if dry_run:
            logger.info(f"[DRY RUN] git remote remove {aggregate}")
        else:
            remove_remote(aggregate)
            logger.debug(f"Removed existing remote '{aggregate}'")

    # The first mirror doubles as the fetch URL
    if dry_run:
        logger.info(f"[DRY RUN] git remote add {aggregate} {urls[0]}")
    else:
        add_remote(aggregate, urls[0])

    for url in urls:
        if dry_run:
            logger.info(f"[DRY RUN] git remote set-url --add --push {aggregate} {url}")
        else:
            add_push_url(aggregate, url)

    if dry_run:
        return 0

    logger.success(f"Configured remote '{aggregate}' with {len(urls)} push URL(s)")

    if args.skip_check or config.skip_check:
        return 0

    results = check_targets(
        urls,
        config.remotes,
        config.timeout,
        parallel=config.parallel,
        max_workers=config.max_workers,
    )
    print_check_results(results)
    return 0


def cmd_clean(args: argparse.Namespace, config: PushBackupConfig, config_path: Path) -> int:
    """Remove the aggregate remote from the current repository."""
    ensure_git_repo()
    aggregate = config.aggregate_remote
    if aggregate not in get_remote_names():
        logger.info(f"Remote '{aggregate}' not found")
        return 0

    remove_remote(aggregate)
    logger.success(f"Removed remote '{aggregate}'")
    return 0


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="push-backup",
        description="Push the current branch to every mirror of an aggregate git remote.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  push-backup add github git@github.com:me      Save a mirror host
  push-backup apply                             Set up the aggregate remote
  push-backup push                              Push current branch everywhere
  push-backup push --only github,gitee          Push to selected mirrors only
  push-backup push --except gitee --retries 5   Skip a mirror, retry harder
  push-backup push --dry-run -- --no-verify     Show the git commands only
  push-backup check                             Check every mirror is reachable
  push-backup status                            Show ahead/behind per mirror
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed output",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress all output except errors",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")

    # push
    push_parser = subparsers.add_parser(
        "push",
        help="Push the current branch to every mirror",
        usage="%(prog)s [options] [-- GIT_ARGS ...]",
        description="Arguments after -- are appended verbatim to every git push.",
    )
    push_parser.add_argument(
        "--dry-run", "-d",
        action="store_true",
        help="Print the git commands without running them",
    )
    push_parser.add_argument(
        "--only",
        action="append",
        metavar="NAME",
        help="Only push to these remotes (comma-separated, repeatable)",
    )
    push_parser.add_argument(
        "--except",
        dest="exclude",
        action="append",
        metavar="NAME",
        help="Do not push to these remotes (comma-separated, repeatable)",
    )
    push_parser.add_argument("--force", "-f", action="store_true", help="Pass --force to git push")
    push_parser.add_argument(
        "--force-with-lease",
        action="store_true",
        help="Pass --force-with-lease to git push",
    )
    push_parser.add_argument(
        "--set-upstream", "-u",
        action="store_true",
        help="Pass --set-upstream to git push",
    )
    push_parser.add_argument("--tags", action="store_true", help="Pass --tags to git push")
    push_parser.add_argument(
        "--retries",
        type=non_negative_int,
        metavar="N",
        help="Retry rounds after the first attempt",
    )
    push_parser.add_argument(
        "--retry-delay",
        type=non_negative_float,
        metavar="SECONDS",
        help="Seconds to wait before each retry round",
    )
    push_parser.add_argument(
        "--timeout",
        type=non_negative_float,
        metavar="SECONDS",
        help="Timeout for each check and push (0 = no limit)",
    )
    push_parser.add_argument(
        "--skip-check",
        action="store_true",
        help="Skip the availability check before pushing",
    )
    push_parser.add_argument(
        "--no-parallel",
        action="store_true",
        help="Push to one remote at a time",
    )
    push_parser.add_argument(
        "--max-workers",
        type=non_negative_int,
        metavar="N",
        help="Maximum parallel pushes per round",
    )
    push_parser.set_defaults(handler=cmd_push, extra_args=[])

    # check
    check_parser = subparsers.add_parser("check", help="Check that every mirror is reachable")
    check_parser.add_argument(
        "--timeout",
        type=non_negative_float,
        metavar="SECONDS",
        help="Timeout for each check (0 = no limit)",
    )
    check_parser.set_defaults(handler=cmd_check)

    # status
    status_parser = subparsers.add_parser(
        "status", help="Show how the current branch compares with every mirror"
    )
    status_parser.add_argument(
        "--timeout",
        type=non_negative_float,
        metavar="SECONDS",
        help="Timeout for each remote query (0 = no limit)",
    )
    status_parser.set_defaults(handler=cmd_status)

    # add
    add_parser = subparsers.add_parser("add", help="Add or update a named base URL")
    add_parser.add_argument("name", help="Remote name, e.g. github")
    add_parser.add_argument("base", help="Base URL, e.g. git@github.com:me")
    add_parser.add_argument("--note", help="Free-form note")
    add_parser.set_defaults(handler=cmd_add)

    # remove
    remove_parser = subparsers.add_parser("remove", help="Remove a named base URL")
    remove_parser.add_argument("name", help="Remote name")
    remove_parser.set_defaults(handler=cmd_remove)

    # list
    list_parser = subparsers.add_parser("list", help="List configured base URLs")
    list_parser.set_defaults(handler=cmd_list)

    # show
    show_parser = subparsers.add_parser("show", help="Show details of a configured remote")
    show_parser.add_argument("name", nargs="?", help="Remote name (default: all remotes)")
    show_parser.add_argument(
        "--repo",
        metavar="REPO",
        help="Also show the push URL this remote would get for REPO",
    )
    show_parser.set_defaults(handler=cmd_show)

    # apply
    apply_parser = subparsers.add_parser(
        "apply", help="Create the aggregate remote in the current repository"
    )
    apply_parser.add_argument(
        "repo",
        nargs="?",
        help="Repository name (default: detected from origin or the directory)",
    )
    apply_parser.add_argument(
        "--dry-run", "-d",
        action="store_true",
        help="Print the git commands without running them",
    )
    apply_parser.add_argument(
        "--skip-check",
        action="store_true",
        help="Skip the availability check of the new URLs",
    )
    apply_parser.set_defaults(handler=cmd_apply)

    # clean
    clean_parser = subparsers.add_parser(
        "clean", help="Remove the aggregate remote from the current repository"
    )
    clean_parser.set_defaults(handler=cmd_clean)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    argv, git_args = split_git_args(list(sys.argv[1:] if argv is None else argv))
    args = parser.parse_args(argv)
    if git_args:
        if args.command != "push":
            parser.error("arguments after -- are only accepted by push")
        args.extra_args = git_args

    verbose = args.verbose or os.environ.get("PUSH_BACKUP_VERBOSE", "").lower() == "true"
    logger.configure(verbose=verbose, quiet=args.quiet)
    if args.no_color:
        Colors.disable()

    if args.command is None:
        parser.print_help()
        return 0

    config_path = args.config or default_config_path()
    config = load_config(config_path)
    config.dry_run = (
        getattr(args, "dry_run", False)
        or os.environ.get("PUSH_BACKUP_DRY_RUN", "").lower() == "true"
    )
    config.verbose = verbose
    config.quiet = args.quiet

    try:
        return args.handler(args, config, config_path)
    except (SetupError, GitError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
