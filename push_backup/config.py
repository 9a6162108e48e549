"""Configuration for push-backup.

The configuration file is JSON and holds the named base URLs of every
mirror host plus run defaults:

    {
        "remotes": [
            {"name": "github", "base": "git@github.com:me", "note": "primary"},
            {"name": "gitee", "base": "https://gitee.com/me"}
        ],
        "aggregate_remote": "push-backup",
        "max_retries": 3,
        "retry_delay": 2.0,
        "timeout": 30,
        "parallel": true,
        "max_workers": 4,
        "skip_check": false
    }

Location, first match wins: --config PATH, $PUSH_BACKUP_CONFIG,
./.dev/config.json when PUSH_BACKUP_ENV=dev, then
$XDG_CONFIG_HOME/push-backup/config.json (~/.config by default).

Environment Variables:
    PUSH_BACKUP_REMOTE          Name of the aggregate remote
    PUSH_BACKUP_MAX_RETRIES     Retry rounds after the first attempt
    PUSH_BACKUP_RETRY_DELAY     Seconds to wait before each retry round
    PUSH_BACKUP_TIMEOUT         Seconds per probe/push (0 = no limit)
    PUSH_BACKUP_MAX_WORKERS     Maximum parallel pushes per round
    PUSH_BACKUP_PARALLEL        Set to 'false' to push sequentially
    PUSH_BACKUP_SKIP_CHECK      Set to 'true' to skip availability checks
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, TypedDict, TypeVar

from push_backup.output import logger

T = TypeVar("T")

DEFAULT_AGGREGATE_REMOTE = "push-backup"

CONFIG_DIR_NAME = "push-backup"
CONFIG_FILE_NAME = "config.json"

# Development config lives inside the working tree
DEV_CONFIG_PATH = Path(".dev") / CONFIG_FILE_NAME


class RemoteEntryDict(TypedDict, total=False):
    """Type definition for a configured remote."""

    name: str
    base: str
    url: str  # Accepted as an alias of base
    note: str


class ConfigDict(TypedDict, total=False):
    """Type definition for configuration dictionary."""

    remotes: list[RemoteEntryDict]
    aggregate_remote: str
    max_retries: int
    retry_delay: float
    timeout: float
    parallel: bool
    max_workers: int
    skip_check: bool


@dataclass
class RemoteEntry:
    """A named base URL under which the mirrors of every repository live."""

    name: str
    base: str
    note: str | None = None

    @classmethod
    def from_dict(cls, data: RemoteEntryDict) -> RemoteEntry:
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            base=data.get("base", data.get("url", "")),
            note=data.get("note"),
        )

    def to_dict(self) -> RemoteEntryDict:
        """Convert to dictionary for JSON serialization."""
        data: RemoteEntryDict = {"name": self.name, "base": self.base}
        if self.note:
            data["note"] = self.note
        return data


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValueError(value)


def _as_name(value: object) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValueError(value)


def _coerce(data: ConfigDict, key: str, convert: Callable[[Any], T], default: T) -> T:
    """Read ``key`` as the settings type, warning and using the default on bad input."""
    if key not in data:
        return default
    value = data[key]  # type: ignore[literal-required]
    try:
        if isinstance(value, bool) and convert in (int, float):
            raise ValueError(value)
        return convert(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid {key!r} in config: {value!r}")
        return default


@dataclass
class PushBackupConfig:
    """Configuration for push-backup operations."""

    remotes: list[RemoteEntry] = field(default_factory=list)
    aggregate_remote: str = DEFAULT_AGGREGATE_REMOTE
    max_retries: int = 3
    retry_delay: float = 2.0
    timeout: float = 30.0
    parallel: bool = True
    max_workers: int = 4
    skip_check: bool = False
    dry_run: bool = False
    verbose: bool = False
    quiet: bool = False

    @classmethod
    def from_dict(cls, data: ConfigDict) -> PushBackupConfig:
        """Create from dictionary."""
        remotes = [
            RemoteEntry.from_dict(entry)
            for entry in data.get("remotes", [])
            if isinstance(entry, dict) and entry.get("name")
        ]
        return cls(
            remotes=remotes,
            aggregate_remote=_coerce(data, "aggregate_remote", _as_name, DEFAULT_AGGREGATE_REMOTE),
            max_retries=_coerce(data, "max_retries", int, 3),
            retry_delay=_coerce(data, "retry_delay", float, 2.0),
            timeout=_coerce(data, "timeout", float, 30.0),
            parallel=_coerce(data, "parallel", _as_bool, True),
            max_workers=_coerce(data, "max_workers", int, 4),
            skip_check=_coerce(data, "skip_check", _as_bool, False),
        )

    def to_dict(self) -> ConfigDict:
        """Convert the persisted part of the configuration to a dictionary."""
        return {
            "remotes": [remote.to_dict() for remote in self.remotes],
            "aggregate_remote": self.aggregate_remote,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "timeout": self.timeout,
            "parallel": self.parallel,
            "max_workers": self.max_workers,
            "skip_check": self.skip_check,
        }

    def get_remote(self, name: str) -> RemoteEntry | None:
        for remote in self.remotes:
            if remote.name == name:
                return remote
        return None

    def set_remote(self, name: str, base: str, note: str | None = None) -> bool:
        """Add or update a remote. Returns True if an existing entry was updated."""
        existing = self.get_remote(name)
        if existing is not None:
            existing.base = base
            if note is not None:
                existing.note = note
            return True
        self.remotes.append(RemoteEntry(name=name, base=base, note=note))
        return False

    def remove_remote(self, name: str) -> bool:
        """Remove a remote by name. Returns False if it was not configured."""
        before = len(self.remotes)
        self.remotes = [remote for remote in self.remotes if remote.name != name]
        return len(self.remotes) != before


def default_config_path() -> Path:
    """Resolve where the configuration file lives when --config is not given."""
    explicit = os.environ.get("PUSH_BACKUP_CONFIG")
    if explicit:
        return Path(explicit).expanduser()

    if os.environ.get("PUSH_BACKUP_ENV", "").lower() == "dev":
        return Path.cwd() / DEV_CONFIG_PATH

    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home).expanduser() if config_home else Path.home() / ".config"
    return base / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def load_config_file(config_path: Path) -> ConfigDict:
    """Load configuration from file. A missing file is an empty configuration."""
    if not config_path.exists():
        return {}

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Failed to load config file {config_path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {config_path}: expected a JSON object")
        return {}
    return data  # type: ignore[return-value]


def save_config_file(config: PushBackupConfig, config_path: Path) -> bool:
    """Save the configuration, creating parent directories as needed."""
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
        return True
    except OSError as e:
        logger.error(f"Failed to save config file {config_path}: {e}")
        return False


def _env_flag(name: str) -> bool | None:
    value = os.environ.get(name, "").lower()
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def load_env_config() -> ConfigDict:
    """Load configuration from environment variables."""
    config: ConfigDict = {}

    remote = os.environ.get("PUSH_BACKUP_REMOTE")
    if remote:
        config["aggregate_remote"] = remote

    max_retries = os.environ.get("PUSH_BACKUP_MAX_RETRIES")
    if max_retries:
        try:
            config["max_retries"] = int(max_retries)
        except ValueError:
            pass

    retry_delay = os.environ.get("PUSH_BACKUP_RETRY_DELAY")
    if retry_delay:
        try:
            config["retry_delay"] = float(retry_delay)
        except ValueError:
            pass

    timeout = os.environ.get("PUSH_BACKUP_TIMEOUT")
    if timeout:
        try:
            config["timeout"] = float(timeout)
        except ValueError:
            pass

    max_workers = os.environ.get("PUSH_BACKUP_MAX_WORKERS")
    if max_workers:
        try:
            config["max_workers"] = int(max_workers)
        except ValueError:
            pass

    parallel = _env_flag("PUSH_BACKUP_PARALLEL")
    if parallel is not None:
        config["parallel"] = parallel

    skip_check = _env_flag("PUSH_BACKUP_SKIP_CHECK")
    if skip_check is not None:
        config["skip_check"] = skip_check

    return config


def merge_configs(*configs: ConfigDict) -> ConfigDict:
    """Merge multiple configurations, later ones override earlier."""
    result: ConfigDict = {}
    for config in configs:
        for key, value in config.items():
            result[key] = value  # type: ignore[literal-required]
    return result


def load_config(config_path: Path) -> PushBackupConfig:
    """Load the configuration file with environment overrides applied."""
    merged = merge_configs(load_config_file(config_path), load_env_config())
    return PushBackupConfig.from_dict(merged)


def build_remote_url(base: str, repo: str) -> str:
    """
    Join a configured base URL and a repository name into a mirror URL.

    Exactly one separator is placed between the two (none is added after a
    base ending in ``/`` or ``:``) and the result ends in a single ``.git``.
    """
    repo = repo.strip().strip("/")
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]

    if base.endswith("/") or base.endswith(":"):
        url = f"{base}{repo}"
    else:
        url = f"{base}/{repo}"

    if not url.endswith(".git"):
        url += ".git"
    return url
