"""Tests for the config module."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from push_backup.config import (
    ConfigDict,
    PushBackupConfig,
    RemoteEntry,
    build_remote_url,
    default_config_path,
    load_config,
    load_config_file,
    load_env_config,
    merge_configs,
    save_config_file,
)

if TYPE_CHECKING:
    from _pytest.monkeypatch import MonkeyPatch


class TestRemoteEntry:
    """Tests for RemoteEntry dataclass."""

    def test_from_dict(self) -> None:
        entry = RemoteEntry.from_dict({"name": "github", "base": "git@github.com:me", "note": "main"})
        assert entry.name == "github"
        assert entry.base == "git@github.com:me"
        assert entry.note == "main"

    def test_url_is_alias_of_base(self) -> None:
        """Test older configs using 'url' still load."""
        entry = RemoteEntry.from_dict({"name": "gitee", "url": "https://gitee.com/me"})
        assert entry.base == "https://gitee.com/me"
        assert entry.note is None

    def test_to_dict_omits_empty_note(self) -> None:
        assert RemoteEntry("a", "b").to_dict() == {"name": "a", "base": "b"}


class TestPushBackupConfig:
    """Tests for PushBackupConfig dataclass."""

    def test_from_dict_empty(self) -> None:
        """Test creating config from empty dict."""
        config = PushBackupConfig.from_dict({})
        assert config.remotes == []
        assert config.aggregate_remote == "push-backup"
        assert config.max_retries == 3
        assert config.timeout == 30.0
        assert config.parallel is True
        assert config.max_workers == 4
        assert config.skip_check is False

    def test_from_dict_full(self) -> None:
        data: ConfigDict = {
            "remotes": [
                {"name": "github", "base": "git@github.com:me"},
                {"name": "gitee", "base": "https://gitee.com/me"},
            ],
            "aggregate_remote": "mirrors",
            "max_retries": 5,
            "retry_delay": 0.5,
            "timeout": 0,
            "parallel": False,
            "max_workers": 2,
            "skip_check": True,
        }
        config = PushBackupConfig.from_dict(data)
        assert [r.name for r in config.remotes] == ["github", "gitee"]
        assert config.aggregate_remote == "mirrors"
        assert config.max_retries == 5
        assert config.retry_delay == 0.5
        assert config.timeout == 0
        assert config.parallel is False
        assert config.skip_check is True

    def test_nameless_remotes_are_dropped(self) -> None:
        config = PushBackupConfig.from_dict({"remotes": [{"base": "x"}]})
        assert config.remotes == []

    def test_quoted_values_are_coerced(self) -> None:
        """Test hand-edited configs with string numbers and flags still load."""
        config = PushBackupConfig.from_dict(
            {"max_retries": "5", "timeout": "12.5", "parallel": "false", "max_workers": 2.0}  # type: ignore[typeddict-item]
        )
        assert config.max_retries == 5
        assert config.timeout == 12.5
        assert config.parallel is False
        assert config.max_workers == 2

    def test_invalid_values_fall_back(self, capsys) -> None:
        config = PushBackupConfig.from_dict(
            {"max_retries": "many", "timeout": None, "skip_check": "yes", "retry_delay": True, "aggregate_remote": 7}  # type: ignore[typeddict-item]
        )
        assert config.max_retries == 3
        assert config.timeout == 30.0
        assert config.skip_check is False
        assert config.retry_delay == 2.0
        assert config.aggregate_remote == "push-backup"
        out = capsys.readouterr().out
        assert "Ignoring invalid 'max_retries'" in out
        assert "Ignoring invalid 'skip_check'" in out

    def test_non_object_remotes_are_dropped(self) -> None:
        config = PushBackupConfig.from_dict({"remotes": ["github", {"name": "a", "base": "b"}]})  # type: ignore[list-item]
        assert [r.name for r in config.remotes] == ["a"]

    def test_set_remote_adds_then_updates(self) -> None:
        config = PushBackupConfig()
        assert config.set_remote("github", "git@github.com:me") is False
        assert config.set_remote("github", "git@github.com:other", note="moved") is True
        assert len(config.remotes) == 1
        assert config.remotes[0].base == "git@github.com:other"
        assert config.remotes[0].note == "moved"

    def test_remove_remote(self) -> None:
        config = PushBackupConfig(remotes=[RemoteEntry("a", "x"), RemoteEntry("b", "y")])
        assert config.remove_remote("a") is True
        assert config.remove_remote("a") is False
        assert [r.name for r in config.remotes] == ["b"]


class TestLoadConfigFile:
    """Tests for load_config_file function."""

    def test_load_existing_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"remotes": [{"name": "a", "base": "b"}], "max_retries": 1}))

        config = load_config_file(config_file)
        assert config["max_retries"] == 1
        assert config["remotes"][0]["name"] == "a"

    def test_load_nonexistent_config(self, tmp_path: Path) -> None:
        assert load_config_file(tmp_path / "nonexistent.json") == {}

    def test_load_invalid_json(self, tmp_path: Path, capsys) -> None:
        """Test loading invalid JSON warns and returns empty dict."""
        config_file = tmp_path / "config.json"
        config_file.write_text("invalid json {")

        assert load_config_file(config_file) == {}
        assert "Failed to load config file" in capsys.readouterr().out

    def test_load_non_object(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.json"
        config_file.write_text("[1, 2]")

        assert load_config_file(config_file) == {}


class TestSaveConfigFile:
    """Tests for save_config_file function."""

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        """Test saving into a directory that does not exist yet."""
        config_path = tmp_path / "deep" / "dir" / "config.json"
        config = PushBackupConfig(remotes=[RemoteEntry("github", "git@github.com:me", "n")])

        assert save_config_file(config, config_path) is True

        saved = json.loads(config_path.read_text())
        assert saved["remotes"] == [{"name": "github", "base": "git@github.com:me", "note": "n"}]
        assert saved["aggregate_remote"] == "push-backup"


class TestLoadEnvConfig:
    """Tests for load_env_config function."""

    def test_empty_environment(self) -> None:
        assert load_env_config() == {}

    def test_numeric_settings(self, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_BACKUP_MAX_RETRIES", "5")
        monkeypatch.setenv("PUSH_BACKUP_RETRY_DELAY", "0.25")
        monkeypatch.setenv("PUSH_BACKUP_TIMEOUT", "0")
        monkeypatch.setenv("PUSH_BACKUP_MAX_WORKERS", "8")

        config = load_env_config()

        assert config["max_retries"] == 5
        assert config["retry_delay"] == 0.25
        assert config["timeout"] == 0.0
        assert config["max_workers"] == 8

    def test_invalid_numbers_are_ignored(self, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_BACKUP_MAX_RETRIES", "lots")
        monkeypatch.setenv("PUSH_BACKUP_TIMEOUT", "soon")

        config = load_env_config()

        assert "max_retries" not in config
        assert "timeout" not in config

    def test_flags(self, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_BACKUP_PARALLEL", "false")
        monkeypatch.setenv("PUSH_BACKUP_SKIP_CHECK", "true")
        monkeypatch.setenv("PUSH_BACKUP_REMOTE", "mirrors")

        config = load_env_config()

        assert config["parallel"] is False
        assert config["skip_check"] is True
        assert config["aggregate_remote"] == "mirrors"


class TestMergeConfigs:
    """Tests for merge_configs and load_config."""

    def test_later_configs_override(self) -> None:
        merged = merge_configs({"max_retries": 1, "parallel": True}, {"max_retries": 4})
        assert merged["max_retries"] == 4
        assert merged["parallel"] is True

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: MonkeyPatch) -> None:
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"max_retries": 1, "remotes": [{"name": "a", "base": "b"}]}))
        monkeypatch.setenv("PUSH_BACKUP_MAX_RETRIES", "6")

        config = load_config(config_file)

        assert config.max_retries == 6
        assert config.remotes[0].name == "a"


class TestDefaultConfigPath:
    """Tests for default_config_path function."""

    def test_explicit_environment_path(self, tmp_path: Path, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_BACKUP_CONFIG", str(tmp_path / "custom.json"))
        assert default_config_path() == tmp_path / "custom.json"

    def test_dev_mode_uses_working_tree(self, tmp_path: Path, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_BACKUP_ENV", "dev")
        assert default_config_path() == Path.cwd() / ".dev" / "config.json"

    def test_xdg_config_home(self, tmp_path: Path, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
        assert default_config_path() == tmp_path / "cfg" / "push-backup" / "config.json"


class TestBuildRemoteUrl:
    """Tests for build_remote_url function."""

    def test_adds_separator_and_suffix(self) -> None:
        assert build_remote_url("https://gitee.com/me", "proj") == "https://gitee.com/me/proj.git"

    def test_base_ending_in_colon(self) -> None:
        assert build_remote_url("git@github.com:", "me/proj") == "git@github.com:me/proj.git"

    def test_base_ending_in_slash(self) -> None:
        assert build_remote_url("https://host/me/", "proj") == "https://host/me/proj.git"

    def test_single_git_suffix(self) -> None:
        """Test a repo name that already ends in .git is not doubled."""
        assert build_remote_url("https://host/me", " /proj.git/ ") == "https://host/me/proj.git"
