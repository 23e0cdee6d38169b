"""Tests for environment-backed settings."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from tagstream.config import Settings
from tagstream.core.scanner import DEFAULT_FAILURE_PATTERN

_ENV_VARS = (
    "TAGSTREAM_WORKSPACE",
    "TAGSTREAM_SHELL",
    "TAGSTREAM_TERMINAL_COLS",
    "TAGSTREAM_TERMINAL_ROWS",
    "TAGSTREAM_FAILURE_PATTERN",
    "TAGSTREAM_DATABASE_URL",
    "TAGSTREAM_LOG_LEVEL",
    "TAGSTREAM_CONFIG_FILE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults() -> None:
    settings = Settings.from_env()
    assert settings.workspace == "./workspace"
    assert settings.shell in {"bash", "sh"}
    assert (settings.terminal_cols, settings.terminal_rows) == (80, 24)
    assert settings.failure_pattern == DEFAULT_FAILURE_PATTERN
    assert settings.database_url is None
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAGSTREAM_WORKSPACE", "/srv/sandbox")
    monkeypatch.setenv("TAGSTREAM_SHELL", "zsh")
    monkeypatch.setenv("TAGSTREAM_TERMINAL_COLS", "132")
    monkeypatch.setenv("TAGSTREAM_LOG_LEVEL", "debug")
    settings = Settings.from_env()
    assert settings.workspace == "/srv/sandbox"
    assert settings.shell == "zsh"
    assert settings.terminal_cols == 132
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("value", ["abc", "0", "-5"])
def test_invalid_integers_fall_back(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("TAGSTREAM_TERMINAL_ROWS", value)
    assert Settings.from_env().terminal_rows == 24


def test_invalid_failure_pattern_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAGSTREAM_FAILURE_PATTERN", "[oops")
    with pytest.raises(ValueError):
        Settings.from_env()


def test_config_file_is_read(tmp_path: Path) -> None:
    (tmp_path / "tagstream.config.json").write_text(
        json.dumps({"workspace": "ws", "terminal": {"cols": 100}, "database_url": "sqlite+aiosqlite:///x.db"}),
        encoding="utf-8",
    )
    settings = Settings.from_env()
    assert settings.workspace == "ws"
    assert settings.terminal_cols == 100
    assert settings.database_url == "sqlite+aiosqlite:///x.db"


def test_explicit_config_file_and_env_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config = tmp_path / "custom.json"
    config.write_text(json.dumps({"workspace": "from-file", "shell": "sh"}), encoding="utf-8")
    monkeypatch.setenv("TAGSTREAM_CONFIG_FILE", str(config))
    monkeypatch.setenv("TAGSTREAM_WORKSPACE", "from-env")
    settings = Settings.from_env()
    assert settings.workspace == "from-env"
    assert settings.shell == "sh"


def test_broken_config_file_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "tagstream.config.json").write_text("{not json", encoding="utf-8")
    assert Settings.from_env().workspace == "./workspace"


def test_non_object_config_file_is_ignored_with_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    (tmp_path / "tagstream.config.json").write_text(json.dumps(["ws"]), encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="tagstream.config"):
        settings = Settings.from_env()
    assert settings.workspace == "./workspace"
    assert any("expected a JSON object" in r.getMessage() for r in caplog.records)


def test_blank_env_falls_through_to_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    (tmp_path / "tagstream.config.json").write_text(
        json.dumps({"shell": "fish", "terminal": {"rows": True, "cols": "90"}}), encoding="utf-8"
    )
    monkeypatch.setenv("TAGSTREAM_SHELL", "   ")
    settings = Settings.from_env()
    assert settings.shell == "fish"
    assert settings.terminal_cols == 90
    assert settings.terminal_rows == 24
