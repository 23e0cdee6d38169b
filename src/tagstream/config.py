"""Environment-backed runtime settings, with an optional JSON config file.

Every setting is looked up as ``TAGSTREAM_<NAME>`` first, then in the config
file, then falls back to its default. Blank values count as unset.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tagstream.core.scanner import DEFAULT_FAILURE_PATTERN, compile_failure_pattern

logger = logging.getLogger(__name__)

ENV_PREFIX = "TAGSTREAM_"
CONFIG_FILE_NAME = "tagstream.config.json"


@dataclass(slots=True)
class Settings:
    workspace: str
    shell: str
    terminal_cols: int
    terminal_rows: int
    failure_pattern: str
    database_url: str | None
    log_level: str

    @classmethod
    def from_env(cls) -> Settings:
        file_config = read_config_file(config_path())
        terminal = file_config.get("terminal")
        if not isinstance(terminal, dict):
            terminal = {}

        failure_pattern = _pick("failure_pattern", file_config.get("failure_pattern")) or DEFAULT_FAILURE_PATTERN
        # raises ValueError for an invalid pattern
        compile_failure_pattern(failure_pattern)

        return cls(
            workspace=_pick("workspace", file_config.get("workspace")) or "./workspace",
            shell=_pick("shell", file_config.get("shell")) or _default_shell(),
            terminal_cols=_dimension(_pick("terminal_cols", terminal.get("cols")), default=80),
            terminal_rows=_dimension(_pick("terminal_rows", terminal.get("rows")), default=24),
            failure_pattern=failure_pattern,
            database_url=_pick("database_url", file_config.get("database_url")),
            log_level=(_pick("log_level", file_config.get("log_level")) or "INFO").upper(),
        )


def config_path() -> Path:
    return Path(os.getenv(f"{ENV_PREFIX}CONFIG_FILE") or CONFIG_FILE_NAME)


def read_config_file(path: Path) -> dict[str, Any]:
    """The JSON object stored at ``path``; a missing or unusable file yields ``{}``."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", path)
        return {}
    return data


def _pick(name: str, file_value: Any) -> str | None:
    for candidate in (os.getenv(f"{ENV_PREFIX}{name.upper()}"), file_value):
        if isinstance(candidate, bool) or not isinstance(candidate, (str, int)):
            continue
        text = str(candidate).strip()
        if text:
            return text
    return None


def _dimension(raw: str | None, *, default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _default_shell() -> str:
    return "bash" if shutil.which("bash") else "sh"
