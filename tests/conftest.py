"""Shared fixtures and helpers for tests."""

from pathlib import Path

import pytest

from tagstream.core.ledger import StatusLedger
from tagstream.core.session import Session
from tagstream.sandbox.memory import InMemoryFileSystem, ScriptedProcess, ScriptedProcessHost
from tagstream.storage.memory import InMemoryOperationMirror

_REPO_ROOT = Path(__file__).parent.parent

SHELL = "bash"


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


def shell_factory(program: str, args: list[str]) -> ScriptedProcess:
    """Shells stay open until killed; everything else exits 0 without output."""
    return ScriptedProcess(stay_open=program == SHELL)


@pytest.fixture
def fs() -> InMemoryFileSystem:
    return InMemoryFileSystem()


@pytest.fixture
def host() -> ScriptedProcessHost:
    return ScriptedProcessHost(shell_factory)


@pytest.fixture
def ledger() -> StatusLedger:
    return StatusLedger()


@pytest.fixture
def mirror() -> InMemoryOperationMirror:
    return InMemoryOperationMirror()


@pytest.fixture
def terminal_output() -> list[str]:
    return []


@pytest.fixture
def session(
    fs: InMemoryFileSystem,
    host: ScriptedProcessHost,
    mirror: InMemoryOperationMirror,
    terminal_output: list[str],
) -> Session:
    return Session(
        fs=fs,
        host=host,
        scope_id="project-1",
        mirror=mirror,
        shell_program=SHELL,
        sink=terminal_output.append,
    )
