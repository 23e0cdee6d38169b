"""Builds a :class:`Session` from :class:`Settings` with the matching adapters."""

import logging
from pathlib import Path

from tagstream.config import Settings
from tagstream.core.ports.sandbox import TerminalSize
from tagstream.core.ports.storage import OperationMirror
from tagstream.core.session import Session
from tagstream.core.shell import OutputSink
from tagstream.sandbox import InMemoryFileSystem, LocalFileSystem, LocalProcessHost, ScriptedProcess, ScriptedProcessHost
from tagstream.storage import InMemoryOperationMirror, SqlOperationMirror, get_engine

logger = logging.getLogger(__name__)


def create_mirror(settings: Settings) -> OperationMirror:
    if settings.database_url:
        return SqlOperationMirror(get_engine(settings.database_url))
    return InMemoryOperationMirror()


def create_session(
    settings: Settings,
    *,
    scope_id: str = "default",
    dry_run: bool = False,
    sink: OutputSink | None = None,
    mirror: OperationMirror | None = None,
) -> Session:
    """Wire a session against the local workspace, or against in-memory fakes for a dry run."""
    terminal = TerminalSize(cols=settings.terminal_cols, rows=settings.terminal_rows)
    if dry_run:
        shell = settings.shell
        fs = InMemoryFileSystem()
        host = ScriptedProcessHost(lambda program, args: ScriptedProcess(stay_open=program == shell, echo=True))
        logger.info("Dry run: nothing is written to %s", settings.workspace)
    else:
        root = Path(settings.workspace)
        root.mkdir(parents=True, exist_ok=True)
        fs = LocalFileSystem(root)
        host = LocalProcessHost(root)
    return Session(
        fs=fs,
        host=host,
        scope_id=scope_id,
        mirror=mirror if mirror is not None else create_mirror(settings),
        shell_program=settings.shell,
        terminal=terminal,
        failure_pattern=settings.failure_pattern,
        sink=sink,
    )
