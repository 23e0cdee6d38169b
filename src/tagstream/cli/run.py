import asyncio
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tagstream.bootstrap import create_session
from tagstream.cli.parse import chunked_prefixes
from tagstream.config import Settings
from tagstream.core.followups import build_detection_prompt, build_execution_error_prompt
from tagstream.core.session import Session
from tagstream.core.snapshot import SnapshotDiff, compute_diff

console = Console()


def _write_terminal(data: str) -> None:
    sys.stdout.write(data)
    sys.stdout.flush()


def _render_statuses(session: Session, node_ids: list[str]) -> None:
    table = Table(show_lines=False)
    table.add_column("id")
    table.add_column("status")
    for node_id in node_ids:
        table.add_row(node_id, session.get_status(node_id).value)
    console.print(table)


def _render_changes(diff: SnapshotDiff) -> None:
    if not diff.created and not diff.deleted:
        console.print("[dim]No workspace changes.[/dim]")
        return
    for path in diff.created:
        console.print(f"[green]+[/green] {escape(path)}")
    for path in diff.deleted:
        console.print(f"[red]-[/red] {escape(path)}")


async def _replay(session: Session, turn: str, text: str, chunk_size: int) -> list[str]:
    dispatched: list[str] = []
    for prefix in chunked_prefixes(text, chunk_size):
        dispatched.extend(node.id for node in session.feed(turn, prefix).dispatched)
        # yield to the drain task between chunks
        await asyncio.sleep(0)
    dispatched.extend(node.id for node in session.finish_turn(turn).dispatched)
    await session.join()
    return dispatched


async def _follow(session: Session, turn: str, file: Path) -> None:
    from tagstream.watcher.watchfiles_adapter import TranscriptWatcher

    async def _on_text(text: str) -> None:
        session.feed(turn, text)

    watcher = TranscriptWatcher(file, _on_text)
    await watcher.start()
    console.print(f"[green]Following[/green] {file} (Ctrl+C to stop)")
    try:
        await asyncio.Event().wait()
    finally:
        await watcher.stop()
        session.finish_turn(turn)
        await session.join()


def run(
    file: Annotated[Path, typer.Argument(help="Transcript containing streamed markup.", dir_okay=False)],
    workspace: Annotated[str | None, typer.Option(help="Sandbox directory (defaults to TAGSTREAM_WORKSPACE).")] = None,
    turn: Annotated[str, typer.Option(help="Turn id used to derive node ids.")] = "turn-1",
    chunk_size: Annotated[int, typer.Option(help="Feed the text this many characters at a time (0 = all at once).")] = 0,
    follow: Annotated[bool, typer.Option(help="Keep watching the transcript and execute as it grows.")] = False,
    dry_run: Annotated[bool, typer.Option(help="Execute against an in-memory sandbox.")] = False,
) -> None:
    """Feed a transcript through the decoder and execute its instructions."""
    settings = Settings.from_env()
    if workspace is not None:
        settings.workspace = workspace
    if not follow and not file.is_file():
        console.print(f"[red]No such transcript:[/red] {file}")
        raise typer.Exit(code=2)

    session = create_session(settings, dry_run=dry_run, sink=_write_terminal)
    session.on_detection(lambda log: console.print(f"\n[yellow]Detected:[/yellow] {log}"))

    async def _run() -> int:
        try:
            await session.launch_shell()
            before = await session.snapshot()
            if follow:
                await _follow(session, turn, file)
                return 0
            node_ids = await _replay(session, turn, file.read_text(encoding="utf-8"), chunk_size)
            await session.shell.exit()
            console.print()
            _render_statuses(session, node_ids)
            _render_changes(compute_diff(before, await session.snapshot()))
        finally:
            await session.close()

        error = session.ledger.take_execution_error()
        if error is not None:
            console.print(build_execution_error_prompt(error), markup=False)
            return 1
        for detection in session.ledger.active_detections():
            console.print(build_detection_prompt(detection.log), markup=False)
        return 0

    try:
        code = asyncio.run(_run())
    except KeyboardInterrupt:
        code = 130
    if code:
        raise typer.Exit(code=code)
