from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from tagstream.core.decoder import DecodedNode, StreamDecoder
from tagstream.core.readiness import is_ready
from tagstream.models import CommandOpNode, FileOpNode

console = Console()

_PREVIEW_WIDTH = 60


def _preview(text: str) -> str:
    flat = text.replace("\n", "\\n")
    if len(flat) > _PREVIEW_WIDTH:
        return flat[: _PREVIEW_WIDTH - 3] + "..."
    return flat


def _describe(node: DecodedNode) -> str:
    if isinstance(node, FileOpNode):
        return f"{node.action.value} {node.path} ({len(node.content)} chars)"
    if isinstance(node, CommandOpNode):
        return f"{node.command}{' [bg]' if node.background else ''}"
    return _preview(node.text)


def chunked_prefixes(text: str, chunk_size: int) -> list[str]:
    """The cumulative prefixes a stream delivering ``chunk_size`` characters at a time would produce."""
    if chunk_size <= 0 or chunk_size >= len(text):
        return [text]
    return [text[:end] for end in range(chunk_size, len(text) + chunk_size, chunk_size)]


def render_nodes(nodes: list[DecodedNode]) -> None:
    table = Table(show_lines=False)
    for header in ("type", "id", "ready", "detail"):
        table.add_column(header)
    for node in nodes:
        table.add_row(node.type, node.id, "yes" if is_ready(node) else "no", _describe(node))
    console.print(table)
    console.print(f"({len(nodes)} nodes)")


def parse(
    file: Annotated[Path, typer.Argument(help="Transcript containing streamed markup.", exists=True, dir_okay=False)],
    turn: Annotated[str, typer.Option(help="Turn id used to derive node ids.")] = "turn-1",
    chunk_size: Annotated[int, typer.Option(help="Feed the text this many characters at a time (0 = all at once).")] = 0,
) -> None:
    """Decode a transcript and list the nodes it yields."""
    text = file.read_text(encoding="utf-8")
    decoder = StreamDecoder()
    for prefix in chunked_prefixes(text, chunk_size):
        decoder.parse(turn, prefix)
    render_nodes(decoder.finish(turn))
