"""FastMCP server exposing tagstream tools."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from fastmcp import FastMCP

from tagstream.core.followups import build_execution_error_prompt
from tagstream.core.session import Session

Tool = Callable[..., Coroutine[Any, Any, Any]]


def build_tools(session: Session) -> dict[str, Tool]:
    """The tool coroutines bound to ``session``, keyed by tool name."""
    shell_started = False

    async def _ensure_shell() -> None:
        nonlocal shell_started
        if not shell_started:
            shell_started = True
            await session.launch_shell()

    async def feed_stream(turn_id: str, text: str, finish: bool = False) -> dict[str, Any]:
        """Feed the cumulative text of a turn; ready instructions are queued for execution."""
        if not turn_id.strip():
            return {"error": "Error: 'turn_id' must not be blank."}
        await _ensure_shell()
        result = session.feed(turn_id, text)
        dispatched = [node.id for node in result.dispatched]
        if finish:
            result = session.finish_turn(turn_id)
            dispatched.extend(node.id for node in result.dispatched)
        return {
            "nodes": [node.model_dump(mode="json") for node in result.nodes],
            "dispatched": dispatched,
        }

    async def operation_status(node_id: str) -> str:
        """Status of one decoded instruction: pending, executing, completed or error."""
        return session.get_status(node_id).value

    async def workspace_status() -> dict[str, Any]:
        """Current status line, queue depth, pending execution error and active detections."""
        ledger = session.ledger
        error = ledger.execution_error
        return {
            "status_line": ledger.status_line,
            "is_processing": ledger.is_processing,
            "pending": len(session.queue.pending),
            "execution_error": error,
            "followup": build_execution_error_prompt(error) if error is not None else None,
            "active_file": session.tree.active_file,
            "detections": [detection.log for detection in ledger.active_detections()],
        }

    return {
        "feed_stream": feed_stream,
        "operation_status": operation_status,
        "workspace_status": workspace_status,
    }


def create_mcp_server(session: Session) -> FastMCP:
    """Create a FastMCP server wired to the given session."""

    mcp = FastMCP("tagstream", instructions="Decode streamed <file>/<terminal> markup and execute it.")
    for tool in build_tools(session).values():
        mcp.tool()(tool)
    return mcp
