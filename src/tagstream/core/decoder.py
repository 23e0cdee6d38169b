"""Incremental decoder for the ``<file>``/``<terminal>`` markup embedded in a model stream.

The decoder is fed the *cumulative* text of a turn on every call. All progress is
kept in a :class:`ParseState`, so each call only looks at the suffix that arrived
since the previous one and the emitted node list only ever grows or extends.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from tagstream.core.attributes import is_self_closing, is_truthy, parse_attributes, tag_name
from tagstream.core.identity import command_op_id, file_op_id, narration_id
from tagstream.models import CommandOpNode, FileAction, FileOpNode, NarrationNode

logger = logging.getLogger(__name__)

FILE_CLOSE_TAG = "</file>"

_FILE_ACTIONS = {action.value: action for action in FileAction}
_DISCARDED_NARRATION = {"", "/>"}

DecodedNode = NarrationNode | FileOpNode | CommandOpNode


class DecoderMode(Enum):
    SEARCHING_FOR_TAG = "searching_for_tag"
    CAPTURING_TAG_DEFINITION = "capturing_tag_definition"
    CAPTURING_FILE_CONTENT = "capturing_file_content"


@dataclass
class ParseState:
    turn_id: str
    buffer: str = ""
    cursor: int = 0
    mode: DecoderMode = DecoderMode.SEARCHING_FOR_TAG
    nodes: list[DecodedNode] = field(default_factory=list)
    open_file: FileOpNode | None = None
    occurrences: Counter[tuple[str, ...]] = field(default_factory=Counter)


class _TagScan(Enum):
    END = "end"
    RESTART = "restart"
    INCOMPLETE = "incomplete"


# ---------------------------------------------------------------------------
# Step function
# ---------------------------------------------------------------------------


def advance(state: ParseState, text: str) -> None:
    """Consume ``text`` (the whole stream so far) into ``state``."""
    if not text.startswith(state.buffer):
        logger.warning("Stream for turn %s no longer extends the consumed prefix; restarting", state.turn_id)
        _reset(state)

    state.buffer = text
    while state.cursor < len(state.buffer):
        if state.mode is DecoderMode.SEARCHING_FOR_TAG:
            progressed = _search_for_tag(state)
        elif state.mode is DecoderMode.CAPTURING_TAG_DEFINITION:
            progressed = _capture_tag_definition(state)
        else:
            progressed = _capture_file_content(state)
        if not progressed:
            break


def finish(state: ParseState) -> None:
    """Flush anything held back while waiting for more input.

    A dangling partial tag becomes literal text. A file body whose closing tag
    never arrived keeps the remaining text but stays unclosed.
    """
    remainder = state.buffer[state.cursor :]
    if not remainder:
        return
    if state.mode is DecoderMode.CAPTURING_FILE_CONTENT and state.open_file is not None:
        state.open_file.content += remainder
    else:
        _append_text(state, remainder)
        state.mode = _resting_mode(state)
    state.cursor = len(state.buffer)


def visible_nodes(state: ParseState) -> list[DecodedNode]:
    """Snapshot of the node list with empty narration runs removed."""
    return [
        node.model_copy()
        for node in state.nodes
        if not (isinstance(node, NarrationNode) and node.text.strip() in _DISCARDED_NARRATION)
    ]


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _search_for_tag(state: ParseState) -> bool:
    start = state.buffer.find("<", state.cursor)
    if start == -1:
        _append_text(state, state.buffer[state.cursor :])
        state.cursor = len(state.buffer)
        return False

    if start > state.cursor:
        _append_text(state, state.buffer[state.cursor : start])
    state.cursor = start
    state.mode = DecoderMode.CAPTURING_TAG_DEFINITION
    return True


def _capture_tag_definition(state: ParseState) -> bool:
    buffer = state.buffer
    start = state.cursor
    if start + 1 >= len(buffer):
        return False

    first = buffer[start + 1]
    if not (first.isalpha() or first == "/"):
        # "a < b" is prose, not markup
        _append_text(state, "<")
        state.cursor = start + 1
        state.mode = _resting_mode(state)
        return True

    outcome, index = _scan_tag(buffer, start)
    if outcome is _TagScan.INCOMPLETE:
        return False
    if outcome is _TagScan.RESTART:
        _append_text(state, buffer[start:index])
        state.cursor = index
        return True

    tag_text = buffer[start + 1 : index]
    state.cursor = index + 1
    if not _open_tag(state, tag_text):
        _append_text(state, buffer[start : index + 1])
    state.mode = _resting_mode(state)
    return True


def _capture_file_content(state: ParseState) -> bool:
    node = state.open_file
    if node is None:
        state.mode = DecoderMode.SEARCHING_FOR_TAG
        return True

    end = state.buffer.find(FILE_CLOSE_TAG, state.cursor)
    if end == -1:
        chunk = state.buffer[state.cursor :]
        held = _partial_suffix_length(chunk, FILE_CLOSE_TAG)
        if held:
            chunk = chunk[:-held]
        node.content += chunk
        state.cursor += len(chunk)
        return False

    node.content += state.buffer[state.cursor : end]
    node.closed = True
    state.open_file = None
    state.cursor = end + len(FILE_CLOSE_TAG)
    state.mode = DecoderMode.SEARCHING_FOR_TAG
    return True


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open_tag(state: ParseState, tag_text: str) -> bool:
    """Turn a complete tag into a node. Returns False when the tag is not ours."""
    name = tag_name(tag_text)
    self_closing = is_self_closing(tag_text)

    if name == "file" and state.open_file is None:
        attrs = parse_attributes(tag_text)
        path = attrs.get("path", "").strip()
        action = _FILE_ACTIONS.get(attrs.get("action", "").strip().lower())
        if not path or action is None:
            return False
        # only deletes carry no body
        if self_closing and action is not FileAction.DELETE:
            return False
        occurrence = _next_occurrence(state, ("file", action.value, path))
        node = FileOpNode(
            id=file_op_id(state.turn_id, action.value, path, occurrence),
            path=path,
            action=action,
            closed=self_closing,
        )
        state.nodes.append(node)
        if not self_closing:
            state.open_file = node
        return True

    if name == "terminal" and self_closing:
        attrs = parse_attributes(tag_text)
        command = attrs.get("command", "").strip()
        if not command:
            return False
        occurrence = _next_occurrence(state, ("terminal", command))
        state.nodes.append(
            CommandOpNode(
                id=command_op_id(state.turn_id, command, occurrence),
                command=command,
                background=is_truthy(attrs.get("bg")),
            )
        )
        return True

    return False


def _scan_tag(buffer: str, start: int) -> tuple[_TagScan, int]:
    """Find the ``>`` closing the tag opened at ``start``.

    A ``>`` inside a quoted attribute value does not close the tag, but a quoted
    run never spans a ``<`` or a newline: reaching one ends the tag at the first
    ``>`` seen inside the quotes, if any.
    """
    quote: str | None = None
    quoted_gt = -1
    previous = ""
    for index in range(start + 1, len(buffer)):
        ch = buffer[index]
        if quote is not None:
            if ch == quote:
                quote, quoted_gt = None, -1
            elif ch == ">" and quoted_gt < 0:
                quoted_gt = index
            elif ch in "<\n":
                if quoted_gt >= 0:
                    return _TagScan.END, quoted_gt
                quote = None
                if ch == "<":
                    return _TagScan.RESTART, index
        elif ch in "\"'" and previous == "=":
            quote = ch
        elif ch == ">":
            return _TagScan.END, index
        elif ch == "<":
            return _TagScan.RESTART, index
        if not ch.isspace():
            previous = ch
    return _TagScan.INCOMPLETE, -1


def _append_text(state: ParseState, text: str) -> None:
    if not text:
        return
    if state.open_file is not None:
        state.open_file.content += text
        return
    last = state.nodes[-1] if state.nodes else None
    if isinstance(last, NarrationNode):
        last.text += text
        return
    state.nodes.append(NarrationNode(id=narration_id(state.turn_id, len(state.nodes)), text=text))


def _resting_mode(state: ParseState) -> DecoderMode:
    if state.open_file is not None:
        return DecoderMode.CAPTURING_FILE_CONTENT
    return DecoderMode.SEARCHING_FOR_TAG


def _next_occurrence(state: ParseState, key: tuple[str, ...]) -> int:
    occurrence = state.occurrences[key]
    state.occurrences[key] += 1
    return occurrence


def _partial_suffix_length(text: str, token: str) -> int:
    for size in range(min(len(token) - 1, len(text)), 0, -1):
        if text.endswith(token[:size]):
            return size
    return 0


def _reset(state: ParseState) -> None:
    state.buffer = ""
    state.cursor = 0
    state.mode = DecoderMode.SEARCHING_FOR_TAG
    state.nodes = []
    state.open_file = None
    state.occurrences = Counter()


# ---------------------------------------------------------------------------
# Per-turn registry
# ---------------------------------------------------------------------------


class StreamDecoder:
    """Owns the one live :class:`ParseState`; switching turns discards it."""

    def __init__(self) -> None:
        self._state: ParseState | None = None

    @property
    def state(self) -> ParseState | None:
        return self._state

    def parse(self, turn_id: str, text: str) -> list[DecodedNode]:
        state = self._state_for(turn_id)
        advance(state, text)
        return visible_nodes(state)

    def finish(self, turn_id: str) -> list[DecodedNode]:
        state = self._state_for(turn_id)
        finish(state)
        return visible_nodes(state)

    def reset(self) -> None:
        self._state = None

    def _state_for(self, turn_id: str) -> ParseState:
        if self._state is None or self._state.turn_id != turn_id:
            if self._state is not None:
                logger.debug("Discarding decoder state of turn %s", self._state.turn_id)
            self._state = ParseState(turn_id=turn_id)
        return self._state
