import hashlib


def _digest(*parts: str) -> str:
    h = hashlib.sha256()
    for part in parts:
        h.update(part.encode("utf-8") + b"\x1f")
    return h.hexdigest()[:16]


def file_op_id(turn_id: str, action: str, path: str, occurrence: int = 0) -> str:
    """Identifier of a file operation; independent of its (still streaming) content."""
    return f"{turn_id}-file-{_digest('F', action, path, str(occurrence))}"


def command_op_id(turn_id: str, command: str, occurrence: int = 0) -> str:
    return f"{turn_id}-terminal-{_digest('T', command, str(occurrence))}"


def narration_id(turn_id: str, position: int) -> str:
    return f"{turn_id}-narration-{position}"
