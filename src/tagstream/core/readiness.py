from collections.abc import Iterable, Sequence

from tagstream.models import CommandOpNode, FileOpNode, Instruction, NarrationNode

Node = NarrationNode | FileOpNode | CommandOpNode


def is_ready(node: Node) -> bool:
    """A node is ready once its whole definition is known."""
    if isinstance(node, CommandOpNode):
        return True
    if isinstance(node, FileOpNode):
        return node.closed
    return False


def select_ready(nodes: Sequence[Node], dispatched: Iterable[str]) -> list[Instruction]:
    """Return ready nodes not yet dispatched, in stream order."""
    seen = set(dispatched)
    ready: list[Instruction] = []
    for node in nodes:
        if isinstance(node, (FileOpNode, CommandOpNode)) and is_ready(node) and node.id not in seen:
            ready.append(node)
            seen.add(node.id)
    return ready


class DispatchRegistry:
    """Remembers which node ids were handed to the queue so none is dispatched twice."""

    def __init__(self) -> None:
        self._dispatched: set[str] = set()

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._dispatched

    def __len__(self) -> int:
        return len(self._dispatched)

    def take_ready(self, nodes: Sequence[Node]) -> list[Instruction]:
        ready = select_ready(nodes, self._dispatched)
        self._dispatched.update(node.id for node in ready)
        return ready

    def clear(self) -> None:
        self._dispatched.clear()
