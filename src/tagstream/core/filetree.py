"""In-memory mirror of the sandbox file hierarchy.

The helpers are pure: they return a new node list and never mutate their input.
"""

import logging
from collections.abc import Iterable

from tagstream.models import ProjectFile, TreeNode

logger = logging.getLogger(__name__)


def _split(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def _normalize(path: str) -> str:
    return "/".join(_split(path))


def _sort_key(node: TreeNode) -> tuple[int, str]:
    return (0 if node.type == "directory" else 1, node.name)


def find_node(nodes: list[TreeNode], path: str) -> TreeNode | None:
    target = _normalize(path)
    for node in nodes:
        if node.path == target:
            return node
        if node.type == "directory" and node.children:
            found = find_node(node.children, target)
            if found is not None:
                return found
    return None


def create_file(nodes: list[TreeNode], path: str, content: str = "") -> list[TreeNode]:
    new_nodes = [node.model_copy(deep=True) for node in nodes]
    parts = _split(path)
    level = new_nodes

    for index, part in enumerate(parts):
        is_last = index == len(parts) - 1
        current_path = "/".join(parts[: index + 1])
        node = next((n for n in level if n.name == part), None)

        if node is None:
            if is_last:
                node = TreeNode(name=part, path=current_path, type="file", content=content)
            else:
                node = TreeNode(name=part, path=current_path, type="directory", children=[])
            level.append(node)
            level.sort(key=_sort_key)
        elif is_last and node.type == "file":
            node.content = content

        if node.type == "directory":
            if node.children is None:
                node.children = []
            level = node.children
        elif not is_last:
            logger.error("Path conflict: cannot create %s below file %s", path, node.path)
            return new_nodes

    return new_nodes


def update_file(nodes: list[TreeNode], path: str, content: str) -> list[TreeNode]:
    """Replace the content of ``path``, creating it when absent."""
    target = _normalize(path)
    if find_node(nodes, target) is None:
        return create_file(nodes, target, content)

    def _update(level: list[TreeNode]) -> list[TreeNode]:
        updated: list[TreeNode] = []
        for node in level:
            if node.path == target and node.type == "file":
                updated.append(node.model_copy(update={"content": content}))
            elif node.type == "directory" and target.startswith(node.path + "/"):
                updated.append(node.model_copy(update={"children": _update(node.children or [])}))
            else:
                updated.append(node)
        return updated

    return _update(nodes)


def delete_path(nodes: list[TreeNode], path: str) -> list[TreeNode]:
    """Remove a file or a whole directory."""
    target = _normalize(path)
    remaining: list[TreeNode] = []
    for node in nodes:
        if node.path == target:
            continue
        if node.type == "directory" and target.startswith(node.path + "/"):
            remaining.append(node.model_copy(update={"children": delete_path(node.children or [], target)}))
        else:
            remaining.append(node)
    return remaining


def from_files(files: Iterable[ProjectFile]) -> list[TreeNode]:
    nodes: list[TreeNode] = []
    for file in files:
        nodes = create_file(nodes, file.path, file.content)
    return nodes


def iter_files(nodes: list[TreeNode]) -> Iterable[TreeNode]:
    for node in nodes:
        if node.type == "file":
            yield node
        elif node.children:
            yield from iter_files(node.children)


class FileTree:
    """The session's tree plus the file currently open in the editor."""

    def __init__(self, nodes: list[TreeNode] | None = None) -> None:
        self.nodes: list[TreeNode] = nodes or []
        self.active_file: str | None = None
        self.editor_content = ""

    def create(self, path: str, content: str) -> None:
        self.nodes = create_file(self.nodes, path, content)

    def update(self, path: str, content: str) -> None:
        self.nodes = update_file(self.nodes, path, content)

    def delete(self, path: str) -> None:
        self.nodes = delete_path(self.nodes, path)
        if self.active_file is not None and (
            self.active_file == _normalize(path) or self.active_file.startswith(_normalize(path) + "/")
        ):
            self.set_active(None, "")

    def set_active(self, path: str | None, content: str | None = None) -> None:
        self.active_file = _normalize(path) if path is not None else None
        if content is not None:
            self.editor_content = content

    def find(self, path: str) -> TreeNode | None:
        return find_node(self.nodes, path)
