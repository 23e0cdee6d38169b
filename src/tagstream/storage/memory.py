from tagstream.models import FileAction, FileOperation


class InMemoryOperationMirror:
    """Implements the ``OperationMirror`` protocol with plain dicts."""

    def __init__(self) -> None:
        self.files: dict[str, dict[str, str]] = {}
        self.history: list[tuple[str, FileOperation]] = []

    async def ensure_ready(self) -> None:
        return None

    async def dispose(self) -> None:
        return None

    async def save_operations(self, scope_id: str, operations: list[FileOperation]) -> None:
        project = self.files.setdefault(scope_id, {})
        for operation in operations:
            self.history.append((scope_id, operation))
            if operation.type is FileAction.DELETE:
                prefix = operation.path.rstrip("/") + "/"
                for path in [p for p in project if p == operation.path or p.startswith(prefix)]:
                    del project[path]
            else:
                project[operation.path] = operation.content or ""
