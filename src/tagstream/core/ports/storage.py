from typing import Protocol

from tagstream.models import FileOperation


class OperationMirror(Protocol):
    async def save_operations(self, scope_id: str, operations: list[FileOperation]) -> None: ...

    async def ensure_ready(self) -> None: ...

    async def dispose(self) -> None: ...
