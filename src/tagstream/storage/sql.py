import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from tagstream.models import FileAction, FileOperation

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS project_files
(
    project_id TEXT NOT NULL,
    path       TEXT NOT NULL,
    content    TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (project_id, path)
)
"""

_UPSERT = """
INSERT INTO project_files(project_id, path, content)
VALUES (:project_id, :path, :content)
ON CONFLICT (project_id, path) DO UPDATE SET content = excluded.content
"""

_DELETE = """
DELETE FROM project_files
WHERE project_id = :project_id AND (path = :path OR path LIKE :prefix ESCAPE '\\')
"""


def _like_prefix(path: str) -> str:
    escaped = path.rstrip("/").replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}/%"


class SqlOperationMirror:
    """Mirrors executed file operations into a ``project_files`` table."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._ready = False

    async def ensure_ready(self) -> None:
        if self._ready:
            return
        async with self._engine.begin() as conn:
            await conn.execute(text(_CREATE_TABLE))
        self._ready = True

    async def dispose(self) -> None:
        await self._engine.dispose()

    async def save_operations(self, scope_id: str, operations: list[FileOperation]) -> None:
        if not operations:
            return
        await self.ensure_ready()
        async with self._engine.begin() as conn:
            for operation in operations:
                if operation.type is FileAction.DELETE:
                    await conn.execute(
                        text(_DELETE),
                        {"project_id": scope_id, "path": operation.path, "prefix": _like_prefix(operation.path)},
                    )
                else:
                    await conn.execute(
                        text(_UPSERT),
                        {"project_id": scope_id, "path": operation.path, "content": operation.content or ""},
                    )
        logger.debug("Mirrored %d operation(s) for %s", len(operations), scope_id)
