from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from watchfiles import Change, awatch

logger = logging.getLogger(__name__)


class TranscriptWatcher:
    """Follow a growing transcript file and hand its whole text to a callback.

    Implements the ``StreamWatcherPort`` protocol. The callback receives the
    cumulative content every time the file changes, which is exactly what the
    decoder expects.
    """

    def __init__(
        self,
        path: str | Path,
        on_text: Callable[[str], Coroutine[Any, Any, None]],
    ) -> None:
        self._path = Path(path)
        self._on_text = on_text
        self._task: asyncio.Task[None] | None = None
        self._last_text: str | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        await self._deliver()
        self._task = asyncio.create_task(self._watch())
        logger.info("Watcher started for %s", self._path)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Watcher stopped for %s", self._path)

    async def _watch(self) -> None:
        async for changes in awatch(self._path):
            if any(change != Change.deleted for change, _ in changes):
                await self._deliver()

    async def _deliver(self) -> None:
        try:
            text = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.debug("Transcript %s does not exist yet", self._path)
            return
        if text == self._last_text:
            return
        self._last_text = text
        try:
            await self._on_text(text)
        except Exception:
            logger.exception("Error in watcher callback")
