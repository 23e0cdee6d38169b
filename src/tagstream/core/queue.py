"""Serial execution of ready instructions with abort-on-first-failure."""

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass

from tagstream.core.executors import CommandExecutor, ExecutionResult, execute_file_instruction
from tagstream.core.filetree import FileTree
from tagstream.core.ledger import IDLE_STATUS, StatusLedger
from tagstream.core.ports.sandbox import SandboxFileSystem
from tagstream.core.ports.storage import OperationMirror
from tagstream.models import FileAction, FileOperation, FileOpNode, Instruction, OperationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueItem:
    instruction: Instruction
    scope: str


def describe(instruction: Instruction) -> str:
    if isinstance(instruction, FileOpNode):
        return f"{instruction.action.value} {instruction.path}"
    return instruction.command


class ExecutionQueue:
    """FIFO of instructions drained by at most one loop at a time.

    ``enqueue`` only appends and, when nothing is draining, schedules a drain on
    the running event loop. Items added while a drain is active are picked up by
    that same loop.
    """

    def __init__(
        self,
        *,
        fs: SandboxFileSystem,
        commands: CommandExecutor,
        ledger: StatusLedger,
        tree: FileTree,
        mirror: OperationMirror | None = None,
    ) -> None:
        self._fs = fs
        self._commands = commands
        self._ledger = ledger
        self._tree = tree
        self._mirror = mirror
        self._items: deque[QueueItem] = deque()
        self._processing = False
        self._drain_task: asyncio.Task[None] | None = None
        self._last_mirror: asyncio.Task[None] | None = None
        self._mirror_tasks: set[asyncio.Task[None]] = set()

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def pending(self) -> list[QueueItem]:
        return list(self._items)

    def enqueue(self, scope: str, instructions: Sequence[Instruction]) -> None:
        for instruction in instructions:
            self._items.append(QueueItem(instruction=instruction, scope=scope))
            self._ledger.mark(instruction.id, OperationStatus.PENDING)
        if instructions:
            logger.debug("Enqueued %d instruction(s) for %s", len(instructions), scope)
        self._schedule()

    def _schedule(self) -> None:
        if self._processing or not self._items:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self.process())

    async def process(self) -> None:
        """Drain the queue. A call made while another drain is active returns at once."""
        if self._processing or not self._items:
            return
        self._processing = True
        self._ledger.is_processing = True
        self._ledger.set_status("Executing instructions...")
        try:
            while self._items:
                item = self._items[0]
                succeeded = await self._run(item)
                if self._items and self._items[0] is item:
                    self._items.popleft()
                if not succeeded:
                    dropped = len(self._items)
                    self._items.clear()
                    if dropped:
                        logger.warning("Discarded %d queued instruction(s) after a failure", dropped)
                    break
        finally:
            self._ledger.clear_detections()
            self._processing = False
            self._ledger.is_processing = False
            self._ledger.set_status(IDLE_STATUS)

    async def join(self) -> None:
        """Wait for the active drain and any in-flight storage mirror writes."""
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task
        if self._mirror_tasks:
            await asyncio.gather(*self._mirror_tasks)

    async def _run(self, item: QueueItem) -> bool:
        instruction = item.instruction
        self._ledger.mark(instruction.id, OperationStatus.EXECUTING)
        self._ledger.set_status(f"executing: {describe(instruction)}")
        logger.info("Executing %s", describe(instruction))

        result = await self._dispatch(instruction)
        if not result.success:
            error = result.error or "Unknown execution error"
            self._ledger.mark(instruction.id, OperationStatus.ERROR)
            self._ledger.raise_execution_error(error)
            logger.warning("Instruction %s failed: %s", describe(instruction), error)
            return False

        if isinstance(instruction, FileOpNode):
            self._apply_to_tree(instruction)
            self._mirror_write(item.scope, instruction)
        self._ledger.mark(instruction.id, OperationStatus.COMPLETED)
        return True

    async def _dispatch(self, instruction: Instruction) -> ExecutionResult:
        if isinstance(instruction, FileOpNode):
            return await execute_file_instruction(instruction, self._fs)
        return await self._commands.execute(instruction)

    def _apply_to_tree(self, instruction: FileOpNode) -> None:
        if instruction.action is FileAction.CREATE:
            self._tree.create(instruction.path, instruction.content)
        elif instruction.action is FileAction.UPDATE:
            self._tree.update(instruction.path, instruction.content)
        else:
            self._tree.delete(instruction.path)
            return
        self._tree.set_active(instruction.path, instruction.content)

    def _mirror_write(self, scope: str, instruction: FileOpNode) -> None:
        mirror = self._mirror
        if mirror is None:
            return
        operation = FileOperation(
            type=instruction.action,
            path=instruction.path,
            content=None if instruction.action is FileAction.DELETE else instruction.content,
        )
        # chained so storage sees writes in execution order
        task = asyncio.create_task(self._save(mirror, scope, [operation], self._last_mirror))
        self._last_mirror = task
        self._mirror_tasks.add(task)
        task.add_done_callback(self._mirror_tasks.discard)

    async def _save(
        self,
        mirror: OperationMirror,
        scope: str,
        operations: list[FileOperation],
        previous: asyncio.Task[None] | None,
    ) -> None:
        if previous is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await previous
        try:
            await mirror.save_operations(scope, operations)
        except Exception:
            logger.exception("Failed to mirror %d operation(s) for %s", len(operations), scope)
            self._ledger.notify("Failed to sync files to storage.")
