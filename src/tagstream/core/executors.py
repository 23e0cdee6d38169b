import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from tagstream.core.errors import InvalidInstructionError
from tagstream.core.ports.sandbox import ProcessHost, SandboxFileSystem, SandboxProcess
from tagstream.core.scanner import DEFAULT_FAILURE_PATTERN, OutputScanner, compile_failure_pattern
from tagstream.core.shell import InteractiveShell, OutputSink
from tagstream.models import CommandOpNode, FileAction, FileOpNode

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class ProcessOutcome:
    exit_code: int
    output: str


def _parent_dir(path: str) -> str:
    return path[: path.rfind("/")] if "/" in path else ""


def validate_file_instruction(instruction: FileOpNode) -> None:
    if not instruction.path or not instruction.action:
        raise InvalidInstructionError("Invalid instruction: missing path or action.")


async def execute_file_instruction(instruction: FileOpNode, fs: SandboxFileSystem) -> ExecutionResult:
    """Apply a create/update/delete to the sandbox filesystem."""
    path, action = instruction.path, instruction.action
    try:
        validate_file_instruction(instruction)
        if action in (FileAction.CREATE, FileAction.UPDATE):
            directory = _parent_dir(path)
            if directory:
                await fs.mkdir(directory, recursive=True)
            await fs.write_file(path, instruction.content)
        elif action is FileAction.DELETE:
            await fs.rm(path, recursive=True)
    except Exception as exc:
        error = str(exc) or type(exc).__name__
        logger.error("File executor failed for %s on %s: %s", getattr(action, "value", action), path, error)
        return ExecutionResult(success=False, error=error)
    return ExecutionResult(success=True)


async def handle_process(
    process: SandboxProcess,
    *,
    sink: OutputSink | None = None,
    scanner: OutputScanner | None = None,
) -> ProcessOutcome:
    """Pipe a process's output to ``sink`` and ``scanner`` until it exits."""
    collected: list[str] = []
    try:
        async for chunk in process.output():
            if sink is not None:
                sink(chunk)
            collected.append(chunk)
            if scanner is not None:
                scanner.feed(chunk)
    finally:
        if scanner is not None:
            scanner.close()
    exit_code = await process.wait()
    return ProcessOutcome(exit_code=exit_code, output="".join(collected))


class CommandExecutor:
    """Runs ``<terminal>`` instructions.

    Foreground commands go into the shared interactive shell. Background
    commands are spawned on their own and followed by a detached task so the
    queue never waits for them.
    """

    def __init__(
        self,
        host: ProcessHost,
        shell: InteractiveShell,
        *,
        sink: OutputSink | None = None,
        on_detection: Callable[[str], None] | None = None,
        failure_pattern: re.Pattern[str] | str = DEFAULT_FAILURE_PATTERN,
    ) -> None:
        self._host = host
        self.shell = shell
        self._sink = sink
        self._on_detection = on_detection
        self._failure_pattern = (
            compile_failure_pattern(failure_pattern) if isinstance(failure_pattern, str) else failure_pattern
        )
        self.background_tasks: set[asyncio.Task[ProcessOutcome]] = set()
        self._background_processes: dict[asyncio.Task[ProcessOutcome], SandboxProcess] = {}

    async def execute(self, instruction: CommandOpNode) -> ExecutionResult:
        try:
            if not instruction.command.strip():
                return ExecutionResult(success=True)
            if instruction.background:
                program, *args = _WHITESPACE_RE.split(instruction.command.strip())
                await self.run_background(program, args)
            else:
                await self.shell.send(instruction.command)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.error("Command executor failed for %r: %s", instruction.command, error)
            return ExecutionResult(success=False, error=error)
        return ExecutionResult(success=True)

    async def run_background(self, program: str, args: list[str]) -> asyncio.Task[ProcessOutcome]:
        """Spawn ``program`` and follow it in a detached task."""
        self._write(f"\r\n\x1b[1;32m$ \x1b[0m{' '.join([program, *args])}\r\n")
        process = await self._host.spawn(program, args)
        task = asyncio.create_task(self._follow(program, process))
        self.background_tasks.add(task)
        self._background_processes[task] = process
        task.add_done_callback(self._forget)
        return task

    async def wait_background(self) -> list[ProcessOutcome]:
        if not self.background_tasks:
            return []
        return list(await asyncio.gather(*self.background_tasks))

    async def stop_background(self) -> None:
        """Kill every background process still running and wait for its follower."""
        tasks = list(self.background_tasks)
        for task in tasks:
            process = self._background_processes.get(task)
            if process is not None:
                await process.kill()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, task: asyncio.Task[ProcessOutcome]) -> None:
        self.background_tasks.discard(task)
        self._background_processes.pop(task, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background follower failed", exc_info=task.exception())

    async def _follow(self, program: str, process: SandboxProcess) -> ProcessOutcome:
        scanner = OutputScanner(self._detected, self._failure_pattern)
        try:
            outcome = await handle_process(process, sink=self._sink, scanner=scanner)
        except Exception:
            logger.exception("Lost the output of background process %s", program)
            await process.kill()
            outcome = ProcessOutcome(exit_code=await process.wait(), output="")
        self._write(f"\r\n\x1b[1;33mBackground process exited with code: {outcome.exit_code}\x1b[0m\r\n")
        logger.info("Background process %s exited with code %s", program, outcome.exit_code)
        return outcome

    def _detected(self, line: str) -> None:
        if self._on_detection is not None:
            self._on_detection(line)

    def _write(self, data: str) -> None:
        if self._sink is not None:
            self._sink(data)
