"""One workspace session: decoder, dispatch registry, queue, ledger, tree and shell."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from tagstream.core.decoder import DecodedNode, StreamDecoder
from tagstream.core.executors import CommandExecutor
from tagstream.core.filetree import FileTree, from_files
from tagstream.core.ledger import Detection, LedgerEvent, StatusLedger
from tagstream.core.ports.sandbox import ProcessHost, SandboxFileSystem, TerminalSize
from tagstream.core.ports.storage import OperationMirror
from tagstream.core.queue import ExecutionQueue
from tagstream.core.readiness import DispatchRegistry
from tagstream.core.scanner import DEFAULT_FAILURE_PATTERN
from tagstream.core.shell import InteractiveShell, OutputSink
from tagstream.core.snapshot import snapshot_paths
from tagstream.models import Instruction, OperationStatus, ProjectFile

logger = logging.getLogger(__name__)

SETUP_SCRIPT = "setup.sh"


@dataclass
class FeedResult:
    nodes: list[DecodedNode] = field(default_factory=list)
    dispatched: list[Instruction] = field(default_factory=list)


class Session:
    def __init__(
        self,
        *,
        fs: SandboxFileSystem,
        host: ProcessHost,
        scope_id: str = "default",
        mirror: OperationMirror | None = None,
        shell_program: str = "sh",
        terminal: TerminalSize | None = None,
        failure_pattern: str = DEFAULT_FAILURE_PATTERN,
        sink: OutputSink | None = None,
    ) -> None:
        self.fs = fs
        self.scope_id = scope_id
        self.mirror = mirror
        self._sink = sink
        self.ledger = StatusLedger()
        self.tree = FileTree()
        self.decoder = StreamDecoder()
        self.dispatch = DispatchRegistry()
        self.shell = InteractiveShell(host, program=shell_program, sink=self._write, terminal=terminal)
        self.commands = CommandExecutor(
            host,
            self.shell,
            sink=self._write,
            on_detection=self.ledger.add_detection,
            failure_pattern=failure_pattern,
        )
        self.queue = ExecutionQueue(
            fs=fs,
            commands=self.commands,
            ledger=self.ledger,
            tree=self.tree,
            mirror=mirror,
        )
        self._turn_id: str | None = None

    # -- decoding and dispatch ----------------------------------------------

    def begin_turn(self, turn_id: str) -> None:
        """Start a new request/response cycle.

        Ids dispatched earlier are forgotten and an execution error left over from
        the previous turn is dropped; it was reported with that turn.
        """
        if turn_id == self._turn_id:
            return
        logger.debug("Beginning turn %s", turn_id)
        self._turn_id = turn_id
        self.dispatch.clear()
        stale = self.ledger.take_execution_error()
        if stale is not None:
            logger.debug("Dropping execution error from the previous turn: %s", stale)
        self.decoder.reset()

    def parse(self, turn_id: str, text: str) -> list[DecodedNode]:
        self.begin_turn(turn_id)
        return self.decoder.parse(turn_id, text)

    def enqueue(self, scope_id: str, nodes: Iterable[DecodedNode]) -> list[Instruction]:
        """Queue every ready node not dispatched before; returns what was queued."""
        ready = self.dispatch.take_ready(list(nodes))
        self.queue.enqueue(scope_id, ready)
        return ready

    def feed(self, turn_id: str, text: str) -> FeedResult:
        nodes = self.parse(turn_id, text)
        return FeedResult(nodes=nodes, dispatched=self.enqueue(self.scope_id, nodes))

    def finish_turn(self, turn_id: str) -> FeedResult:
        self.begin_turn(turn_id)
        nodes = self.decoder.finish(turn_id)
        return FeedResult(nodes=nodes, dispatched=self.enqueue(self.scope_id, nodes))

    # -- observation --------------------------------------------------------

    def get_status(self, node_id: str) -> OperationStatus:
        return self.ledger.get(node_id)

    async def snapshot(self) -> set[str]:
        """Paths of every sandbox file not excluded by the ignore rules."""
        return await snapshot_paths(self.fs)

    def on_detection(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Call ``callback`` with the offending log line of every detection."""

        def _listener(detection: Detection) -> None:
            callback(detection.log)

        return self.ledger.subscribe(LedgerEvent.DETECTION, _listener)

    # -- lifecycle ----------------------------------------------------------

    async def hydrate(self, files: list[ProjectFile]) -> None:
        """Write the initial project into the sandbox, then start the setup script or a shell."""
        await asyncio.gather(*(self._write_initial(file) for file in files))
        self.tree.nodes = from_files(files)

        top_level = [file for file in files if "/" not in file.path.strip("/")]
        candidates = top_level or files
        if candidates:
            self.tree.set_active(candidates[0].path, candidates[0].content)
        logger.info("Hydrated %d file(s) into the sandbox", len(files))

        if any(file.path.strip("/") == SETUP_SCRIPT for file in files):
            self.ledger.set_status(f"Running {SETUP_SCRIPT}...")
            await self.commands.run_background("sh", [SETUP_SCRIPT])
        else:
            await self.launch_shell()

    async def launch_shell(self) -> None:
        await self.shell.launch()

    async def join(self) -> None:
        await self.queue.join()

    async def close(self) -> None:
        await self.queue.join()
        await self.commands.stop_background()
        await self.shell.close()
        if self.mirror is not None:
            await self.mirror.dispose()

    async def _write_initial(self, file: ProjectFile) -> None:
        path = file.path.strip("/")
        if "/" in path:
            await self.fs.mkdir(path.rsplit("/", 1)[0], recursive=True)
        await self.fs.write_file(path, file.content)

    def _write(self, data: str) -> None:
        if self._sink is not None:
            self._sink(data)
