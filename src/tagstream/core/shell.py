import asyncio
import contextlib
import logging
from collections.abc import Callable

from tagstream.core.errors import ShellUnavailableError
from tagstream.core.ports.sandbox import ProcessHost, SandboxProcess, TerminalSize

logger = logging.getLogger(__name__)

OutputSink = Callable[[str], None]


def _discard(_data: str) -> None:
    return None


class InteractiveShell:
    """The session's long-lived interactive shell.

    Foreground commands are typed into it; its output is piped to ``sink`` for as
    long as it runs. Constructed once per session and handed to whoever needs it.
    """

    def __init__(
        self,
        host: ProcessHost,
        *,
        program: str = "sh",
        args: list[str] | None = None,
        sink: OutputSink | None = None,
        terminal: TerminalSize | None = None,
        line_terminator: str = "\n",
    ) -> None:
        self._host = host
        self.program = program
        self.args = args or []
        self._sink = sink or _discard
        self.terminal = terminal or TerminalSize(cols=80, rows=24)
        self.line_terminator = line_terminator
        self._process: SandboxProcess | None = None
        self._pump: asyncio.Task[None] | None = None
        self.exit_code: int | None = None

    @property
    def is_running(self) -> bool:
        return self._process is not None

    async def launch(self) -> None:
        if self._process is not None:
            await self.close()

        self._sink(f"\r\n\x1b[1;34mInteractive shell ({self.program}) ready.\x1b[0m\r\n")
        process = await self._host.spawn(self.program, self.args, terminal=self.terminal)
        self._process = process
        self.exit_code = None
        self._pump = asyncio.create_task(self._follow(process))
        logger.info("Interactive shell %s started", self.program)

    async def send(self, command: str) -> None:
        """Type ``command`` into the shell as if the user pressed enter."""
        if self._process is None:
            raise ShellUnavailableError("Interactive shell is not available; cannot run foreground command.")
        await self._process.write(f"{command}{self.line_terminator}")

    async def write_input(self, data: str) -> None:
        """Forward raw user keystrokes."""
        if self._process is None:
            raise ShellUnavailableError("Interactive shell is not available.")
        await self._process.write(data)

    def resize(self, cols: int, rows: int) -> None:
        self.terminal = TerminalSize(cols=cols, rows=rows)
        if self._process is not None:
            self._process.resize(cols, rows)

    async def exit(self) -> int | None:
        """Ask the shell to exit after the commands already typed, then wait for it."""
        pump = self._pump
        if self._process is None or pump is None:
            return self.exit_code
        await self.send("exit")
        await pump
        return self.exit_code

    async def close(self) -> None:
        process, pump = self._process, self._pump
        self._process = None
        self._pump = None
        if process is not None:
            await process.kill()
        if pump is not None:
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump

    async def _follow(self, process: SandboxProcess) -> None:
        try:
            async for chunk in process.output():
                self._sink(chunk)
        except Exception:
            logger.exception("Lost the output of interactive shell %s", self.program)
            await process.kill()
        exit_code = await process.wait()
        self._sink(f"\r\n\x1b[1;31mShell exited with code: {exit_code}\x1b[0m\r\n")
        logger.info("Interactive shell exited with code %s", exit_code)
        if self._process is process:
            self._process = None
            self._pump = None
            self.exit_code = exit_code
