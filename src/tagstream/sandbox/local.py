"""Sandbox rooted at a directory on the local machine."""

import asyncio
import codecs
import contextlib
import logging
import os
import shutil
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Literal, overload

from tagstream.core.errors import SandboxPathError
from tagstream.core.ports.sandbox import DirEntry, TerminalSize

logger = logging.getLogger(__name__)

_READ_SIZE = 4096


class LocalFileSystem:
    """Implements the ``SandboxFileSystem`` protocol on top of a root directory.

    Sandbox paths are relative to the root; a leading ``/`` means the root itself.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def resolve(self, path: str) -> Path:
        candidate = (self.root / path.lstrip("/")).resolve()
        if candidate != self.root and not candidate.is_relative_to(self.root):
            raise SandboxPathError(f"Path escapes the sandbox: {path}")
        return candidate

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        target = self.resolve(path)
        await asyncio.to_thread(target.mkdir, parents=recursive, exist_ok=recursive)

    async def write_file(self, path: str, content: str) -> None:
        target = self.resolve(path)
        await asyncio.to_thread(target.write_text, content, encoding="utf-8")

    async def read_file(self, path: str) -> str:
        target = self.resolve(path)
        return await asyncio.to_thread(target.read_text, encoding="utf-8")

    async def rm(self, path: str, recursive: bool = False) -> None:
        target = self.resolve(path)
        if target == self.root:
            raise SandboxPathError("Refusing to remove the sandbox root")
        if target.is_dir() and not target.is_symlink():
            if recursive:
                await asyncio.to_thread(shutil.rmtree, target)
            else:
                await asyncio.to_thread(target.rmdir)
        else:
            await asyncio.to_thread(target.unlink)

    @overload
    async def readdir(self, path: str, with_types: Literal[False] = False) -> list[str]: ...

    @overload
    async def readdir(self, path: str, with_types: Literal[True]) -> list[DirEntry]: ...

    async def readdir(self, path: str, with_types: bool = False) -> list[DirEntry] | list[str]:
        target = self.resolve(path)
        children = sorted(await asyncio.to_thread(lambda: list(target.iterdir())))
        if with_types:
            return [DirEntry(name=child.name, is_directory=child.is_dir()) for child in children]
        return [child.name for child in children]


class LocalProcess:
    def __init__(self, process: asyncio.subprocess.Process, terminal: TerminalSize | None = None) -> None:
        self._process = process
        self.terminal = terminal

    @property
    def pid(self) -> int:
        return self._process.pid

    async def write(self, data: str) -> None:
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            raise BrokenPipeError("Process input is closed")
        stdin.write(data.encode("utf-8"))
        await stdin.drain()

    async def output(self) -> AsyncIterator[str]:
        stdout = self._process.stdout
        if stdout is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stdout.read(_READ_SIZE)
            if not data:
                tail = decoder.decode(b"", final=True)
                if tail:
                    yield tail
                return
            text = decoder.decode(data)
            if text:
                yield text

    async def wait(self) -> int:
        return await self._process.wait()

    def resize(self, cols: int, rows: int) -> None:
        # pipes have no window size; only remembered for the next spawn
        self.terminal = TerminalSize(cols=cols, rows=rows)

    async def kill(self) -> None:
        if self._process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            self._process.kill()
        await self._process.wait()


class LocalProcessHost:
    """Spawns processes inside the sandbox root with stderr folded into stdout."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    async def spawn(
        self,
        program: str,
        args: list[str],
        terminal: TerminalSize | None = None,
    ) -> LocalProcess:
        env = dict(os.environ)
        if terminal is not None:
            env["COLUMNS"] = str(terminal.cols)
            env["LINES"] = str(terminal.rows)
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=self.root,
            env=env,
        )
        logger.debug("Spawned %s %s (pid %s)", program, " ".join(args), process.pid)
        return LocalProcess(process, terminal)
