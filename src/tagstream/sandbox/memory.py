import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from typing import Literal, overload

from tagstream.core.ports.sandbox import DirEntry, TerminalSize

KILLED_EXIT_CODE = 137


def _normalize(path: str) -> str:
    return "/".join(part for part in path.split("/") if part)


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


class InMemoryFileSystem:
    """Dict-backed ``SandboxFileSystem`` for tests and dry runs."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files: dict[str, str] = {}
        self.directories: set[str] = {""}
        for path, content in (files or {}).items():
            self._ensure_dirs(_parent(_normalize(path)))
            self.files[_normalize(path)] = content

    def _ensure_dirs(self, path: str) -> None:
        parts = path.split("/") if path else []
        for index in range(len(parts)):
            self.directories.add("/".join(parts[: index + 1]))

    def _children(self, path: str) -> list[str]:
        prefix = f"{path}/" if path else ""
        names = {
            entry[len(prefix) :].split("/", 1)[0]
            for entry in (*self.files, *self.directories)
            if entry and entry.startswith(prefix) and entry != path
        }
        return sorted(names)

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        target = _normalize(path)
        if target in self.files:
            raise FileExistsError(f"EEXIST: file already exists, mkdir '{path}'")
        if not recursive:
            if target in self.directories:
                raise FileExistsError(f"EEXIST: file already exists, mkdir '{path}'")
            if _parent(target) not in self.directories:
                raise FileNotFoundError(f"ENOENT: no such file or directory, mkdir '{path}'")
        self._ensure_dirs(target)

    async def write_file(self, path: str, content: str) -> None:
        target = _normalize(path)
        if _parent(target) not in self.directories:
            raise FileNotFoundError(f"ENOENT: no such file or directory, open '{path}'")
        if target in self.directories:
            raise IsADirectoryError(f"EISDIR: illegal operation on a directory, open '{path}'")
        self.files[target] = content

    async def read_file(self, path: str) -> str:
        target = _normalize(path)
        if target not in self.files:
            raise FileNotFoundError(f"ENOENT: no such file or directory, open '{path}'")
        return self.files[target]

    async def rm(self, path: str, recursive: bool = False) -> None:
        target = _normalize(path)
        if target in self.files:
            del self.files[target]
            return
        if not target or target not in self.directories:
            raise FileNotFoundError(f"ENOENT: no such file or directory, rm '{path}'")
        if self._children(target) and not recursive:
            raise OSError(f"ENOTEMPTY: directory not empty, rm '{path}'")
        prefix = f"{target}/"
        self.files = {p: c for p, c in self.files.items() if not p.startswith(prefix)}
        self.directories = {d for d in self.directories if d != target and not d.startswith(prefix)}

    @overload
    async def readdir(self, path: str, with_types: Literal[False] = False) -> list[str]: ...

    @overload
    async def readdir(self, path: str, with_types: Literal[True]) -> list[DirEntry]: ...

    async def readdir(self, path: str, with_types: bool = False) -> list[DirEntry] | list[str]:
        target = _normalize(path)
        if target not in self.directories:
            raise FileNotFoundError(f"ENOENT: no such file or directory, scandir '{path}'")
        names = self._children(target)
        if with_types:
            prefix = f"{target}/" if target else ""
            return [DirEntry(name=name, is_directory=f"{prefix}{name}" in self.directories) for name in names]
        return names


class ScriptedProcess:
    """A fake process that replays ``chunks`` and exits with ``exit_code``.

    With ``stay_open`` it keeps running after the scripted output until
    :meth:`exit`, :meth:`kill` or a written ``exit`` line, like an interactive
    shell. With ``echo`` every write is fed back to the output.
    """

    def __init__(
        self,
        chunks: Iterable[str] = (),
        exit_code: int = 0,
        *,
        stay_open: bool = False,
        echo: bool = False,
    ) -> None:
        self.exit_code = exit_code
        self.echo = echo
        self.stay_open = stay_open
        self.written: list[str] = []
        self.terminal: TerminalSize | None = None
        self.killed = False
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._done = asyncio.Event()
        self._closed = False
        for chunk in chunks:
            self._queue.put_nowait(chunk)
        if not stay_open:
            self.exit(exit_code)

    @property
    def running(self) -> bool:
        return not self._closed

    def emit(self, chunk: str) -> None:
        if not self._closed:
            self._queue.put_nowait(chunk)

    def exit(self, exit_code: int | None = None) -> None:
        if self._closed:
            return
        if exit_code is not None:
            self.exit_code = exit_code
        self._closed = True
        self._queue.put_nowait(None)
        self._done.set()

    async def write(self, data: str) -> None:
        if self._closed:
            raise BrokenPipeError("Process input is closed")
        self.written.append(data)
        if self.echo:
            self.emit(data)
        if self.stay_open and data.strip() == "exit":
            self.exit(0)

    async def output(self) -> AsyncIterator[str]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    async def wait(self) -> int:
        await self._done.wait()
        return self.exit_code

    def resize(self, cols: int, rows: int) -> None:
        self.terminal = TerminalSize(cols=cols, rows=rows)

    async def kill(self) -> None:
        if not self._closed:
            self.killed = True
            self.exit(KILLED_EXIT_CODE)


@dataclass(frozen=True)
class SpawnRecord:
    program: str
    args: list[str]
    terminal: TerminalSize | None
    process: ScriptedProcess


ProcessFactory = Callable[[str, list[str]], ScriptedProcess]


class ScriptedProcessHost:
    """``ProcessHost`` whose processes come from ``factory``; exceptions it raises surface from spawn."""

    def __init__(self, factory: ProcessFactory | None = None) -> None:
        self._factory = factory or (lambda program, args: ScriptedProcess())
        self.spawned: list[SpawnRecord] = []

    async def spawn(
        self,
        program: str,
        args: list[str],
        terminal: TerminalSize | None = None,
    ) -> ScriptedProcess:
        process = self._factory(program, list(args))
        process.terminal = terminal
        self.spawned.append(SpawnRecord(program=program, args=list(args), terminal=terminal, process=process))
        return process
