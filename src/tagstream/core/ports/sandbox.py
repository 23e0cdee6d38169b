from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Literal, Protocol, overload


@dataclass(frozen=True)
class DirEntry:
    name: str
    is_directory: bool


@dataclass(frozen=True)
class TerminalSize:
    cols: int
    rows: int


class SandboxFileSystem(Protocol):
    async def mkdir(self, path: str, recursive: bool = False) -> None: ...

    async def write_file(self, path: str, content: str) -> None: ...

    async def read_file(self, path: str) -> str: ...

    async def rm(self, path: str, recursive: bool = False) -> None: ...

    @overload
    async def readdir(self, path: str, with_types: Literal[False] = False) -> list[str]: ...

    @overload
    async def readdir(self, path: str, with_types: Literal[True]) -> list[DirEntry]: ...

    async def readdir(self, path: str, with_types: bool = False) -> list[DirEntry] | list[str]: ...


class SandboxProcess(Protocol):
    async def write(self, data: str) -> None: ...

    def output(self) -> AsyncIterator[str]: ...

    async def wait(self) -> int: ...

    def resize(self, cols: int, rows: int) -> None: ...

    async def kill(self) -> None: ...


class ProcessHost(Protocol):
    async def spawn(
        self,
        program: str,
        args: list[str],
        terminal: TerminalSize | None = None,
    ) -> SandboxProcess: ...
