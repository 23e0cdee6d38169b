"""Integration tests for the local filesystem and process host."""

from pathlib import Path

import pytest

from tagstream.core.errors import SandboxPathError
from tagstream.core.executors import handle_process
from tagstream.core.ports.sandbox import DirEntry, TerminalSize
from tagstream.sandbox.local import LocalFileSystem, LocalProcessHost


class TestLocalFileSystem:
    @pytest.mark.asyncio
    async def test_write_read_and_list(self, local_fs: LocalFileSystem, workspace: Path) -> None:
        await local_fs.mkdir("src/components", recursive=True)
        await local_fs.write_file("src/components/App.tsx", "export {};\n")
        await local_fs.write_file("/README.md", "# demo\n")

        assert (workspace / "src/components/App.tsx").read_text(encoding="utf-8") == "export {};\n"
        assert await local_fs.read_file("README.md") == "# demo\n"
        assert await local_fs.readdir("/") == ["README.md", "src"]
        entries = await local_fs.readdir("src", with_types=True)
        assert entries == [DirEntry(name="components", is_directory=True)]

    @pytest.mark.asyncio
    async def test_recursive_rm_removes_directory(self, local_fs: LocalFileSystem, workspace: Path) -> None:
        await local_fs.mkdir("build/out", recursive=True)
        await local_fs.write_file("build/out/a.js", "")
        await local_fs.rm("build", recursive=True)
        assert not (workspace / "build").exists()

    @pytest.mark.asyncio
    async def test_missing_file_raises_file_not_found(self, local_fs: LocalFileSystem) -> None:
        with pytest.raises(FileNotFoundError):
            await local_fs.read_file("nope.txt")
        with pytest.raises(FileNotFoundError):
            await local_fs.rm("nope.txt")

    @pytest.mark.asyncio
    async def test_write_without_parent_fails(self, local_fs: LocalFileSystem) -> None:
        with pytest.raises(FileNotFoundError):
            await local_fs.write_file("missing/dir/a.txt", "x")

    @pytest.mark.asyncio
    async def test_paths_escaping_the_root_are_rejected(self, local_fs: LocalFileSystem) -> None:
        with pytest.raises(SandboxPathError):
            await local_fs.write_file("../outside.txt", "x")
        with pytest.raises(SandboxPathError):
            await local_fs.read_file("src/../../etc/passwd")

    @pytest.mark.asyncio
    async def test_root_cannot_be_removed(self, local_fs: LocalFileSystem) -> None:
        with pytest.raises(SandboxPathError):
            await local_fs.rm("/", recursive=True)


class TestLocalProcessHost:
    @pytest.mark.asyncio
    async def test_output_and_exit_code(self, local_host: LocalProcessHost) -> None:
        process = await local_host.spawn("sh", ["-c", "echo out; echo err >&2; exit 3"])
        outcome = await handle_process(process)
        assert outcome.exit_code == 3
        assert "out\n" in outcome.output
        assert "err\n" in outcome.output

    @pytest.mark.asyncio
    async def test_runs_inside_the_root(self, local_host: LocalProcessHost, workspace: Path) -> None:
        process = await local_host.spawn("pwd", [])
        outcome = await handle_process(process)
        assert Path(outcome.output.strip()).resolve() == workspace.resolve()

    @pytest.mark.asyncio
    async def test_terminal_size_is_exported(self, local_host: LocalProcessHost) -> None:
        process = await local_host.spawn("sh", ["-c", 'echo "$COLUMNS x $LINES"'], terminal=TerminalSize(cols=120, rows=40))
        outcome = await handle_process(process)
        assert outcome.output.strip() == "120 x 40"

    @pytest.mark.asyncio
    async def test_stdin_is_forwarded(self, local_host: LocalProcessHost) -> None:
        process = await local_host.spawn("sh", [])
        await process.write("echo typed\n")
        await process.write("exit\n")
        outcome = await handle_process(process)
        assert outcome.output == "typed\n"
        assert outcome.exit_code == 0

    @pytest.mark.asyncio
    async def test_kill_stops_a_long_running_process(self, local_host: LocalProcessHost) -> None:
        process = await local_host.spawn("sleep", ["30"])
        await process.kill()
        assert await process.wait() != 0
