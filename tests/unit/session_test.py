"""Tests for the session wiring the decoder to the execution pipeline."""

from __future__ import annotations

import pytest

from tagstream.core.followups import build_detection_prompt, build_execution_error_prompt
from tagstream.core.session import Session
from tagstream.models import OperationStatus, ProjectFile
from tagstream.sandbox.memory import InMemoryFileSystem, ScriptedProcess, ScriptedProcessHost
from tagstream.storage.memory import InMemoryOperationMirror
from tests.conftest import SHELL

STREAM = (
    "Creating the entry point.\n"
    '<file path="src/main.ts" action="create">console.log("hi");\n</file>\n'
    '<terminal command="npm install"/>\n'
)


class TestFeed:
    @pytest.mark.asyncio
    async def test_feed_executes_ready_instructions(
        self, session: Session, fs: InMemoryFileSystem, host: ScriptedProcessHost, mirror: InMemoryOperationMirror
    ) -> None:
        await session.launch_shell()

        result = session.feed("t1", STREAM)
        await session.join()

        assert len(result.dispatched) == 2
        assert all(session.get_status(node.id) is OperationStatus.COMPLETED for node in result.dispatched)
        assert fs.files["src/main.ts"] == 'console.log("hi");\n'
        assert host.spawned[0].process.written == ["npm install\n"]
        assert mirror.files["project-1"] == {"src/main.ts": 'console.log("hi");\n'}
        await session.close()

    @pytest.mark.asyncio
    async def test_growing_stream_dispatches_each_node_once(self, session: Session) -> None:
        await session.launch_shell()
        dispatched: list[str] = []
        for end in range(1, len(STREAM) + 1):
            dispatched.extend(node.id for node in session.feed("t1", STREAM[:end]).dispatched)
        dispatched.extend(node.id for node in session.finish_turn("t1").dispatched)
        await session.join()

        assert len(dispatched) == 2
        assert len(set(dispatched)) == 2
        await session.close()

    @pytest.mark.asyncio
    async def test_open_file_is_not_dispatched(self, session: Session) -> None:
        result = session.feed("t1", '<file path="a.txt" action="create">partial')
        assert result.dispatched == []
        assert len(result.nodes) == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_new_turn_forgets_dispatched_ids(self, session: Session, host: ScriptedProcessHost) -> None:
        await session.launch_shell()
        first = session.feed("t1", '<terminal command="ls"/>')
        second = session.feed("t2", '<terminal command="ls"/>')
        await session.join()

        assert len(first.dispatched) == 1
        assert len(second.dispatched) == 1
        assert first.dispatched[0].id != second.dispatched[0].id
        assert host.spawned[0].process.written == ["ls\n", "ls\n"]
        await session.close()

    @pytest.mark.asyncio
    async def test_execution_error_is_signalled_once(self, session: Session) -> None:
        result = session.feed("t1", '<terminal command="ls"/><terminal command="pwd"/>')
        await session.join()

        first, second = result.dispatched
        assert session.get_status(first.id) is OperationStatus.ERROR
        assert session.get_status(second.id) is OperationStatus.PENDING
        error = session.ledger.take_execution_error()
        assert error is not None
        assert build_execution_error_prompt(error).startswith("[SYSTEM_ERROR] An error occurred")
        await session.close()

    @pytest.mark.asyncio
    async def test_error_from_previous_turn_is_dropped(self, session: Session, fs: InMemoryFileSystem) -> None:
        session.feed("t1", '<file path="gone.txt" action="delete"/>')
        await session.join()
        assert session.ledger.execution_error is not None

        result = session.feed("t2", '<file path="new.txt" action="create">x</file>')
        await session.join()

        assert session.get_status(result.dispatched[0].id) is OperationStatus.COMPLETED
        assert fs.files["new.txt"] == "x"
        assert session.ledger.execution_error is None
        await session.close()


class TestDetections:
    @pytest.mark.asyncio
    async def test_on_detection_receives_log_line(self, mirror: InMemoryOperationMirror) -> None:
        def factory(program: str, args: list[str]) -> ScriptedProcess:
            if program == SHELL:
                return ScriptedProcess(stay_open=True)
            return ScriptedProcess(["\x1b[31m[vite] Failed to resolve import\x1b[0m\n"])

        session = Session(fs=InMemoryFileSystem(), host=ScriptedProcessHost(factory), mirror=mirror)
        logs: list[str] = []
        session.on_detection(logs.append)

        session.feed("t1", '<terminal command="npm run dev" bg="true"/>')
        await session.join()
        await session.commands.wait_background()

        assert logs == ["[vite] Failed to resolve import"]
        (detection,) = session.ledger.active_detections()
        assert "Error Log:\n[vite] Failed to resolve import" in build_detection_prompt(detection.log)
        await session.close()


class TestHydrate:
    @pytest.mark.asyncio
    async def test_writes_files_and_launches_shell(
        self, session: Session, fs: InMemoryFileSystem, host: ScriptedProcessHost
    ) -> None:
        files = [
            ProjectFile(path="src/index.ts", content="export {}"),
            ProjectFile(path="package.json", content="{}"),
        ]
        await session.hydrate(files)

        assert fs.files == {"src/index.ts": "export {}", "package.json": "{}"}
        assert session.tree.find("src/index.ts") is not None
        assert session.tree.active_file == "package.json"
        assert session.shell.is_running is True
        assert host.spawned[0].program == SHELL
        await session.close()

    @pytest.mark.asyncio
    async def test_setup_script_runs_in_background(self, session: Session, host: ScriptedProcessHost) -> None:
        await session.hydrate([ProjectFile(path="setup.sh", content="npm install")])
        await session.commands.wait_background()

        assert (host.spawned[0].program, host.spawned[0].args) == ("sh", ["setup.sh"])
        assert session.shell.is_running is False
        await session.close()


@pytest.mark.asyncio
async def test_close_stops_background_processes(mirror: InMemoryOperationMirror) -> None:
    process = ScriptedProcess(stay_open=True)
    session = Session(fs=InMemoryFileSystem(), host=ScriptedProcessHost(lambda p, a: process), mirror=mirror)
    await session.commands.run_background("vite", [])
    await session.close()
    assert process.killed is True


@pytest.mark.asyncio
async def test_snapshot_skips_ignored_paths(session: Session, fs: InMemoryFileSystem) -> None:
    await session.hydrate(
        [
            ProjectFile(path="src/app.ts", content=""),
            ProjectFile(path="node_modules/react/index.js", content=""),
            ProjectFile(path=".gitignore", content="# local\ncoverage\n"),
            ProjectFile(path="coverage/lcov.info", content=""),
        ]
    )
    assert await session.snapshot() == {"src/app.ts", ".gitignore"}
    await session.close()
