"""Fixtures for integration tests against the local machine and a PostgreSQL container."""

import asyncio
import os
import shutil
import warnings
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from testcontainers.core.container import DockerContainer
from testcontainers.core.waiting_utils import wait_for_logs

from tagstream.sandbox.local import LocalFileSystem, LocalProcessHost
from tagstream.storage.sql import SqlOperationMirror

TEST_DATABASE_URL_ENV = "TAGSTREAM_TEST_DATABASE_URL"
POSTGRES_IMAGE = "postgres:16-alpine"


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def local_fs(workspace: Path) -> LocalFileSystem:
    return LocalFileSystem(workspace)


@pytest.fixture
def local_host(workspace: Path) -> LocalProcessHost:
    if shutil.which("sh") is None:
        pytest.skip("sh is not available")
    return LocalProcessHost(workspace)


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, None, None]:
    """Async connection URL for a disposable database.

    ``TAGSTREAM_TEST_DATABASE_URL`` points the tests at an existing server;
    otherwise a PostgreSQL container is started once per session.
    """
    override = os.environ.get(TEST_DATABASE_URL_ENV)
    if override:
        yield override
        return
    container = (
        DockerContainer(POSTGRES_IMAGE)
        .with_exposed_ports(5432)
        .with_env("POSTGRES_PASSWORD", "postgres")
    )
    container.start()
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DeprecationWarning)
            wait_for_logs(container, "database system is ready to accept connections", timeout=60)
        host = container.get_container_host_ip()
        port = container.get_exposed_port(5432)
        yield f"postgresql+asyncpg://postgres:postgres@{host}:{port}/postgres"
    finally:
        container.stop()


async def _wait_until_connectable(engine: AsyncEngine, attempts: int = 30) -> None:
    # postgres restarts once after initdb; the first ready log can precede it
    for attempt in range(attempts):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return
        except (OSError, DBAPIError):
            if attempt == attempts - 1:
                raise
            await asyncio.sleep(0.5)


@pytest_asyncio.fixture
async def database(test_db_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Per-test engine so each event loop gets its own connection pool."""
    engine = create_async_engine(test_db_url, future=True)
    await _wait_until_connectable(engine)
    yield engine
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE IF EXISTS project_files"))
    await engine.dispose()


@pytest_asyncio.fixture
async def sql_mirror(database: AsyncEngine) -> AsyncGenerator[SqlOperationMirror, None]:
    instance = SqlOperationMirror(database)
    await instance.ensure_ready()
    yield instance
