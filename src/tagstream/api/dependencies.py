from __future__ import annotations

from collections.abc import AsyncIterator

from tagstream.bootstrap import create_session
from tagstream.config import Settings
from tagstream.core.session import Session

_session: Session | None = None


async def get_session() -> AsyncIterator[Session]:
    """Yield the process-wide ``Session``, creating it and its shell lazily on first call."""
    global _session  # noqa: PLW0603
    if _session is None:
        _session = create_session(Settings.from_env())
        await _session.launch_shell()
    yield _session


async def shutdown_session() -> None:
    global _session  # noqa: PLW0603
    if _session is not None:
        await _session.close()
        _session = None
