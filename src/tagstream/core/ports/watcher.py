from typing import Protocol


class StreamWatcherPort(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...
