from tagstream.storage.engine import get_engine
from tagstream.storage.memory import InMemoryOperationMirror
from tagstream.storage.sql import SqlOperationMirror

__all__ = ["InMemoryOperationMirror", "SqlOperationMirror", "get_engine"]
