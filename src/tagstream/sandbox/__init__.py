from tagstream.sandbox.local import LocalFileSystem, LocalProcess, LocalProcessHost
from tagstream.sandbox.memory import InMemoryFileSystem, ScriptedProcess, ScriptedProcessHost, SpawnRecord

__all__ = [
    "InMemoryFileSystem",
    "LocalFileSystem",
    "LocalProcess",
    "LocalProcessHost",
    "ScriptedProcess",
    "ScriptedProcessHost",
    "SpawnRecord",
]
