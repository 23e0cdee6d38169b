class TagstreamError(Exception):
    """Base class for errors raised by tagstream."""


class SandboxPathError(TagstreamError, ValueError):
    """A path resolved outside of the sandbox root."""


class ShellUnavailableError(TagstreamError):
    """No interactive shell is running for the session."""


class InvalidInstructionError(TagstreamError):
    """A ready instruction is missing fields required to execute it."""
