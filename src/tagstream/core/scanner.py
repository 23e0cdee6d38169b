import logging
import re
from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_PATTERN = r"error|failed|exception|unhandled|could not be resolved"

ANSI_ESCAPE_RE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
_LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


def compile_failure_pattern(pattern: str = DEFAULT_FAILURE_PATTERN) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise ValueError(f"Invalid failure pattern {pattern!r}: {exc}") from exc


class OutputScanner:
    """Line-buffers streamed process output and reports the first failure-looking line.

    Chunks may split lines (and ``\\r\\n`` pairs) anywhere. Each completed line is
    stripped of ANSI escapes before matching. Only the first match per scanner
    reaches ``on_detection``; one scanner belongs to one process lifetime.
    """

    def __init__(
        self,
        on_detection: Callable[[str], None],
        pattern: re.Pattern[str] | str = DEFAULT_FAILURE_PATTERN,
    ) -> None:
        self._on_detection = on_detection
        self._pattern = compile_failure_pattern(pattern) if isinstance(pattern, str) else pattern
        self._pending = ""
        self._detected: str | None = None
        self._closed = False

    @property
    def detected(self) -> str | None:
        return self._detected

    def feed(self, chunk: str) -> None:
        if self._closed or not chunk:
            return
        data = self._pending + chunk
        # a trailing "\r" may be the first half of "\r\n"
        hold_cr = data.endswith("\r")
        if hold_cr:
            data = data[:-1]
        lines = _LINE_BREAK_RE.split(data)
        self._pending = lines.pop() + ("\r" if hold_cr else "")
        for line in lines:
            self._check(line)

    def close(self) -> None:
        """Flush the trailing partial line; called once the process exits."""
        if self._closed:
            return
        self._closed = True
        pending, self._pending = self._pending.rstrip("\r"), ""
        if pending:
            self._check(pending)

    def _check(self, line: str) -> None:
        if self._detected is not None:
            return
        cleaned = strip_ansi(line)
        if self._pattern.search(cleaned):
            self._detected = cleaned
            logger.info("Failure signature detected in process output: %s", cleaned)
            self._on_detection(cleaned)
