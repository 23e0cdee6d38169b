import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from tagstream.core.ports.sandbox import SandboxFileSystem

logger = logging.getLogger(__name__)

DEFAULT_IGNORES: tuple[str, ...] = (
    "node_modules",
    "dist",
    "build",
    "package-lock.json",
    ".DS_Store",
    "*.log",
    ".env",
)

_GLOB_SPECIAL_RE = re.compile(r"[.+?^${}()|[\]\\]")


@dataclass(frozen=True)
class SnapshotDiff:
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


def glob_to_regex(glob: str) -> re.Pattern[str]:
    """Compile an ignore glob; a match also covers everything below it."""
    pattern = _GLOB_SPECIAL_RE.sub(lambda m: "\\" + m.group(0), glob.strip())
    pattern = pattern.replace("**", "\0").replace("*", "[^/]*").replace("\0", ".*")
    return re.compile(f"^{pattern}(/.*)?$")


async def load_ignore_rules(fs: SandboxFileSystem, extra: Iterable[str] = ()) -> list[re.Pattern[str]]:
    """Default ignores plus the non-comment lines of ``/.gitignore`` when it exists."""
    globs = [*DEFAULT_IGNORES, *extra]
    try:
        content = await fs.read_file("/.gitignore")
    except (FileNotFoundError, OSError):
        logger.debug("No .gitignore in sandbox; using default ignore rules")
    else:
        globs.extend(line.strip() for line in content.splitlines() if line.strip() and not line.startswith("#"))
    return [glob_to_regex(glob) for glob in globs]


def is_ignored(path: str, rules: Iterable[re.Pattern[str]]) -> bool:
    normalized = path.lstrip("/")
    return any(rule.match(normalized) for rule in rules)


async def _list_files(fs: SandboxFileSystem, directory: str, rules: list[re.Pattern[str]]) -> list[str]:
    files: list[str] = []
    entries = await fs.readdir(directory, with_types=True)
    for entry in entries:
        full_path = f"{directory.rstrip('/')}/{entry.name}"
        if is_ignored(full_path, rules):
            continue
        if entry.is_directory:
            files.extend(await _list_files(fs, full_path, rules))
        else:
            files.append(full_path)
    return files


async def snapshot_paths(fs: SandboxFileSystem, rules: Iterable[re.Pattern[str]] | None = None) -> set[str]:
    """Every non-ignored file path in the sandbox, without a leading slash."""
    active_rules = list(rules) if rules is not None else await load_ignore_rules(fs)
    return {path.lstrip("/") for path in await _list_files(fs, "/", active_rules)}


def compute_diff(before: set[str], after: set[str]) -> SnapshotDiff:
    return SnapshotDiff(created=sorted(after - before), deleted=sorted(before - after))
