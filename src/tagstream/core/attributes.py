import re

_ATTRIBUTE_RE = re.compile(r"""([A-Za-z_][\w-]*)\s*=\s*(["'])(.*?)\2""", re.DOTALL)
_TAG_NAME_RE = re.compile(r"\s*(/?[A-Za-z][\w-]*)")

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def parse_attributes(tag_text: str) -> dict[str, str]:
    """Extract ``key="value"`` pairs from the inner text of a tag.

    Single and double quotes are accepted; a later duplicate key wins.
    """
    return {match.group(1): match.group(3) for match in _ATTRIBUTE_RE.finditer(tag_text)}


def tag_name(tag_text: str) -> str | None:
    """Return the leading tag name (``file``, ``/file``, ``terminal``...) or None."""
    match = _TAG_NAME_RE.match(tag_text)
    if match is None:
        return None
    return match.group(1).lower()


def is_self_closing(tag_text: str) -> bool:
    return tag_text.rstrip().endswith("/")


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY
