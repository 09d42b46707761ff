"""Token expansion over raw text.

Expansion is a pure function of the text, a token pattern and a resolver.
Each non-overlapping match is replaced by the resolved value of its first
capture group; tokens that do not resolve are left exactly as written.
"""

import re
from typing import Callable
from xml.sax.saxutils import escape

from .options import DEFAULT_TOKEN_PATTERN

Resolver = Callable[[str], "str | None"]

# Quotes too, since values usually land inside attributes
_ESCAPE_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_value(value: str) -> str:
    """Markup-escape a value for safe insertion into raw XML.

    Example:
        >>> escape_value('a<b & "c"')
        'a&lt;b &amp; &quot;c&quot;'
    """
    return escape(value, _ESCAPE_ENTITIES)


def has_capture_group(pattern: re.Pattern[str]) -> bool:
    return pattern.groups >= 1


def expand_tokens(
    text: str,
    pattern: re.Pattern[str],
    resolver: Resolver,
    escape_values: bool = False,
) -> str:
    """Replace every token in ``text`` with its resolved value.

    Args:
        text: Text to scan
        pattern: Compiled token pattern; group 1 is the key
        resolver: Returns the value for a key, or None when there is none
        escape_values: Markup-escape resolved values before substituting

    Returns:
        The rewritten text. Text without tokens is returned unchanged, as is
        all text when the pattern has no capture group.

    Example:
        >>> expand_tokens("${a}-${b}", re.compile(r"\\$\\{(\\w+)\\}"), {"a": "1"}.get)
        '1-${b}'
    """
    if not text or not has_capture_group(pattern):
        return text

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if not key:
            return match.group(0)
        value = resolver(key)
        if value is None:
            return match.group(0)
        return escape_value(value) if escape_values else value

    return pattern.sub(_replace, text)


def resolve_tokens(text: str, lookup: Resolver, pattern: str | None = None) -> str:
    """Expand ``${key}`` tokens in a single setting value.

    Used for builder options that refer to application settings.
    """
    compiled = re.compile(pattern or DEFAULT_TOKEN_PATTERN)
    return expand_tokens(text, compiled, lookup)
