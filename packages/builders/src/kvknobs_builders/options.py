"""Builder option parsing.

Builders receive their options as a flat string-keyed bag. Option names
are matched case-insensitively; option values keep their case. Everything
that can be parsed without touching a backing source ends up in an
immutable ``BuilderConfig``.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Mapping, Tuple, Type, TypeVar

from .exceptions import BuilderOptionError

E = TypeVar("E", bound=Enum)

MODE_TAG = "mode"
PREFIX_TAG = "prefix"
STRIP_PREFIX_TAG = "stripPrefix"
TOKEN_PATTERN_TAG = "tokenPattern"
ENABLED_TAG = "enabled"
OPTIONAL_TAG = "optional"
ESCAPE_EXPANDED_VALUES_TAG = "escapeExpandedValues"
CHAR_MAP_TAG = "charMap"

# ${name} where name starts with a word character
DEFAULT_TOKEN_PATTERN = r"\$\{(\w[\w\-$@#+,.:~]*)\}"


class KeyValueMode(Enum):
    """Substitution modes for key/value builders."""

    STRICT = "Strict"
    GREEDY = "Greedy"
    TOKEN = "Token"


class KeyValueEnabled(Enum):
    """Whether a builder runs, and whether its source errors are fatal."""

    ENABLED = "Enabled"
    OPTIONAL = "Optional"
    DISABLED = "Disabled"


# Older spellings of token mode
_MODE_ALIASES = {"expand": KeyValueMode.TOKEN, "rawtoken": KeyValueMode.TOKEN}


class BuilderOptions(Mapping[str, str]):
    """Read-only option bag with case-insensitive option names.

    Example:
        ```python
        options = BuilderOptions({"MODE": "Greedy"})
        options["mode"]
        # 'Greedy'
        ```
    """

    def __init__(self, options: Mapping[str, str] | None = None) -> None:
        self._options: dict[str, Tuple[str, str]] = {}
        for name, value in (options or {}).items():
            self._options[name.casefold()] = (name, value)

    def __getitem__(self, name: str) -> str:
        return self._options[name.casefold()][1]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.casefold() in self._options

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._options.values())

    def __len__(self) -> int:
        return len(self._options)

    def __repr__(self) -> str:
        return f"BuilderOptions({dict(self.items())!r})"


def parse_enum(enum_cls: Type[E], value: str, option: str) -> E:
    """Parse an enum member by value, ignoring case.

    Args:
        enum_cls: Enum to parse into
        value: Raw option value
        option: Option name, for the error message

    Returns:
        The matching enum member

    Raises:
        BuilderOptionError: If the value is not recognized
    """
    folded = value.strip().casefold()
    for member in enum_cls:
        if member.value.casefold() == folded or member.name.casefold() == folded:
            return member
    raise BuilderOptionError(
        f"Unrecognized value '{value}' for '{option}'. "
        f"Expected one of: {', '.join(m.value for m in enum_cls)}",
        context={"option": option, "value": value},
    )


def parse_mode(value: str) -> KeyValueMode:
    """Parse the ``mode`` option, accepting the Expand/RawToken aliases."""
    alias = _MODE_ALIASES.get(value.strip().casefold())
    if alias is not None:
        return alias
    return parse_enum(KeyValueMode, value, MODE_TAG)


def parse_bool(value: str, option: str) -> bool:
    """Parse a boolean option ('true' or 'false', any case)."""
    folded = value.strip().casefold()
    if folded == "true":
        return True
    if folded == "false":
        return False
    raise BuilderOptionError(
        f"Option '{option}' must be 'true' or 'false', got '{value}'",
        context={"option": option, "value": value},
    )


def parse_char_map(value: str) -> Tuple[Tuple[str, str], ...]:
    """Parse a ``charMap`` option into ordered (from, to) pairs.

    Pairs are separated by ``,`` and each pair is split on ``=``. A doubled
    ``,,`` or ``==`` stands for a literal comma or equals sign.

    Args:
        value: Raw option text, e.g. ``":=-,/=__"``

    Returns:
        Tuple of (from, to) pairs in declaration order

    Raises:
        BuilderOptionError: If a pair has no ``=`` or an empty ``from`` part

    Example:
        >>> parse_char_map(":=-,===__")
        ((':', '-'), ('=', '__'))
    """
    pairs = []
    parts: list[str] = [""]
    entries: list[list[str]] = [parts]
    i = 0
    while i < len(value):
        ch = value[i]
        doubled = i + 1 < len(value) and value[i + 1] == ch
        if ch in ",=" and doubled:
            parts[-1] += ch
            i += 2
            continue
        if ch == ",":
            parts = [""]
            entries.append(parts)
        elif ch == "=":
            parts.append("")
        else:
            parts[-1] += ch
        i += 1

    for entry in entries:
        if entry == [""]:
            continue
        if len(entry) != 2 or not entry[0]:
            raise BuilderOptionError(
                f"Invalid '{CHAR_MAP_TAG}' entry '{'='.join(entry)}'. "
                "Expected 'from=to' pairs separated by ','",
                context={"option": CHAR_MAP_TAG, "value": value},
            )
        pairs.append((entry[0], entry[1]))
    return tuple(pairs)


def compile_token_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a token pattern, reporting bad expressions as option errors."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise BuilderOptionError(
            f"Invalid '{TOKEN_PATTERN_TAG}' regular expression '{pattern}': {e}",
            context={"option": TOKEN_PATTERN_TAG, "value": pattern},
        ) from e


@dataclass(frozen=True)
class BuilderConfig:
    """Options resolved once per builder instance.

    Attributes:
        mode: Substitution mode
        key_prefix: Prefix keys must carry to be considered
        strip_prefix: Whether the prefix is removed from section keys
        enabled: Enabled, Optional or Disabled
        escape_expanded_values: Markup-escape values substituted into raw text
        token_pattern: Compiled token pattern (one capture group)
        char_map: Ordered (from, to) substitutions applied to keys
    """

    mode: KeyValueMode = KeyValueMode.STRICT
    key_prefix: str = ""
    strip_prefix: bool = False
    enabled: KeyValueEnabled = KeyValueEnabled.ENABLED
    escape_expanded_values: bool = False
    token_pattern: re.Pattern[str] = re.compile(DEFAULT_TOKEN_PATTERN)
    char_map: Tuple[Tuple[str, str], ...] = ()

    def apply_char_map(self, key: str) -> str:
        """Apply the character map to a key, left to right."""
        for old, new in self.char_map:
            key = key.replace(old, new)
        return key
