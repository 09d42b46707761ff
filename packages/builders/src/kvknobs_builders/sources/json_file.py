"""Builder backed by a simple JSON file.

In ``Flat`` mode the whole document is flattened into one set of keys,
nested names joined with ``:`` and array items indexed::

    {"Db": {"Hosts": ["a", "b"]}}  ->  Db:Hosts:0 = a, Db:Hosts:1 = b

In ``Sectional`` mode each top-level object holds the values for the
section of the same name. Top-level primitives (and arrays of them) are
used for any section without its own object.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Tuple

from ..builder import KeyValueConfigBuilder
from ..exceptions import BuilderOptionError
from ..options import BuilderOptions, parse_enum
from ..utils import map_path
from .values import CaseInsensitiveValues

logger = logging.getLogger(__name__)

JSON_FILE_TAG = "jsonFile"
JSON_MODE_TAG = "jsonMode"

KEY_DELIMITER = ":"

# Sectional-mode values that belong to no particular section
_DEFAULT_SECTION = ""


class SimpleJsonConfigBuilderMode(Enum):
    """How a JSON document maps onto configuration sections."""

    FLAT = "Flat"
    SECTIONAL = "Sectional"


class SimpleJsonConfigBuilder(KeyValueConfigBuilder):
    """Supplies values from a JSON file.

    Options:
        jsonFile: Path to the file (required); may refer to app settings
        jsonMode: ``Flat`` (default) or ``Sectional``
    """

    def __init__(self) -> None:
        super().__init__()
        self.json_file: str | None = None
        self.json_mode = SimpleJsonConfigBuilderMode.FLAT
        self._all_settings: Dict[str, CaseInsensitiveValues] = {
            _DEFAULT_SECTION: CaseInsensitiveValues()
        }

    def lazy_initialize(self, name: str, options: BuilderOptions) -> None:
        super().lazy_initialize(name, options)

        json_file = self.resolve_setting(JSON_FILE_TAG)
        if not json_file or not json_file.strip():
            raise BuilderOptionError(
                f"Json file must be specified with the '{JSON_FILE_TAG}' attribute",
                context={"option": JSON_FILE_TAG},
            )

        json_mode = self.resolve_setting(JSON_MODE_TAG)
        if json_mode is not None:
            self.json_mode = parse_enum(SimpleJsonConfigBuilderMode, json_mode, JSON_MODE_TAG)

        self.json_file = map_path(json_file, self.config_root)
        with open(self.json_file, encoding="utf-8") as f:
            root = json.load(f)

        if not isinstance(root, dict):
            raise BuilderOptionError(
                f"Json file must contain an object: {self.json_file}",
                context={"option": JSON_FILE_TAG, "path": self.json_file},
            )

        settings: Dict[str, CaseInsensitiveValues] = {}
        if self.json_mode is SimpleJsonConfigBuilderMode.FLAT:
            settings[_DEFAULT_SECTION] = load_values(root)
        else:
            settings[_DEFAULT_SECTION] = CaseInsensitiveValues()
            flatten_json(root, settings[_DEFAULT_SECTION], "", exclude_objects=True)
            for section_name, value in root.items():
                if isinstance(value, dict):
                    settings[section_name] = load_values(value)

        self._all_settings = settings
        logger.debug(
            "Builder '%s' loaded %s in %s mode", name, self.json_file, self.json_mode.value
        )

    def get_value(self, key: str) -> str | None:
        return self._current_values().get(key)

    def get_all_values(self, prefix: str) -> List[Tuple[str, str | None]]:
        return self._current_values().with_prefix(prefix)

    def _current_values(self) -> CaseInsensitiveValues:
        section = self.current_section
        if self.json_mode is SimpleJsonConfigBuilderMode.SECTIONAL and section is not None:
            values = self._all_settings.get(section)
            if values is not None:
                return values
        return self._all_settings[_DEFAULT_SECTION]


def load_values(root: Dict[str, Any]) -> CaseInsensitiveValues:
    """Flatten a JSON object into a new value store."""
    values = CaseInsensitiveValues()
    flatten_json(root, values, "")
    return values


def flatten_json(
    token: Any,
    values: CaseInsensitiveValues,
    prefix: str,
    exclude_objects: bool = False,
) -> None:
    """Flatten a JSON value into ``values`` under ``prefix``.

    Raises:
        ValidationError: If two paths flatten to the same key
    """
    if isinstance(token, dict):
        if exclude_objects and prefix:
            return
        for name, value in token.items():
            flatten_json(value, values, _build_key(prefix, name), exclude_objects)
    elif isinstance(token, list):
        for index, value in enumerate(token):
            if isinstance(value, dict) and exclude_objects:
                continue
            flatten_json(value, values, _build_key(prefix, str(index)), exclude_objects)
    else:
        values.add(prefix, _to_text(token), allow_replace=False)


def _build_key(prefix: str, name: str) -> str:
    return f"{prefix}{KEY_DELIMITER}{name}" if prefix.strip() else name


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
