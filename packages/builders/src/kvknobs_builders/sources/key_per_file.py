"""Builder that reads one value per file from a directory.

Each file name is a key and the file contents are its value, the layout
used for mounted container secrets. With ``keyDelimiter`` set, sub
directories are walked too and their names become key segments joined by
the delimiter.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Tuple

from ..builder import KeyValueConfigBuilder
from ..exceptions import BuilderOptionError
from ..options import BuilderOptions
from ..utils import map_path

logger = logging.getLogger(__name__)

DIRECTORY_PATH_TAG = "directoryPath"
KEY_DELIMITER_TAG = "keyDelimiter"
IGNORE_PREFIX_TAG = "ignorePrefix"

DEFAULT_IGNORE_PREFIX = "ignore."


class KeyPerFileConfigBuilder(KeyValueConfigBuilder):
    """Supplies values from the files in a directory.

    Options:
        directoryPath: Directory to read (required)
        keyDelimiter: Enables multi-level keys when set
        ignorePrefix: Files and directories starting with this are skipped
            (default ``ignore.``)
    """

    def __init__(self) -> None:
        super().__init__()
        self.directory_path: str | None = None
        self.key_delimiter: str | None = None
        self.ignore_prefix: str | None = DEFAULT_IGNORE_PREFIX

    def lazy_initialize(self, name: str, options: BuilderOptions) -> None:
        super().lazy_initialize(name, options)

        directory = self.resolve_setting(DIRECTORY_PATH_TAG)
        if not directory:
            raise BuilderOptionError(
                f"'{DIRECTORY_PATH_TAG}' must be specified",
                context={"option": DIRECTORY_PATH_TAG},
            )

        self.ignore_prefix = self.resolve_setting(IGNORE_PREFIX_TAG)
        if self.ignore_prefix is None:
            self.ignore_prefix = DEFAULT_IGNORE_PREFIX
        self.key_delimiter = options.get(KEY_DELIMITER_TAG)

        self.directory_path = map_path(directory, self.config_root)
        if not os.path.isdir(self.directory_path):
            raise FileNotFoundError(f"'{DIRECTORY_PATH_TAG}' does not exist: {self.directory_path}")

    def get_value(self, key: str) -> str | None:
        if self.directory_path is None:
            return None

        relative = key
        if self.key_delimiter:
            relative = relative.replace(self.key_delimiter, os.sep)

        parts = Path(relative).parts
        if any(self._is_ignored(part) for part in parts):
            return None

        root = Path(self.directory_path).resolve()
        path = (root / relative).resolve()
        if root not in path.parents:
            return None
        return self._read_value(path)

    def get_all_values(self, prefix: str) -> List[Tuple[str, str | None]]:
        if self.directory_path is None:
            return []

        values: Dict[str, Tuple[str, str | None]] = {}
        self._read_all_values(Path(self.directory_path), "", values)
        folded = prefix.casefold()
        return [entry for key, entry in values.items() if key.startswith(folded)]

    def _read_all_values(
        self, directory: Path, prefix: str, values: Dict[str, Tuple[str, str | None]]
    ) -> None:
        entries = sorted(directory.iterdir())

        # Depth first, so the shallower level wins a collision
        if self.key_delimiter is not None:
            for sub in entries:
                if sub.is_dir() and not self._is_ignored(sub.name):
                    self._read_all_values(sub, prefix + sub.name + self.key_delimiter, values)

        for file in entries:
            if file.is_file() and not self._is_ignored(file.name):
                key = prefix + file.name
                values[key.casefold()] = (key, self._read_value(file))

    def _is_ignored(self, name: str) -> bool:
        if not self.ignore_prefix or not self.ignore_prefix.strip():
            return False
        return name.casefold().startswith(self.ignore_prefix.casefold())

    @staticmethod
    def _read_value(path: Path) -> str | None:
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8").rstrip("\r\n")
