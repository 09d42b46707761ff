"""Builder backed by process environment variables."""

import os
from typing import List, Tuple

from ..builder import KeyValueConfigBuilder


class EnvironmentConfigBuilder(KeyValueConfigBuilder):
    """Supplies values from ``os.environ``.

    Variable names are matched ignoring case, so ``${PATH}`` and ``${Path}``
    resolve to the same variable. When the environment holds names that
    differ only by case, an exact match is preferred.
    """

    def get_value(self, key: str) -> str | None:
        value = os.environ.get(key)
        if value is not None:
            return value

        folded = key.casefold()
        for name, candidate in os.environ.items():
            if name.casefold() == folded:
                return candidate
        return None

    def get_all_values(self, prefix: str) -> List[Tuple[str, str | None]]:
        folded = prefix.casefold()
        return [
            (name, value)
            for name, value in os.environ.items()
            if name.casefold().startswith(folded)
        ]
