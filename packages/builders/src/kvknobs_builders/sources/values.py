"""In-memory value store shared by the file-backed builders."""

from typing import Dict, List, Tuple

from kvknobs_common import ValidationError


class CaseInsensitiveValues:
    """Key/value pairs with case-insensitive keys and stored spellings."""

    def __init__(self) -> None:
        self._values: Dict[str, Tuple[str, str | None]] = {}

    def add(self, key: str, value: str | None, allow_replace: bool = True) -> None:
        """Add a pair.

        Raises:
            ValidationError: If the key exists and ``allow_replace`` is False
        """
        folded = key.casefold()
        if not allow_replace and folded in self._values:
            raise ValidationError(
                f"Duplicate key '{key}'",
                context={"key": key, "existing": self._values[folded][0]},
            )
        self._values[folded] = (key, value)

    def get(self, key: str) -> str | None:
        entry = self._values.get(key.casefold())
        return entry[1] if entry is not None else None

    def with_prefix(self, prefix: str) -> List[Tuple[str, str | None]]:
        folded = prefix.casefold()
        return [entry for key, entry in self._values.items() if key.startswith(folded)]

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._values
