"""Per-builder value cache with case-insensitive keys."""

import logging
import threading
from typing import Callable, Dict, Iterable, List, Tuple

logger = logging.getLogger(__name__)


class ValueCache:
    """Case-insensitive cache of resolved source values.

    A None value is a cached miss: the key was looked up and the source had
    nothing for it, so it is never fetched again.

    Lazy per-key entries (``get_or_fetch``) and one-time bulk population
    (``populate_once``) share the same store. Bulk population runs at most
    once, even when several threads ask for it at the same time.

    Per-key lookups are not serialized. Concurrent first lookups of the same
    key may each reach the backing source, so ``get_value`` implementations
    must tolerate duplicate calls. Every caller still gets the single value
    that was stored first.
    """

    def __init__(self) -> None:
        self._values: Dict[str, Tuple[str, str | None]] = {}
        self._lock = threading.Lock()
        self._populated = False

    @property
    def populated(self) -> bool:
        return self._populated

    def get_or_fetch(self, key: str, fetch: Callable[[str], "str | None"]) -> str | None:
        """Get a cached value, calling ``fetch`` on a miss.

        The fetch runs without holding the lock. If two threads race on the
        same key the first stored result wins and both see it.
        """
        folded = key.casefold()
        entry = self._values.get(folded)
        if entry is not None:
            return entry[1]

        logger.debug("Cache miss for '%s'", key)
        value = fetch(key)
        with self._lock:
            entry = self._values.setdefault(folded, (key, value))
        return entry[1]

    def populate_once(
        self, fetch_all: Callable[[], Iterable[Tuple[str, "str | None"]]]
    ) -> bool:
        """Fill the cache from a single bulk fetch, only on the first call.

        Returns:
            True if this call performed the fetch
        """
        if self._populated:
            return False

        with self._lock:
            if self._populated:
                return False
            values = list(fetch_all())
            for key, value in values:
                self._values[key.casefold()] = (key, value)
            self._populated = True

        logger.debug("Cache populated with %d values", len(values))
        return True

    def items(self) -> List[Tuple[str, str | None]]:
        """Snapshot of (key, value) pairs in insertion order."""
        with self._lock:
            return list(self._values.values())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._values

    def __len__(self) -> int:
        return len(self._values)
