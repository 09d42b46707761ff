"""Generic registry pattern for managing named items.

The registry keeps items in registration order, which matters to callers
that resolve "the last registered item that matches". Re-registering a key
with ``allow_overwrite=True`` moves it to the end, so a later registration
always overrides an earlier one.

Example:
    ```python
    from kvknobs_common.registry import Registry

    class HandlerRegistry(Registry[type]):
        def __init__(self):
            super().__init__("handlers")

    registry = HandlerRegistry()
    registry.register("default", DefaultHandler)
    registry.get("default")
    ```
"""

import threading
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    List,
    TypeVar,
)

from kvknobs_common.exceptions import NotFoundError, OperationError

T = TypeVar("T")


class Registry(Generic[T]):
    """Ordered, thread-safe registry of named items.

    Attributes:
        name: Name of the registry (for logging/debugging)

    Args:
        name: Name for this registry instance

    Example:
        ```python
        registry = Registry[str]("my_registry")
        registry.register("key1", "value1")
        registry.get("key1")
        # 'value1'
        registry.count()
        # 1
        ```
    """

    def __init__(self, name: str):
        """Initialize the registry.

        Args:
            name: Registry name for identification
        """
        self._name = name
        self._items: Dict[str, T] = {}
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        """Get registry name."""
        return self._name

    def register(self, key: str, item: T, allow_overwrite: bool = False) -> None:
        """Register an item by key.

        An overwritten item moves to the end of the registration order.

        Args:
            key: Unique identifier for the item
            item: Item to register
            allow_overwrite: Whether to allow overwriting existing items

        Raises:
            OperationError: If item already exists and allow_overwrite is False
        """
        with self._lock:
            if key in self._items:
                if not allow_overwrite:
                    raise OperationError(
                        f"Item '{key}' already registered in {self._name}",
                        context={"key": key, "registry": self._name},
                    )
                del self._items[key]

            self._items[key] = item

    def unregister(self, key: str) -> T:
        """Unregister and return an item by key.

        Args:
            key: Key of item to unregister

        Returns:
            The unregistered item

        Raises:
            NotFoundError: If item not found
        """
        with self._lock:
            if key not in self._items:
                raise NotFoundError(
                    f"Item not found: {key}",
                    context={"key": key, "registry": self._name},
                )
            return self._items.pop(key)

    def get(self, key: str) -> T:
        """Get an item by key.

        Args:
            key: Key of item to retrieve

        Returns:
            The registered item

        Raises:
            NotFoundError: If item not found
        """
        with self._lock:
            if key not in self._items:
                raise NotFoundError(
                    f"Item not found: {key}",
                    context={
                        "key": key,
                        "registry": self._name,
                        "available_keys": list(self._items.keys()),
                    },
                )
            return self._items[key]

    def get_optional(self, key: str) -> T | None:
        """Get an item by key, returning None if not found."""
        with self._lock:
            return self._items.get(key)

    def has(self, key: str) -> bool:
        """Check if item exists."""
        with self._lock:
            return key in self._items

    def list_keys(self) -> List[str]:
        """List all registered keys in registration order."""
        with self._lock:
            return list(self._items.keys())

    def list_items(self) -> List[T]:
        """List all registered items in registration order."""
        with self._lock:
            return list(self._items.values())

    def items(self) -> List[tuple[str, T]]:
        """Get all key-item pairs in registration order."""
        with self._lock:
            return list(self._items.items())

    def find_last(self, predicate: Callable[[T], bool]) -> T | None:
        """Find the most recently registered item that satisfies a predicate.

        Args:
            predicate: Test applied to each item, newest first

        Returns:
            The first matching item walking backwards, or None

        Example:
            ```python
            registry.find_last(lambda handler: handler.accepts(section))
            ```
        """
        for item in reversed(self.list_items()):
            if predicate(item):
                return item
        return None

    def count(self) -> int:
        """Get count of registered items."""
        with self._lock:
            return len(self._items)

    def clear(self) -> None:
        """Clear all items from registry."""
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        """Get number of registered items using len()."""
        return self.count()

    def __contains__(self, key: Any) -> bool:
        """Check if item exists using 'in' operator."""
        return self.has(key)

    def __iter__(self):
        """Iterate over registered items."""
        return iter(self.list_items())
