"""Section adapters and their registry.

An adapter bridges the builder's generic key/value operations to one
concrete section shape. The builder never looks inside a section; it
enumerates ``SectionItem`` snapshots and hands the opaque handle back on
``insert_or_update`` so the adapter can preserve whatever else the entry
carries.

Adapters are registered by name. Resolution walks the registrations from
newest to oldest and takes the first adapter whose ``section_type``
accepts the section, so re-registering a name overrides the default.

Example:
    ```python
    from kvknobs_builders.adapters import default_adapter_registry

    registry = default_adapter_registry()
    adapter = registry.get_adapter(section)
    for item in adapter.items():
        print(item.key, item.value)
    ```
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, List, NamedTuple, Type, TypeVar

from kvknobs_common import Registry

from .sections import (
    AppSettingsSection,
    ConfigSection,
    ConnectionStringSettings,
    ConnectionStringsSection,
)

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=ConfigSection)

DEFAULT_APP_SETTINGS_HANDLER = "DefaultAppSettingsHandler"
DEFAULT_CONNECTION_STRINGS_HANDLER = "DefaultConnectionStringsHandler"


class SectionItem(NamedTuple):
    """Snapshot of one key/value-like entry in a section."""

    key: str
    value: str | None
    handle: Any


class SectionAdapter(ABC, Generic[S]):
    """Capability object over one section instance.

    Subclasses set ``section_type`` and implement ``items`` and
    ``insert_or_update``. ``items`` must return a materialized list,
    because the builder mutates the section while walking it.
    """

    section_type: ClassVar[Type[ConfigSection]] = ConfigSection

    def __init__(self, section: S) -> None:
        self.section = section

    @classmethod
    def accepts(cls, section: ConfigSection) -> bool:
        return isinstance(section, cls.section_type)

    @abstractmethod
    def items(self) -> List[SectionItem]:
        """Snapshot the section's current entries."""

    @abstractmethod
    def insert_or_update(
        self,
        new_key: str,
        new_value: str | None,
        old_key: str | None = None,
        old_item: Any = None,
    ) -> None:
        """Insert or replace an entry.

        Args:
            new_key: Key the entry should have afterwards
            new_value: New value; None means leave the section alone
            old_key: Key of the entry being replaced, if any
            old_item: Opaque handle from ``items()`` for the entry being replaced
        """

    def get_original_case(self, key: str) -> str:
        """Spelling of ``key`` as it already exists in the section, else ``key``."""
        folded = key.casefold()
        for item in self.items():
            if item.key.casefold() == folded:
                return item.key
        return key


class AppSettingsSectionAdapter(SectionAdapter[AppSettingsSection]):
    """Adapter for flat key/value settings."""

    section_type = AppSettingsSection

    def items(self) -> List[SectionItem]:
        return [SectionItem(key, value, key) for key, value in self.section.items()]

    def insert_or_update(
        self,
        new_key: str,
        new_value: str | None,
        old_key: str | None = None,
        old_item: Any = None,
    ) -> None:
        if new_value is None:
            return
        self.section.remove(old_key)
        self.section.remove(new_key)
        self.section.add(new_key, new_value)

    def get_original_case(self, key: str) -> str:
        return self.section.get_key(key) or key


class ConnectionStringsSectionAdapter(SectionAdapter[ConnectionStringsSection]):
    """Adapter for connection strings; keeps provider names and extra attributes."""

    section_type = ConnectionStringsSection

    def items(self) -> List[SectionItem]:
        return [
            SectionItem(entry.name, entry.connection_string, entry)
            for entry in self.section.entries()
        ]

    def insert_or_update(
        self,
        new_key: str,
        new_value: str | None,
        old_key: str | None = None,
        old_item: Any = None,
    ) -> None:
        if new_value is None:
            return

        # Keep the existing entry when there is one; it may carry more than name/value
        entry = old_item if isinstance(old_item, ConnectionStringSettings) else None
        if entry is None:
            entry = self.section.get(old_key or new_key) or ConnectionStringSettings(new_key)

        self.section.remove(old_key)
        self.section.remove(new_key)

        entry.name = new_key
        entry.connection_string = new_value
        self.section.add(entry)


class SectionAdapterRegistry(Registry[Type[SectionAdapter]]):
    """Named, ordered registrations of adapter types."""

    def __init__(self) -> None:
        super().__init__("section_adapters")

    def add(self, name: str, adapter_type: Type[SectionAdapter]) -> None:
        """Register an adapter type, replacing and moving any same-named entry to the end."""
        self.register(name, adapter_type, allow_overwrite=True)

    def remove(self, name: str) -> Type[SectionAdapter]:
        return self.unregister(name)

    def get_adapter(self, section: ConfigSection | None) -> SectionAdapter | None:
        """Resolve an adapter instance for a section.

        Returns:
            An adapter bound to ``section``, or None when nothing accepts it
        """
        if section is None:
            return None

        adapter_type = self.find_last(lambda candidate: candidate.accepts(section))
        if adapter_type is None:
            logger.debug("No section adapter for %s", type(section).__name__)
            return None
        return adapter_type(section)


def default_adapter_registry() -> SectionAdapterRegistry:
    """Create a registry holding the two built-in adapters."""
    registry = SectionAdapterRegistry()
    registry.add(DEFAULT_APP_SETTINGS_HANDLER, AppSettingsSectionAdapter)
    registry.add(DEFAULT_CONNECTION_STRINGS_HANDLER, ConnectionStringsSectionAdapter)
    return registry


# Process-wide registrations used when a builder is not given its own registry
section_adapters = default_adapter_registry()
