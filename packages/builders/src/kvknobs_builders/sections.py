"""Structured configuration sections.

A section is one named unit of a configuration document. Each section
type knows how to read and write its raw XML form, which is what token
expansion works on before the section is parsed.

Two well-known shapes are provided:
    - ``AppSettingsSection``: a flat, ordered key/value list
    - ``ConnectionStringsSection``: named connection strings that carry a
      provider name and any other attributes alongside the value
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple

from kvknobs_common import ValidationError

ADD_TAG = "add"


class ConfigSection:
    """Base class for structured configuration sections."""

    default_name = "section"

    def __init__(self, section_name: str | None = None) -> None:
        self.section_name = section_name or self.default_name

    def to_xml(self) -> ET.Element:
        """Serialize the section to its raw XML element."""
        raise NotImplementedError("Subclasses must implement to_xml method")

    @classmethod
    def from_xml(cls, element: ET.Element) -> "ConfigSection":
        """Parse a section from its raw XML element."""
        raise NotImplementedError("Subclasses must implement from_xml method")

    @classmethod
    def from_entries(cls, data: Any, section_name: str | None = None) -> "ConfigSection":
        """Build a section from plain document data (dicts and lists)."""
        raise NotImplementedError("Subclasses must implement from_entries method")

    def to_xml_string(self) -> str:
        """Serialize the section to XML text."""
        return ET.tostring(self.to_xml(), encoding="unicode")


class AppSettingsSection(ConfigSection):
    """Ordered key/value settings with case-insensitive keys.

    Example:
        ```python
        settings = AppSettingsSection()
        settings.add("Greeting", "hello")
        settings.get("greeting")
        # 'hello'
        ```
    """

    default_name = "appSettings"

    def __init__(self, section_name: str | None = None) -> None:
        super().__init__(section_name)
        self._settings: Dict[str, Tuple[str, str]] = {}

    def add(self, key: str, value: str) -> None:
        """Add a setting. An existing setting with the same key is replaced in place."""
        self._settings[key.casefold()] = (key, value)

    def remove(self, key: str | None) -> None:
        """Remove a setting if present."""
        if key is not None:
            self._settings.pop(key.casefold(), None)

    def get(self, key: str, default: str | None = None) -> str | None:
        entry = self._settings.get(key.casefold())
        return entry[1] if entry is not None else default

    def get_key(self, key: str) -> str | None:
        """Get the stored spelling of a key, or None."""
        entry = self._settings.get(key.casefold())
        return entry[0] if entry is not None else None

    def keys(self) -> List[str]:
        return [key for key, _ in self._settings.values()]

    def items(self) -> List[Tuple[str, str]]:
        return list(self._settings.values())

    def as_dict(self) -> Dict[str, str]:
        return dict(self._settings.values())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._settings

    def __len__(self) -> int:
        return len(self._settings)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def to_xml(self) -> ET.Element:
        root = ET.Element(self.section_name)
        for key, value in self.items():
            ET.SubElement(root, ADD_TAG, {"key": key, "value": value})
        return root

    @classmethod
    def from_xml(cls, element: ET.Element) -> "AppSettingsSection":
        section = cls(element.tag)
        for child in element.iter(ADD_TAG):
            key = child.get("key")
            if key is None:
                raise ValidationError(
                    f"Setting in '{element.tag}' is missing the 'key' attribute",
                    context={"section": element.tag},
                )
            section.add(key, child.get("value", ""))
        return section

    @classmethod
    def from_entries(cls, data: Any, section_name: str | None = None) -> "AppSettingsSection":
        """Build from ``{key: value}`` or ``[{key: .., value: ..}]`` data."""
        section = cls(section_name)
        if isinstance(data, dict):
            for key, value in data.items():
                section.add(str(key), "" if value is None else str(value))
        else:
            for entry in data or []:
                section.add(str(entry["key"]), str(entry.get("value", "")))
        return section


@dataclass
class ConnectionStringSettings:
    """A named connection string and its associated attributes."""

    name: str
    connection_string: str = ""
    provider_name: str = ""
    extra: Dict[str, str] = field(default_factory=dict)

    def to_attributes(self) -> Dict[str, str]:
        attributes = {"name": self.name, "connectionString": self.connection_string}
        if self.provider_name:
            attributes["providerName"] = self.provider_name
        attributes.update(self.extra)
        return attributes

    @classmethod
    def from_attributes(cls, attributes: Dict[str, Any]) -> "ConnectionStringSettings":
        attributes = dict(attributes)
        name = attributes.pop("name", None)
        if name is None:
            raise ValidationError(
                "Connection string is missing the 'name' attribute",
                context={"attributes": attributes},
            )
        return cls(
            name=str(name),
            connection_string=str(attributes.pop("connectionString", "")),
            provider_name=str(attributes.pop("providerName", "")),
            extra={k: str(v) for k, v in attributes.items()},
        )


class ConnectionStringsSection(ConfigSection):
    """Ordered collection of connection strings, unique by name (ignoring case)."""

    default_name = "connectionStrings"

    def __init__(self, section_name: str | None = None) -> None:
        super().__init__(section_name)
        self._entries: Dict[str, ConnectionStringSettings] = {}

    def add(self, settings: ConnectionStringSettings) -> None:
        self._entries[settings.name.casefold()] = settings

    def remove(self, name: str | None) -> None:
        if name is not None:
            self._entries.pop(name.casefold(), None)

    def get(self, name: str) -> ConnectionStringSettings | None:
        return self._entries.get(name.casefold())

    def entries(self) -> List[ConnectionStringSettings]:
        return list(self._entries.values())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.casefold() in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ConnectionStringSettings]:
        return iter(self.entries())

    def to_xml(self) -> ET.Element:
        root = ET.Element(self.section_name)
        for entry in self.entries():
            ET.SubElement(root, ADD_TAG, entry.to_attributes())
        return root

    @classmethod
    def from_xml(cls, element: ET.Element) -> "ConnectionStringsSection":
        section = cls(element.tag)
        for child in element.iter(ADD_TAG):
            section.add(ConnectionStringSettings.from_attributes(dict(child.attrib)))
        return section

    @classmethod
    def from_entries(
        cls, data: Any, section_name: str | None = None
    ) -> "ConnectionStringsSection":
        """Build from ``[{name, connectionString, providerName}]`` or ``{name: value}``."""
        section = cls(section_name)
        if isinstance(data, dict):
            for name, value in data.items():
                section.add(ConnectionStringSettings(str(name), str(value)))
        else:
            for entry in data or []:
                section.add(ConnectionStringSettings.from_attributes(entry))
        return section
