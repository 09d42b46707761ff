"""Configuration host: loads a document and runs its builders.

A configuration document names its builders once and applies them to
sections by name:

```yaml
builders:
  - name: Environment
    type: environment
    mode: Greedy
    prefix: APP_
    stripPrefix: true
  - name: Secrets
    type: json
    jsonFile: ${SecretsPath}

sections:
  appSettings:
    builders: [Environment]
    entries:
      SecretsPath: secrets.json
      Greeting: hello
  connectionStrings:
    builders: [Secrets]
    entries:
      - name: Main
        connectionString: placeholder
        providerName: postgresql
```

Each section is built once, with a fresh instance of every builder it
names. Builders run in the order listed: first every raw XML pass, then
every structured pass.
"""

import importlib
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Type, Union

import yaml

from kvknobs_common import NotFoundError, Registry, ValidationError

from .adapters import SectionAdapterRegistry, section_adapters
from .builder import KeyValueConfigBuilder
from .exceptions import HostConfigurationError
from .sections import AppSettingsSection, ConfigSection, ConnectionStringsSection
from .sources import (
    EnvironmentConfigBuilder,
    KeyPerFileConfigBuilder,
    SimpleJsonConfigBuilder,
    UserSecretsConfigBuilder,
)

logger = logging.getLogger(__name__)

BUILDERS_KEY = "builders"
SECTIONS_KEY = "sections"
ENTRIES_KEY = "entries"
TYPE_KEY = "type"
NAME_KEY = "name"

APP_SETTINGS = AppSettingsSection.default_name


class BuilderTypeRegistry(Registry[Type[KeyValueConfigBuilder]]):
    """Short names for builder classes usable as a builder ``type``."""

    def __init__(self) -> None:
        super().__init__("builder_types")


def default_builder_types() -> BuilderTypeRegistry:
    registry = BuilderTypeRegistry()
    registry.register("environment", EnvironmentConfigBuilder)
    registry.register("json", SimpleJsonConfigBuilder)
    registry.register("keyPerFile", KeyPerFileConfigBuilder)
    registry.register("userSecrets", UserSecretsConfigBuilder)
    return registry


builder_types = default_builder_types()

SECTION_TYPES: Dict[str, Type[ConfigSection]] = {
    "appSettings": AppSettingsSection,
    "connectionStrings": ConnectionStringsSection,
}


def load_class(class_path: str) -> Type[Any]:
    """Load a class from a dotted module path.

    Args:
        class_path: Full path to class (e.g., "mypackage.builders.VaultBuilder")

    Returns:
        Class object

    Raises:
        HostConfigurationError: If the class cannot be loaded
    """
    if "." not in class_path:
        raise HostConfigurationError(
            f"Invalid class path: {class_path}", context={"class_path": class_path}
        )

    module_path, class_name = class_path.rsplit(".", 1)
    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise HostConfigurationError(
            f"Failed to import {class_path}: {e}", context={"class_path": class_path}
        ) from e

    if not hasattr(module, class_name):
        raise HostConfigurationError(
            f"Class {class_name} not found in {module_path}",
            context={"class_path": class_path},
        )
    cls: Type[Any] = getattr(module, class_name)
    return cls


def _option_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


class ConfigurationHost:
    """Loads configuration sections and applies builders to them.

    Args:
        data: Parsed configuration document
        config_root: Directory relative paths resolve against
        types: Builder type registry (module default if None)
        adapters: Section adapter registry (module default if None)

    Example:
        ```python
        host = ConfigurationHost.from_file("app.yaml")
        host.get_section("appSettings").get("Greeting")
        ```
    """

    def __init__(
        self,
        data: Dict[str, Any] | None = None,
        *,
        config_root: Union[str, Path, None] = None,
        types: BuilderTypeRegistry | None = None,
        adapters: SectionAdapterRegistry | None = None,
    ) -> None:
        self.config_root = str(config_root) if config_root is not None else None
        self._types = types if types is not None else builder_types
        self._adapters = adapters if adapters is not None else section_adapters
        self._builders: Dict[str, Dict[str, Any]] = {}
        self._sections: Dict[str, Dict[str, Any]] = {}
        self._built: Dict[str, ConfigSection] = {}
        self._building: List[str] = []
        self._lock = threading.RLock()

        if data:
            self._load_dict(data)

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs: Any) -> "ConfigurationHost":
        """Create a host from a YAML or JSON file.

        Relative paths in builder options resolve against the file's directory.
        """
        path = Path(path).resolve()
        if not path.exists():
            raise NotFoundError(f"Configuration file not found: {path}", context={"path": str(path)})

        suffix = path.suffix.lower()
        with open(path, encoding="utf-8") as f:
            if suffix in [".yaml", ".yml"]:
                data = yaml.safe_load(f) or {}
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ValidationError(f"Unsupported file format: {suffix}")

        kwargs.setdefault("config_root", path.parent)
        return cls(data, **kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **kwargs: Any) -> "ConfigurationHost":
        return cls(data, **kwargs)

    def _load_dict(self, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise ValidationError(f"Configuration document must be a mapping, got {type(data)}")

        builders = data.get(BUILDERS_KEY) or []
        if isinstance(builders, dict):
            builders = [{NAME_KEY: name, **(decl or {})} for name, decl in builders.items()]
        for decl in builders:
            self.add_builder(decl)

        for name, decl in (data.get(SECTIONS_KEY) or {}).items():
            self.add_section(name, decl or {})

    def add_builder(self, decl: Dict[str, Any]) -> None:
        """Declare a builder: ``{name, type, ...options}``."""
        name = decl.get(NAME_KEY)
        if not name or not decl.get(TYPE_KEY):
            raise HostConfigurationError(
                f"Builders need a '{NAME_KEY}' and a '{TYPE_KEY}': {decl}",
                context={"builder": decl},
            )
        with self._lock:
            self._builders[str(name)] = dict(decl)

    def add_section(self, name: str, decl: Dict[str, Any]) -> None:
        """Declare a section: ``{type, builders, entries}``."""
        builders = decl.get(BUILDERS_KEY) or []
        if isinstance(builders, str):
            builders = [b.strip() for b in builders.split(",") if b.strip()]
        with self._lock:
            self._sections[name] = {**decl, BUILDERS_KEY: list(builders)}
            self._built.pop(name, None)

    def section_names(self) -> List[str]:
        with self._lock:
            return list(self._sections.keys())

    def builder_names(self) -> List[str]:
        with self._lock:
            return list(self._builders.keys())

    def static_section(self, name: str) -> ConfigSection:
        """Build a section from its declared entries, without running builders."""
        decl = self._section_decl(name)
        section_cls = self._section_type(name, decl)
        return section_cls.from_entries(decl.get(ENTRIES_KEY), section_name=name)

    def create_builder(self, name: str) -> KeyValueConfigBuilder:
        """Create and initialize a fresh instance of a declared builder."""
        decl = self._builders.get(name)
        if decl is None:
            raise HostConfigurationError(
                f"Builder '{name}' is not declared",
                context={"builder": name, "available": self.builder_names()},
            )

        builder_cls = self._builder_type(str(decl[TYPE_KEY]))
        options = {
            key: _option_text(value)
            for key, value in decl.items()
            if key not in (NAME_KEY, TYPE_KEY)
        }

        builder = builder_cls()
        builder.initialize(
            name,
            options,
            app_settings=self.app_settings,
            config_root=self.config_root,
            adapters=self._adapters,
        )
        return builder

    def get_section(self, name: str) -> ConfigSection:
        """Get a processed section, building it on first request.

        Raises:
            NotFoundError: If the section is not declared
            HostConfigurationError: If building the section fails
        """
        with self._lock:
            section = self._built.get(name)
            if section is not None:
                return section

            if name in self._building:
                raise HostConfigurationError(
                    f"Section '{name}' requested again while it is being built",
                    context={"section": name, "building": list(self._building)},
                )

            self._building.append(name)
            try:
                section = self._build_section(name)
            finally:
                self._building.remove(name)

            self._built[name] = section
            return section

    def app_settings(self) -> AppSettingsSection | None:
        """Current application settings.

        While the app-settings section is itself being built, the declared
        entries are returned instead, without any builder applied.
        """
        with self._lock:
            if APP_SETTINGS not in self._sections:
                return None
            if APP_SETTINGS in self._building:
                section = self.static_section(APP_SETTINGS)
            else:
                section = self.get_section(APP_SETTINGS)
        return section if isinstance(section, AppSettingsSection) else None

    def _build_section(self, name: str) -> ConfigSection:
        decl = self._section_decl(name)
        try:
            builders = [self.create_builder(b) for b in decl[BUILDERS_KEY]]
            section = self.static_section(name)
            if not builders:
                return section

            logger.debug("Building section '%s' with %s", name, decl[BUILDERS_KEY])
            raw = section.to_xml()
            for builder in builders:
                raw = builder.process_raw_xml(raw)
            section = type(section).from_xml(raw)

            for builder in builders:
                section = builder.process_section(section)
            return section
        except HostConfigurationError:
            raise
        except Exception as e:
            raise HostConfigurationError(
                f"An error occurred loading a configuration section '{name}': {e}",
                context={"section": name},
            ) from e

    def _section_decl(self, name: str) -> Dict[str, Any]:
        decl = self._sections.get(name)
        if decl is None:
            raise NotFoundError(
                f"Section not found: {name}",
                context={"section": name, "available": self.section_names()},
            )
        return decl

    def _section_type(self, name: str, decl: Dict[str, Any]) -> Type[ConfigSection]:
        type_name = decl.get(TYPE_KEY) or (name if name in SECTION_TYPES else APP_SETTINGS)
        section_cls = SECTION_TYPES.get(type_name)
        if section_cls is None:
            section_cls = load_class(type_name)
        if not (isinstance(section_cls, type) and issubclass(section_cls, ConfigSection)):
            raise HostConfigurationError(
                f"Section type '{type_name}' is not a ConfigSection",
                context={"section": name, "type": type_name},
            )
        return section_cls

    def _builder_type(self, type_name: str) -> Type[KeyValueConfigBuilder]:
        builder_cls = self._types.get_optional(type_name)
        if builder_cls is None:
            builder_cls = load_class(type_name)
        if not (isinstance(builder_cls, type) and issubclass(builder_cls, KeyValueConfigBuilder)):
            raise HostConfigurationError(
                f"Builder type '{type_name}' is not a KeyValueConfigBuilder",
                context={"type": type_name},
            )
        return builder_cls
