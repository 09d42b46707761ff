"""KvKnobs Builders Package

Key/value configuration builders: inject values from environment
variables, files and other key/value sources into configuration
sections at load time.
"""

from .adapters import (
    AppSettingsSectionAdapter,
    ConnectionStringsSectionAdapter,
    SectionAdapter,
    SectionAdapterRegistry,
    SectionItem,
    default_adapter_registry,
    section_adapters,
)
from .builder import KeyValueConfigBuilder
from .exceptions import (
    BuilderOptionError,
    HostConfigurationError,
    KeyValueBuilderConfigError,
    KeyValueBuilderError,
    KeyValueWrappedError,
)
from .host import BuilderTypeRegistry, ConfigurationHost, builder_types
from .options import BuilderConfig, BuilderOptions, KeyValueEnabled, KeyValueMode
from .sections import (
    AppSettingsSection,
    ConfigSection,
    ConnectionStringSettings,
    ConnectionStringsSection,
)
from .sources import (
    EnvironmentConfigBuilder,
    KeyPerFileConfigBuilder,
    SimpleJsonConfigBuilder,
    SimpleJsonConfigBuilderMode,
    UserSecretsConfigBuilder,
)
from .tokens import expand_tokens
from .utils import map_path

__version__ = "0.1.0"
__all__ = [
    "AppSettingsSection",
    "AppSettingsSectionAdapter",
    "BuilderConfig",
    "BuilderOptionError",
    "BuilderOptions",
    "BuilderTypeRegistry",
    "ConfigSection",
    "ConfigurationHost",
    "ConnectionStringSettings",
    "ConnectionStringsSection",
    "ConnectionStringsSectionAdapter",
    "EnvironmentConfigBuilder",
    "HostConfigurationError",
    "KeyPerFileConfigBuilder",
    "KeyValueBuilderConfigError",
    "KeyValueBuilderError",
    "KeyValueConfigBuilder",
    "KeyValueEnabled",
    "KeyValueMode",
    "KeyValueWrappedError",
    "SectionAdapter",
    "SectionAdapterRegistry",
    "SectionItem",
    "SimpleJsonConfigBuilder",
    "SimpleJsonConfigBuilderMode",
    "UserSecretsConfigBuilder",
    "builder_types",
    "default_adapter_registry",
    "expand_tokens",
    "map_path",
    "section_adapters",
]
