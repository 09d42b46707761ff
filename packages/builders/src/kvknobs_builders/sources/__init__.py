"""Builders for the common backing sources."""

from .environment import EnvironmentConfigBuilder
from .json_file import SimpleJsonConfigBuilder, SimpleJsonConfigBuilderMode
from .key_per_file import KeyPerFileConfigBuilder
from .user_secrets import UserSecretsConfigBuilder

__all__ = [
    "EnvironmentConfigBuilder",
    "KeyPerFileConfigBuilder",
    "SimpleJsonConfigBuilder",
    "SimpleJsonConfigBuilderMode",
    "UserSecretsConfigBuilder",
]
