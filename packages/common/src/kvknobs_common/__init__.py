"""KvKnobs Common Package

Shared exception hierarchy and registry used by the kvknobs packages.
"""

from .exceptions import (
    ConfigurationError,
    KvknobsError,
    NotFoundError,
    OperationError,
    ValidationError,
)
from .registry import Registry

__version__ = "0.1.0"
__all__ = [
    "ConfigurationError",
    "KvknobsError",
    "NotFoundError",
    "OperationError",
    "Registry",
    "ValidationError",
]
