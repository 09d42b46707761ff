"""Common exception hierarchy for all kvknobs packages.

Every kvknobs package extends these classes. An exception carries an
optional ``context`` dictionary so that errors raised deep inside a
configuration pipeline can still say which builder, key or section they
came from.

Example:
    ```python
    from kvknobs_common.exceptions import ConfigurationError

    raise ConfigurationError(
        "Unknown mode",
        context={"builder": "Environment", "mode": "bogus"},
    )
    ```

Package-Specific Extensions:
    ```python
    from kvknobs_common.exceptions import OperationError

    class SourceUnavailableError(OperationError):
        '''Raised when a backing source cannot be reached.'''
    ```
"""

from typing import Any, Dict


class KvknobsError(Exception):
    """Base exception for all kvknobs packages.

    Attributes:
        context: Dictionary containing contextual information about the error
        details: Alias for context

    Example:
        ```python
        error = KvknobsError("Lookup failed", context={"key": "Db:Password"})
        str(error)
        # 'Lookup failed'
        error.context
        # {'key': 'Db:Password'}
        ```
    """

    def __init__(
        self,
        message: str,
        context: Dict[str, Any] | None = None,
        details: Dict[str, Any] | None = None,
    ):
        """Initialize the exception with optional context.

        Args:
            message: Error message
            context: Optional context dictionary
            details: Optional details dictionary (takes precedence over context)
        """
        super().__init__(message)
        self.context = details or context or {}
        self.details = self.context

    @property
    def message(self) -> str:
        """The error message without context."""
        return str(self.args[0]) if self.args else ""


class ValidationError(KvknobsError):
    """Raised when validation fails.

    Use this exception when keys, values or documents fail validation
    checks.
    """

    pass


class ConfigurationError(KvknobsError):
    """Raised when configuration is invalid or missing.

    Use this exception for configuration-related errors including:
    - Missing required attributes
    - Unrecognized option values
    - Conflicting options

    Example:
        ```python
        raise ConfigurationError(
            "Json file must be specified",
            context={"builder": "Json", "attribute": "jsonFile"}
        )
        ```
    """

    pass


class NotFoundError(KvknobsError):
    """Raised when a requested item is not found.

    Common scenarios include a section or builder type that was never
    registered.
    """

    pass


class OperationError(KvknobsError):
    """Raised when an operation fails.

    Use this exception for failures that don't fit other categories, such
    as a backing source that raised while values were being read.
    """

    pass


__all__ = [
    "KvknobsError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "OperationError",
]
