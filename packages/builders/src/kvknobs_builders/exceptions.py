"""Custom exceptions for the builders package.

This module defines exception types for the builders package,
built on the common exception framework from kvknobs_common.

Every error that escapes a builder is wrapped so the message names the
builder and the phase that failed. Errors that came from re-entering the
host's own loading machinery are wrapped differently: the host's message
stays on top because it usually names the real root cause.
"""

from typing import Any, Dict

from kvknobs_common import ConfigurationError, OperationError

INITIALIZATION_PHASE = "Initialization Error"
GET_VALUE_PHASE = "GetValue() Error"
GET_ALL_VALUES_PHASE = "GetAllValues() Error"


class BuilderOptionError(ConfigurationError):
    """Raised when a builder option is malformed, missing or conflicting."""

    pass


class HostConfigurationError(ConfigurationError):
    """Raised by the host while loading or building a configuration section."""

    pass


class KeyValueBuilderError(OperationError):
    """Raised when a key/value builder fails.

    Attributes:
        builder_name: Configured name of the failing builder
        phase: Phase that failed (initialization or one of the source calls)
    """

    def __init__(
        self,
        message: str,
        builder_name: str,
        phase: str,
        context: Dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            context={"builder": builder_name, "phase": phase, **(context or {})},
        )
        self.builder_name = builder_name
        self.phase = phase


class KeyValueBuilderConfigError(KeyValueBuilderError, ConfigurationError):
    """Wrapped builder error whose root cause is a configuration problem."""

    pass


class KeyValueWrappedError(HostConfigurationError):
    """Host error raised while a builder was running, re-wrapped for the host.

    The message is the host's own message. The builder details live on the
    chained ``KeyValueBuilderError``.
    """

    pass


def is_wrapped_error(error: BaseException) -> bool:
    """Check whether an error was already wrapped by a builder."""
    return isinstance(error, (KeyValueBuilderError, KeyValueWrappedError))


def wrap_builder_error(
    error: BaseException,
    builder_name: str,
    phase: str,
    context: Dict[str, Any] | None = None,
) -> Exception:
    """Wrap an error raised inside a builder.

    The original error is chained as ``__cause__`` of the result, so the
    caller can simply ``raise wrap_builder_error(...)``.

    Args:
        error: The exception to wrap
        builder_name: Configured name of the builder
        phase: Phase label, e.g. ``GET_VALUE_PHASE``
        context: Extra context (key, prefix, ...)

    Returns:
        The exception to raise. Already-wrapped errors are returned unchanged.
    """
    if is_wrapped_error(error):
        return error  # type: ignore[return-value]

    if isinstance(error, HostConfigurationError):
        root = error.__cause__ if error.__cause__ is not None else error
        inner = KeyValueBuilderError(
            f"'{builder_name}' {phase} ==> {root}",
            builder_name,
            phase,
            context=context,
        )
        inner.__cause__ = root
        wrapped = KeyValueWrappedError(str(error), context=error.context)
        wrapped.__cause__ = inner
        return wrapped

    error_cls = (
        KeyValueBuilderConfigError
        if isinstance(error, ConfigurationError)
        else KeyValueBuilderError
    )
    wrapped_error = error_cls(
        f"'{builder_name}' {phase}: {error}",
        builder_name,
        phase,
        context=context,
    )
    wrapped_error.__cause__ = error
    return wrapped_error


__all__ = [
    "BuilderOptionError",
    "GET_ALL_VALUES_PHASE",
    "GET_VALUE_PHASE",
    "HostConfigurationError",
    "INITIALIZATION_PHASE",
    "KeyValueBuilderConfigError",
    "KeyValueBuilderError",
    "KeyValueWrappedError",
    "is_wrapped_error",
    "wrap_builder_error",
]
