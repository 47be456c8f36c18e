from __future__ import annotations


class LoadingError(Exception):
    """Base class for loadflags errors."""


class StreamClosedError(LoadingError):
    """Raised when a completed stream is pushed to or waited on."""


class UnsupportedOperationError(LoadingError, TypeError):
    """Raised when an operation can't be tracked the way it's being used."""


def describe_operation(obj: object) -> str:
    return f"{type(obj).__module__}.{type(obj).__qualname__}"
