"""Cyphal stack errors, their errno codes and printable descriptions."""

from __future__ import annotations

import errno


class CyphalError(Exception):
    """Base of all Cyphal stack failures."""

    code: int = errno.EIO
    label: str = "CyphalError"


class ArgumentError(CyphalError):
    code = errno.EINVAL
    label = "ArgumentError"


class OutOfMemoryError(CyphalError):
    code = errno.ENOMEM
    label = "MemoryError"


class AnonymousError(CyphalError):
    code = errno.EINVAL
    label = "AnonymousError"


class CapacityError(CyphalError):
    code = errno.ENOMEM
    label = "CapacityError"


class AlreadyExistsError(CyphalError):
    code = errno.EEXIST
    label = "AlreadyExistsError"


class PlatformError(CyphalError):
    """Failure reported by the operating system, carrying its errno."""

    label = "PlatformError"

    def __init__(self, code: int) -> None:
        super().__init__(code)
        self.code = code

    def __str__(self) -> str:
        return f"PlatformError(code={self.code})"


class SerializationError(CyphalError):
    code = errno.EINVAL
    label = "SerializationError"


class ResponsePromiseExpired(CyphalError):
    code = errno.ETIMEDOUT
    label = "ResponsePromiseExpired"


class TooManyPendingRequestsError(CyphalError):
    code = errno.EBUSY
    label = "TooManyPendingRequestsError"


def _check(error: object) -> CyphalError:
    if not isinstance(error, CyphalError):
        raise TypeError(f"not a Cyphal error: {error!r}")
    return error


def error_to_code(error: CyphalError) -> int:
    """Map a Cyphal failure to its errno value."""
    return _check(error).code


def describe_error(error: CyphalError) -> str:
    """Short printable description of a Cyphal failure."""
    error = _check(error)
    if isinstance(error, PlatformError):
        return str(error)
    return error.label