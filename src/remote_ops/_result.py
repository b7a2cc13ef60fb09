"""Canonical success/failure envelope returned by every provider operation."""

from __future__ import annotations

import dataclasses
import enum
from typing import Any, Generic, TypeVar

ResultT = TypeVar("ResultT")


class OperationStatus(enum.Enum):
    """Outcome of a provider operation."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    UNIMPLEMENTED = "unimplemented"
    CONNECTION_FAILED = "connection_failed"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclasses.dataclass(frozen=True)
class OperationError:
    """Failure details carried by a non-success result.

    :param code: Machine-readable error code (e.g. ``"NOT_FOUND"``, ``"NoSuchBucket"``).
    :param message: Human-readable description.
    :param retryable: Whether repeating the call may succeed.
    :param cause: The underlying exception or native error, if any.
    """

    code: str
    message: str
    retryable: bool = False
    cause: Any = dataclasses.field(default=None, compare=False)


@dataclasses.dataclass(frozen=True)
class OperationResult(Generic[ResultT]):
    """Result of a provider operation.

    ``error`` is set exactly when ``status`` is not ``SUCCESS``. ``data`` is
    only ever set on success; operations without a payload succeed with
    ``data=None``.

    :param status: Canonical outcome.
    :param data: Payload of a successful operation.
    :param error: Failure details of an unsuccessful operation.
    """

    status: OperationStatus
    data: ResultT | None = None
    error: OperationError | None = None

    def __post_init__(self) -> None:
        if self.status is OperationStatus.SUCCESS:
            if self.error is not None:
                raise ValueError("A successful result cannot carry an error")
        else:
            if self.error is None:
                raise ValueError(f"A {self.status.value} result requires an error")
            if self.data is not None:
                raise ValueError(f"A {self.status.value} result cannot carry data")

    @property
    def is_success(self) -> bool:
        return self.status is OperationStatus.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    def unwrap(self, *, path: str | None = None) -> ResultT:
        """Return ``data`` or raise the exception matching the failure status."""
        from remote_ops._errors import unwrap

        return unwrap(self, path=path)

    def __repr__(self) -> str:
        if self.is_success:
            return f"OperationResult(SUCCESS, data={self.data!r})"
        assert self.error is not None
        return f"OperationResult({self.status.name}, code={self.error.code!r}, message={self.error.message!r})"


# region: factories
def success(data: ResultT | None = None) -> OperationResult[ResultT]:
    return OperationResult(status=OperationStatus.SUCCESS, data=data)


def not_found(path: str, *, cause: Any = None) -> OperationResult[Any]:
    return OperationResult(
        status=OperationStatus.NOT_FOUND,
        error=OperationError(code="NOT_FOUND", message=f"Path not found: {path}", cause=cause),
    )


def permission_denied(path: str, *, cause: Any = None) -> OperationResult[Any]:
    return OperationResult(
        status=OperationStatus.PERMISSION_DENIED,
        error=OperationError(code="PERMISSION_DENIED", message=f"Access denied: {path}", cause=cause),
    )


def unimplemented(operation: str) -> OperationResult[Any]:
    return OperationResult(
        status=OperationStatus.UNIMPLEMENTED,
        error=OperationError(code="UNIMPLEMENTED", message=f"{operation} not supported by this provider"),
    )


def connection_failed(message: str, *, cause: Any = None) -> OperationResult[Any]:
    return OperationResult(
        status=OperationStatus.CONNECTION_FAILED,
        error=OperationError(code="CONNECTION_FAILED", message=message, retryable=True, cause=cause),
    )


def cancelled() -> OperationResult[Any]:
    return OperationResult(
        status=OperationStatus.CANCELLED,
        error=OperationError(code="CANCELLED", message="Operation was cancelled"),
    )


def error(code: str, message: str, *, retryable: bool = False, cause: Any = None) -> OperationResult[Any]:
    return OperationResult(
        status=OperationStatus.ERROR,
        error=OperationError(code=code, message=message, retryable=retryable, cause=cause),
    )


# endregion
