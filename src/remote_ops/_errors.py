"""Normalized error hierarchy for remote_ops.

Every exception maps onto one :class:`~remote_ops._result.OperationStatus`.
Providers raise these at the native boundary and convert them into results
before returning to callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from remote_ops._result import OperationError, OperationResult, OperationStatus

if TYPE_CHECKING:
    from remote_ops._result import ResultT


class RemoteOpsError(Exception):
    """Base class for all remote_ops errors.

    :param message: Human-readable error description.
    :param path: The path involved in the error, if any.
    :param backend: The backend name involved, if any.
    :param code: Machine-readable error code. Defaults to the class code.
    :param retryable: Whether repeating the call may succeed.
    """

    status = OperationStatus.ERROR
    default_code = "ERROR"
    default_retryable = False

    def __init__(
        self,
        message: str = "",
        *,
        path: str | None = None,
        backend: str | None = None,
        code: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.path = path
        self.backend = backend
        self.code = code or self.default_code
        self.retryable = self.default_retryable if retryable is None else retryable
        super().__init__(message)

    @property
    def message(self) -> str:
        return super().__str__()

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.path is not None:
            parts.append(f"path={self.path!r}")
        if self.backend is not None:
            parts.append(f"backend={self.backend!r}")
        return " | ".join(parts) if len(parts) > 1 else parts[0]

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(super().__str__())]
        if self.path is not None:
            args.append(f"path={self.path!r}")
        if self.backend is not None:
            args.append(f"backend={self.backend!r}")
        if self.code != self.default_code:
            args.append(f"code={self.code!r}")
        return f"{cls}({', '.join(args)})"

    def to_error(self) -> OperationError:
        """Describe this exception as a result error payload."""
        return OperationError(
            code=self.code,
            message=self.message,
            retryable=self.retryable,
            cause=self.__cause__ or self,
        )

    def to_result(self) -> OperationResult[Any]:
        """Convert into a non-success :class:`OperationResult`."""
        return OperationResult(status=self.status, error=self.to_error())


class NotFound(RemoteOpsError):
    """Raised when a file, folder or bucket does not exist."""

    status = OperationStatus.NOT_FOUND
    default_code = "NOT_FOUND"


class PermissionDenied(RemoteOpsError):
    """Raised when access is denied by the storage backend."""

    status = OperationStatus.PERMISSION_DENIED
    default_code = "PERMISSION_DENIED"


class AlreadyExists(RemoteOpsError):
    """Raised when a target already exists and overwrite is not allowed."""

    default_code = "ALREADY_EXISTS"


class InvalidPath(RemoteOpsError):
    """Raised for malformed, unsafe, or out-of-scope paths."""

    default_code = "INVALID_PATH"


class CapabilityNotSupported(RemoteOpsError):
    """Raised when an operation requires an unsupported capability.

    :param capability: The name of the unsupported capability.
    """

    status = OperationStatus.UNIMPLEMENTED
    default_code = "UNIMPLEMENTED"

    def __init__(
        self,
        message: str = "",
        *,
        path: str | None = None,
        backend: str | None = None,
        capability: str = "",
    ) -> None:
        self.capability = capability
        super().__init__(message, path=path, backend=backend)

    def __str__(self) -> str:
        base = super().__str__()
        if self.capability:
            if base:
                return f"{base} | capability={self.capability!r}"
            return f"capability={self.capability!r}"
        return base


class ConnectionFailed(RemoteOpsError):
    """Raised when the backend cannot be reached, times out, or throttles."""

    status = OperationStatus.CONNECTION_FAILED
    default_code = "CONNECTION_FAILED"
    default_retryable = True


class Cancelled(RemoteOpsError):
    """Raised when a cancellation token fires during an operation."""

    status = OperationStatus.CANCELLED
    default_code = "CANCELLED"

    def __init__(self, message: str = "Operation was cancelled", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class PlanConflict(RemoteOpsError):
    """Raised when an operation plan cannot be resolved without guessing."""

    default_code = "PLAN_CONFLICT"


_STATUS_ERRORS: dict[OperationStatus, type[RemoteOpsError]] = {
    OperationStatus.NOT_FOUND: NotFound,
    OperationStatus.PERMISSION_DENIED: PermissionDenied,
    OperationStatus.UNIMPLEMENTED: CapabilityNotSupported,
    OperationStatus.CONNECTION_FAILED: ConnectionFailed,
    OperationStatus.CANCELLED: Cancelled,
    OperationStatus.ERROR: RemoteOpsError,
}

# Finer classes for ERROR results, keyed by code.
_CODE_ERRORS: dict[str, type[RemoteOpsError]] = {
    AlreadyExists.default_code: AlreadyExists,
    InvalidPath.default_code: InvalidPath,
    PlanConflict.default_code: PlanConflict,
}


def error_for_result(result: OperationResult[Any], *, path: str | None = None) -> RemoteOpsError:
    """Build the exception matching a non-success result.

    :param result: A result whose status is not ``SUCCESS``.
    :param path: Optional path to attach to the exception.
    :raises ValueError: If the result is a success.
    """
    if result.error is None:
        raise ValueError("Cannot build an error from a successful result")
    err = result.error
    cls = _STATUS_ERRORS[result.status]
    if cls is RemoteOpsError:
        cls = _CODE_ERRORS.get(err.code, RemoteOpsError)
    if cls is CapabilityNotSupported:
        exc: RemoteOpsError = CapabilityNotSupported(err.message, path=path)
    elif cls is Cancelled:
        exc = Cancelled(err.message, path=path)
    else:
        exc = cls(err.message, path=path, code=err.code, retryable=err.retryable)
    if isinstance(err.cause, BaseException) and err.cause is not exc:
        exc.__cause__ = err.cause
    return exc


def unwrap(result: OperationResult[ResultT], *, path: str | None = None) -> ResultT:
    """Return the result's data, raising the mapped exception on failure."""
    if result.is_success:
        return result.data  # type: ignore[return-value]
    raise error_for_result(result, path=path)
