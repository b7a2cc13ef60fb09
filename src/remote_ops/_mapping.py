"""Pure translation of backend-native failures into canonical statuses.

Each backend describes its failures with a closed variant type
(:class:`S3Failure`, :class:`SFTPFailure`, :class:`OSFailure`) and maps it with
a dedicated function. Mapping never performs I/O or retries. Precedence is
vendor code first, then transport status, then a non-retryable ``ERROR``.
"""

from __future__ import annotations

import dataclasses
import errno as _errno
from typing import TYPE_CHECKING, Any, Union

from remote_ops._errors import (
    CapabilityNotSupported,
    ConnectionFailed,
    NotFound,
    PermissionDenied,
    RemoteOpsError,
)
from remote_ops._result import OperationError, OperationResult, OperationStatus

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclasses.dataclass(frozen=True)
class MappedError:
    """Canonical description of a native failure."""

    status: OperationStatus
    code: str
    message: str
    retryable: bool = False

    def to_result(self, *, cause: Any = None) -> OperationResult[Any]:
        return OperationResult(
            status=self.status,
            error=OperationError(code=self.code, message=self.message, retryable=self.retryable, cause=cause),
        )

    def to_exception(self, *, path: str | None = None, backend: str | None = None) -> RemoteOpsError:
        """Build the matching :class:`RemoteOpsError` subclass."""
        if self.status is OperationStatus.NOT_FOUND:
            return NotFound(self.message, path=path, backend=backend, code=self.code)
        if self.status is OperationStatus.PERMISSION_DENIED:
            return PermissionDenied(self.message, path=path, backend=backend, code=self.code)
        if self.status is OperationStatus.CONNECTION_FAILED:
            return ConnectionFailed(self.message, path=path, backend=backend, code=self.code, retryable=self.retryable)
        if self.status is OperationStatus.UNIMPLEMENTED:
            return CapabilityNotSupported(self.message, path=path, backend=backend, capability=self.code)
        return RemoteOpsError(self.message, path=path, backend=backend, code=self.code, retryable=self.retryable)


# region: native failure variants
@dataclasses.dataclass(frozen=True)
class S3Failure:
    """An S3 error response.

    :param code: Vendor error code from the response body (e.g. ``"NoSuchKey"``).
    :param http_status: HTTP status code of the response, if known.
    :param message: Vendor message.
    """

    code: str | None = None
    http_status: int | None = None
    message: str = ""


@dataclasses.dataclass(frozen=True)
class SFTPFailure:
    """An SFTP failure.

    :param status: SFTP protocol status code (``SSH_FX_*``), if reported.
    :param errno: OS errno for socket-level failures.
    :param message: Server or transport message.
    """

    status: int | None = None
    errno: int | None = None
    message: str = ""


@dataclasses.dataclass(frozen=True)
class OSFailure:
    """A local filesystem or socket failure identified by errno."""

    errno: int | None = None
    message: str = ""


NativeFailure = Union[S3Failure, SFTPFailure, OSFailure]

# endregion

# region: S3
S3_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "NoSuchBucket", "NoSuchUpload"})
S3_DENIED_CODES = frozenset({"AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "AllAccessDisabled"})
S3_TRANSIENT_CODES = frozenset(
    {
        "RequestTimeout",
        "ServiceUnavailable",
        "SlowDown",
        "InternalError",
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "ProvisionedThroughputExceededException",
    }
)
TRANSIENT_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def map_s3_failure(failure: S3Failure) -> MappedError:
    """Map an S3 error response to a canonical status."""
    code = failure.code or ""
    message = failure.message or code or "S3 request failed"
    if code in S3_NOT_FOUND_CODES:
        return MappedError(OperationStatus.NOT_FOUND, code, message)
    if code in S3_DENIED_CODES:
        return MappedError(OperationStatus.PERMISSION_DENIED, code, message)
    if code in S3_TRANSIENT_CODES:
        return MappedError(OperationStatus.CONNECTION_FAILED, code, message, retryable=True)

    status = failure.http_status
    if status == 404:
        return MappedError(OperationStatus.NOT_FOUND, code or "NOT_FOUND", message)
    if status == 403:
        return MappedError(OperationStatus.PERMISSION_DENIED, code or "PERMISSION_DENIED", message)
    if status in TRANSIENT_HTTP_STATUSES:
        return MappedError(OperationStatus.CONNECTION_FAILED, code or f"HTTP_{status}", message, retryable=True)
    return MappedError(OperationStatus.ERROR, code or "S3_ERROR", message)


# endregion

# region: SFTP
SSH_FX_NO_SUCH_FILE = 2
SSH_FX_PERMISSION_DENIED = 3
SSH_FX_FAILURE = 4
SSH_FX_NO_CONNECTION = 6
SSH_FX_CONNECTION_LOST = 7
SSH_FX_OP_UNSUPPORTED = 8

TRANSIENT_ERRNOS = frozenset(
    {
        _errno.ECONNREFUSED,
        _errno.ECONNRESET,
        _errno.ECONNABORTED,
        _errno.ETIMEDOUT,
        _errno.EHOSTUNREACH,
        _errno.ENETUNREACH,
        _errno.EPIPE,
    }
)


def map_sftp_failure(failure: SFTPFailure) -> MappedError:
    """Map an SFTP protocol or transport failure to a canonical status."""
    message = failure.message or "SFTP request failed"
    if failure.status == SSH_FX_NO_SUCH_FILE or failure.errno == _errno.ENOENT:
        return MappedError(OperationStatus.NOT_FOUND, "ENOENT", message)
    if failure.status == SSH_FX_PERMISSION_DENIED or failure.errno in (_errno.EACCES, _errno.EPERM):
        return MappedError(OperationStatus.PERMISSION_DENIED, "EACCES", message)
    if failure.status == SSH_FX_OP_UNSUPPORTED:
        return MappedError(OperationStatus.UNIMPLEMENTED, "OP_UNSUPPORTED", message)
    if failure.status in (SSH_FX_NO_CONNECTION, SSH_FX_CONNECTION_LOST) or failure.errno in TRANSIENT_ERRNOS:
        code = _errno.errorcode.get(failure.errno, "CONNECTION_LOST") if failure.errno else "CONNECTION_LOST"
        return MappedError(OperationStatus.CONNECTION_FAILED, code, message, retryable=True)
    if failure.errno is not None:
        return MappedError(OperationStatus.ERROR, _errno.errorcode.get(failure.errno, "SFTP_ERROR"), message)
    return MappedError(OperationStatus.ERROR, "SFTP_ERROR", message)


# endregion

# region: local filesystem
_OS_ERROR_CODES: Mapping[int, str] = {
    _errno.EEXIST: "ALREADY_EXISTS",
    _errno.ENOTEMPTY: "NOT_EMPTY",
    _errno.EISDIR: "IS_DIRECTORY",
    _errno.ENOTDIR: "NOT_A_DIRECTORY",
    _errno.ENOSPC: "NO_SPACE",
}


def map_os_failure(failure: OSFailure) -> MappedError:
    """Map an errno-identified failure to a canonical status."""
    message = failure.message or "I/O error"
    if failure.errno == _errno.ENOENT:
        return MappedError(OperationStatus.NOT_FOUND, "NOT_FOUND", message)
    if failure.errno in (_errno.EACCES, _errno.EPERM):
        return MappedError(OperationStatus.PERMISSION_DENIED, "PERMISSION_DENIED", message)
    if failure.errno in TRANSIENT_ERRNOS:
        return MappedError(OperationStatus.CONNECTION_FAILED, _errno.errorcode[failure.errno], message, retryable=True)
    if failure.errno is not None and failure.errno in _OS_ERROR_CODES:
        return MappedError(OperationStatus.ERROR, _OS_ERROR_CODES[failure.errno], message)
    return MappedError(OperationStatus.ERROR, "IO_ERROR", message)


def os_failure_from(exc: OSError) -> OSFailure:
    """Describe an :class:`OSError` as an :class:`OSFailure`."""
    return OSFailure(errno=exc.errno, message=exc.strerror or str(exc))


# endregion


def map_failure(failure: NativeFailure) -> MappedError:
    """Dispatch to the mapping function of the failure's backend."""
    if isinstance(failure, S3Failure):
        return map_s3_failure(failure)
    if isinstance(failure, SFTPFailure):
        return map_sftp_failure(failure)
    if isinstance(failure, OSFailure):
        return map_os_failure(failure)
    raise TypeError(f"Unsupported failure type: {type(failure).__name__}")
