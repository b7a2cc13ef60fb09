"""Tests for native failure mapping (S3, SFTP, OS)."""

from __future__ import annotations

import errno

import pytest

from remote_ops._errors import CapabilityNotSupported, ConnectionFailed, NotFound, PermissionDenied, RemoteOpsError
from remote_ops._mapping import (
    SSH_FX_CONNECTION_LOST,
    SSH_FX_FAILURE,
    SSH_FX_NO_SUCH_FILE,
    SSH_FX_OP_UNSUPPORTED,
    SSH_FX_PERMISSION_DENIED,
    MappedError,
    OSFailure,
    S3Failure,
    SFTPFailure,
    map_failure,
    map_os_failure,
    map_s3_failure,
    map_sftp_failure,
    os_failure_from,
)
from remote_ops._result import OperationStatus


class TestS3Mapping:
    @pytest.mark.parametrize("code", ["NoSuchKey", "NotFound", "NoSuchBucket", "NoSuchUpload"])
    def test_not_found_codes(self, code: str) -> None:
        mapped = map_s3_failure(S3Failure(code=code, http_status=404))
        assert mapped.status is OperationStatus.NOT_FOUND
        assert mapped.code == code
        assert not mapped.retryable

    @pytest.mark.parametrize("code", ["AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"])
    def test_denied_codes(self, code: str) -> None:
        assert map_s3_failure(S3Failure(code=code)).status is OperationStatus.PERMISSION_DENIED

    @pytest.mark.parametrize("code", ["SlowDown", "RequestTimeout", "ServiceUnavailable", "Throttling"])
    def test_transient_codes_are_retryable(self, code: str) -> None:
        mapped = map_s3_failure(S3Failure(code=code))
        assert mapped.status is OperationStatus.CONNECTION_FAILED
        assert mapped.retryable

    def test_code_wins_over_http_status(self) -> None:
        mapped = map_s3_failure(S3Failure(code="NoSuchKey", http_status=500))
        assert mapped.status is OperationStatus.NOT_FOUND

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_transient_http_statuses(self, status: int) -> None:
        mapped = map_s3_failure(S3Failure(http_status=status))
        assert mapped.status is OperationStatus.CONNECTION_FAILED
        assert mapped.code == f"HTTP_{status}"
        assert mapped.retryable

    def test_http_404_without_code(self) -> None:
        assert map_s3_failure(S3Failure(http_status=404)).status is OperationStatus.NOT_FOUND

    def test_http_403_without_code(self) -> None:
        assert map_s3_failure(S3Failure(http_status=403)).status is OperationStatus.PERMISSION_DENIED

    def test_unknown_code_is_plain_error(self) -> None:
        mapped = map_s3_failure(S3Failure(code="BucketAlreadyOwnedByYou", http_status=409, message="yours"))
        assert mapped == MappedError(OperationStatus.ERROR, "BucketAlreadyOwnedByYou", "yours")

    def test_empty_failure(self) -> None:
        mapped = map_s3_failure(S3Failure())
        assert mapped.status is OperationStatus.ERROR
        assert mapped.code == "S3_ERROR"


class TestSFTPMapping:
    def test_no_such_file(self) -> None:
        assert map_sftp_failure(SFTPFailure(status=SSH_FX_NO_SUCH_FILE)).status is OperationStatus.NOT_FOUND

    def test_enoent(self) -> None:
        assert map_sftp_failure(SFTPFailure(errno=errno.ENOENT)).status is OperationStatus.NOT_FOUND

    def test_permission_denied(self) -> None:
        mapped = map_sftp_failure(SFTPFailure(status=SSH_FX_PERMISSION_DENIED))
        assert mapped.status is OperationStatus.PERMISSION_DENIED

    def test_op_unsupported(self) -> None:
        mapped = map_sftp_failure(SFTPFailure(status=SSH_FX_OP_UNSUPPORTED))
        assert mapped.status is OperationStatus.UNIMPLEMENTED

    def test_connection_lost_is_retryable(self) -> None:
        mapped = map_sftp_failure(SFTPFailure(status=SSH_FX_CONNECTION_LOST, message="EOF"))
        assert mapped.status is OperationStatus.CONNECTION_FAILED
        assert mapped.code == "CONNECTION_LOST"
        assert mapped.retryable

    def test_socket_timeout_errno(self) -> None:
        mapped = map_sftp_failure(SFTPFailure(errno=errno.ETIMEDOUT))
        assert mapped.status is OperationStatus.CONNECTION_FAILED
        assert mapped.code == "ETIMEDOUT"

    def test_generic_failure(self) -> None:
        mapped = map_sftp_failure(SFTPFailure(status=SSH_FX_FAILURE, message="Failure"))
        assert mapped.status is OperationStatus.ERROR
        assert not mapped.retryable


class TestOSMapping:
    def test_enoent(self) -> None:
        assert map_os_failure(OSFailure(errno=errno.ENOENT)).status is OperationStatus.NOT_FOUND

    @pytest.mark.parametrize("err", [errno.EACCES, errno.EPERM])
    def test_denied(self, err: int) -> None:
        assert map_os_failure(OSFailure(errno=err)).status is OperationStatus.PERMISSION_DENIED

    def test_connection_reset_is_retryable(self) -> None:
        mapped = map_os_failure(OSFailure(errno=errno.ECONNRESET))
        assert mapped.status is OperationStatus.CONNECTION_FAILED
        assert mapped.retryable

    @pytest.mark.parametrize(
        ("err", "code"),
        [
            (errno.EEXIST, "ALREADY_EXISTS"),
            (errno.ENOTEMPTY, "NOT_EMPTY"),
            (errno.EISDIR, "IS_DIRECTORY"),
            (errno.ENOTDIR, "NOT_A_DIRECTORY"),
        ],
    )
    def test_named_error_codes(self, err: int, code: str) -> None:
        mapped = map_os_failure(OSFailure(errno=err))
        assert mapped.status is OperationStatus.ERROR
        assert mapped.code == code

    def test_unknown_errno(self) -> None:
        assert map_os_failure(OSFailure(errno=None)).code == "IO_ERROR"

    def test_os_failure_from(self) -> None:
        failure = os_failure_from(FileNotFoundError(errno.ENOENT, "No such file or directory", "x"))
        assert failure == OSFailure(errno=errno.ENOENT, message="No such file or directory")


class TestDispatchAndConversion:
    def test_map_failure_dispatches(self) -> None:
        assert map_failure(S3Failure(code="NoSuchKey")).status is OperationStatus.NOT_FOUND
        assert map_failure(SFTPFailure(status=SSH_FX_PERMISSION_DENIED)).status is OperationStatus.PERMISSION_DENIED
        assert map_failure(OSFailure(errno=errno.ENOENT)).status is OperationStatus.NOT_FOUND

    @pytest.mark.parametrize(
        ("status", "cls"),
        [
            (OperationStatus.NOT_FOUND, NotFound),
            (OperationStatus.PERMISSION_DENIED, PermissionDenied),
            (OperationStatus.CONNECTION_FAILED, ConnectionFailed),
            (OperationStatus.UNIMPLEMENTED, CapabilityNotSupported),
            (OperationStatus.ERROR, RemoteOpsError),
        ],
    )
    def test_to_exception(self, status: OperationStatus, cls: type[RemoteOpsError]) -> None:
        exc = MappedError(status, "CODE", "msg").to_exception(path="p", backend="s3")
        assert type(exc) is cls
        assert exc.path == "p"
        assert exc.backend == "s3"

    def test_to_result_round_trip_keeps_retryable(self) -> None:
        result = MappedError(OperationStatus.CONNECTION_FAILED, "SlowDown", "slow", retryable=True).to_result()
        assert result.status is OperationStatus.CONNECTION_FAILED
        assert result.retryable
