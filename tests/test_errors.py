"""Tests for the error hierarchy and its conversion to and from results."""

from __future__ import annotations

import pytest

from remote_ops._errors import (
    AlreadyExists,
    Cancelled,
    CapabilityNotSupported,
    ConnectionFailed,
    InvalidPath,
    NotFound,
    PermissionDenied,
    PlanConflict,
    RemoteOpsError,
    error_for_result,
    unwrap,
)
from remote_ops._result import OperationStatus, error, not_found, success, unimplemented


class TestBaseError:
    def test_default_attributes(self) -> None:
        e = RemoteOpsError("boom")
        assert e.path is None
        assert e.backend is None
        assert e.code == "ERROR"
        assert e.retryable is False

    def test_with_attributes(self) -> None:
        e = RemoteOpsError("boom", path="a/b.txt", backend="s3", code="Weird", retryable=True)
        assert e.path == "a/b.txt"
        assert e.backend == "s3"
        assert e.code == "Weird"
        assert e.retryable is True

    def test_str_includes_context(self) -> None:
        e = NotFound("missing", path="data/file.txt", backend="local")
        assert str(e) == "missing | path='data/file.txt' | backend='local'"
        assert e.message == "missing"

    def test_str_without_context(self) -> None:
        assert str(RemoteOpsError("plain")) == "plain"

    def test_repr_shows_non_default_code(self) -> None:
        e = NotFound("missing", path="x", code="NoSuchKey")
        assert repr(e) == "NotFound('missing', path='x', code='NoSuchKey')"


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [
            NotFound,
            PermissionDenied,
            AlreadyExists,
            InvalidPath,
            CapabilityNotSupported,
            ConnectionFailed,
            Cancelled,
            PlanConflict,
        ],
    )
    def test_is_remote_ops_error(self, cls: type[RemoteOpsError]) -> None:
        assert issubclass(cls, RemoteOpsError)

    @pytest.mark.parametrize(
        ("exc", "status"),
        [
            (NotFound("x"), OperationStatus.NOT_FOUND),
            (PermissionDenied("x"), OperationStatus.PERMISSION_DENIED),
            (AlreadyExists("x"), OperationStatus.ERROR),
            (InvalidPath("x"), OperationStatus.ERROR),
            (CapabilityNotSupported("x"), OperationStatus.UNIMPLEMENTED),
            (ConnectionFailed("x"), OperationStatus.CONNECTION_FAILED),
            (Cancelled(), OperationStatus.CANCELLED),
            (PlanConflict("x"), OperationStatus.ERROR),
        ],
    )
    def test_to_result_status(self, exc: RemoteOpsError, status: OperationStatus) -> None:
        result = exc.to_result()
        assert result.status is status
        assert result.error is not None
        assert result.error.code == exc.code

    def test_connection_failed_is_retryable(self) -> None:
        assert ConnectionFailed("timeout").to_result().retryable

    def test_cancelled_default_message(self) -> None:
        assert Cancelled().message == "Operation was cancelled"

    def test_capability_str(self) -> None:
        e = CapabilityNotSupported("nope", capability="presigned_urls")
        assert str(e) == "nope | capability='presigned_urls'"

    def test_to_error_keeps_cause(self) -> None:
        original = OSError("disk gone")
        try:
            try:
                raise original
            except OSError as exc:
                raise RemoteOpsError("wrapped") from exc
        except RemoteOpsError as wrapped:
            assert wrapped.to_error().cause is original


class TestErrorForResult:
    def test_success_rejected(self) -> None:
        with pytest.raises(ValueError, match="successful"):
            error_for_result(success(1))

    def test_not_found(self) -> None:
        exc = error_for_result(not_found("a.txt"), path="a.txt")
        assert isinstance(exc, NotFound)
        assert exc.path == "a.txt"

    def test_unimplemented(self) -> None:
        assert isinstance(error_for_result(unimplemented("copy")), CapabilityNotSupported)

    def test_error_code_selects_subclass(self) -> None:
        assert isinstance(error_for_result(AlreadyExists("x").to_result()), AlreadyExists)
        assert isinstance(error_for_result(PlanConflict("x").to_result()), PlanConflict)

    def test_unknown_error_code_keeps_code(self) -> None:
        exc = error_for_result(error("NOT_EMPTY", "Directory not empty", retryable=False))
        assert type(exc) is RemoteOpsError
        assert exc.code == "NOT_EMPTY"

    def test_cause_is_chained(self) -> None:
        cause = OSError("boom")
        exc = error_for_result(error("IO_ERROR", "boom", cause=cause))
        assert exc.__cause__ is cause


class TestUnwrap:
    def test_success_returns_data(self) -> None:
        assert unwrap(success(b"abc")) == b"abc"

    def test_failure_raises(self) -> None:
        with pytest.raises(NotFound):
            unwrap(not_found("gone"))

    def test_method_form(self) -> None:
        with pytest.raises(NotFound):
            not_found("gone").unwrap()
        assert success(3).unwrap() == 3
