"""User-facing descriptions of operation results.

Pure functions that turn canonical results into titles, messages and
suggested actions for display. Nothing here touches a provider.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from remote_ops._result import OperationStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from remote_ops._result import OperationResult


@dataclasses.dataclass(frozen=True)
class UserError:
    """A failure phrased for an end user.

    :param title: Short heading (e.g. ``"Access Denied"``).
    :param message: Detailed description.
    :param can_retry: Whether retrying the same action may help.
    :param is_unsupported: Whether the backend lacks the feature entirely.
    :param action: Suggested next step, if any.
    :param code: Underlying error code.
    """

    title: str
    message: str
    can_retry: bool = False
    is_unsupported: bool = False
    action: str | None = None
    code: str | None = None


_TITLES = {
    OperationStatus.NOT_FOUND: "Not Found",
    OperationStatus.PERMISSION_DENIED: "Access Denied",
    OperationStatus.UNIMPLEMENTED: "Not Supported",
    OperationStatus.CONNECTION_FAILED: "Connection Failed",
    OperationStatus.CANCELLED: "Cancelled",
    OperationStatus.ERROR: "Error",
}

_ACTIONS = {
    OperationStatus.NOT_FOUND: "Check that the path is correct and try again",
    OperationStatus.PERMISSION_DENIED: "Verify your credentials and access permissions",
    OperationStatus.UNIMPLEMENTED: "This feature is not available for this storage type",
    OperationStatus.CONNECTION_FAILED: "Check your network connection and try again",
    OperationStatus.CANCELLED: "Start a new operation if needed",
}

# Highest first.
_SEVERITY = (
    OperationStatus.PERMISSION_DENIED,
    OperationStatus.CONNECTION_FAILED,
    OperationStatus.ERROR,
    OperationStatus.NOT_FOUND,
    OperationStatus.UNIMPLEMENTED,
    OperationStatus.CANCELLED,
)


def to_user_error(result: OperationResult[Any]) -> UserError | None:
    """Describe a failed result for display; ``None`` for successes."""
    if result.is_success or result.error is None:
        return None
    err = result.error
    status = result.status
    can_retry = status is OperationStatus.CONNECTION_FAILED or (status is OperationStatus.ERROR and err.retryable)
    return UserError(
        title=_TITLES[status],
        message=err.message or _TITLES[status],
        can_retry=can_retry,
        is_unsupported=status is OperationStatus.UNIMPLEMENTED,
        action=_ACTIONS.get(status),
        code=err.code,
    )


def most_severe_error(results: Iterable[OperationResult[Any]]) -> OperationResult[Any] | None:
    """Pick the failure a user should see first from a batch of results."""
    failures = [r for r in results if not r.is_success]
    if not failures:
        return None
    return min(failures, key=lambda r: _SEVERITY.index(r.status))


def summarize_results(results: Iterable[OperationResult[Any]]) -> str:
    """One-line summary such as ``"3 succeeded, 1 failed (1 access denied)"``."""
    items = list(results)
    succeeded = sum(1 for r in items if r.is_success)
    failed = len(items) - succeeded
    if failed == 0:
        return f"{succeeded} succeeded"
    counts: dict[OperationStatus, int] = {}
    for r in items:
        if not r.is_success:
            counts[r.status] = counts.get(r.status, 0) + 1
    details = ", ".join(f"{counts[s]} {_TITLES[s].lower()}" for s in _SEVERITY if s in counts)
    return f"{succeeded} succeeded, {failed} failed ({details})"
