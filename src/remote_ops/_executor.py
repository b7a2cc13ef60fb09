"""OperationExecutor: runs pending operations against a provider.

Operations run one at a time in the given order. A failing operation is
recorded and the batch moves on; cancellation stops the batch before the
next operation starts.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable

from remote_ops._cancellation import CancellationToken, CancellationTokenSource
from remote_ops._errors import Cancelled
from remote_ops._models import EntryType
from remote_ops._planner import OperationType
from remote_ops._result import OperationResult, OperationStatus, error
from remote_ops._types import DeleteOptions, TransferOptions, WriteOptions

if TYPE_CHECKING:
    from collections.abc import Iterable

    from remote_ops._models import ProgressEvent
    from remote_ops._planner import PendingOperation
    from remote_ops._provider import StorageProvider

log = logging.getLogger(__name__)


class ExecutorState(enum.Enum):
    """Lifecycle of one executor run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclasses.dataclass(frozen=True)
class ExecutionProgress:
    """Progress of a batch.

    :param overall_progress: Whole-batch completion, 0 to 100.
    :param description: ``"<type>: <path>"`` of the current operation, or a final summary.
    :param current_file: Path being processed, if any.
    :param current_index: Zero-based index of the current operation.
    :param total_count: Number of operations in the batch.
    :param operation_type: Type of the current operation, if any.
    """

    overall_progress: int
    description: str
    current_file: str | None
    current_index: int
    total_count: int
    operation_type: OperationType | None = None


@dataclasses.dataclass(frozen=True)
class OperationFailure:
    """A failed operation and the result that reported it."""

    operation: PendingOperation
    result: OperationResult[Any]


@dataclasses.dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a batch.

    :param success_count: Operations that succeeded.
    :param failure_count: Operations that failed.
    :param cancelled: Whether the batch stopped early on cancellation.
    :param error: ``"N operation(s) failed"`` when anything failed.
    :param failures: Details of each failure, in execution order.
    """

    success_count: int
    failure_count: int
    cancelled: bool
    error: str | None = None
    failures: tuple[OperationFailure, ...] = ()


ProgressHandler = Callable[[ExecutionProgress], None]
ErrorHandler = Callable[["PendingOperation", OperationResult[Any]], None]


class OperationExecutor:
    """Sequential, cancellable, failure-tolerant runner for pending operations.

    One run may be in flight per executor. :meth:`cancel` may be called from
    any thread.

    :param provider: Provider the operations are applied to.
    :param logger: Logger for diagnostics. Defaults to the module logger.
    """

    def __init__(self, provider: StorageProvider, *, logger: logging.Logger | None = None) -> None:
        self._provider = provider
        self._log = logger or log
        self._lock = threading.Lock()
        self._state = ExecutorState.IDLE
        self._source: CancellationTokenSource | None = None

    @property
    def state(self) -> ExecutorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ExecutorState.RUNNING

    def cancel(self) -> None:
        """Request cancellation of the current run. No-op when idle."""
        with self._lock:
            source = self._source
        if source is not None:
            source.cancel()

    def execute(
        self,
        operations: Iterable[PendingOperation],
        *,
        on_progress: ProgressHandler | None = None,
        on_operation_error: ErrorHandler | None = None,
        token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Run ``operations`` in order.

        :param operations: Operations to apply, typically an :class:`OperationPlan`.
        :param on_progress: Receives progress after each operation step.
        :param on_operation_error: Receives each failed operation and its result.
        :param token: External cancellation signal, combined with :meth:`cancel`.
        :raises RuntimeError: If a run is already in flight.
        """
        pending = list(operations)
        with self._lock:
            if self._state is ExecutorState.RUNNING:
                raise RuntimeError("OperationExecutor is already running")
            self._state = ExecutorState.RUNNING
            source = CancellationTokenSource.linked([token] if token is not None else [])
            self._source = source

        try:
            result = self._run(pending, source.token, on_progress, on_operation_error)
        except BaseException:
            with self._lock:
                self._state = ExecutorState.IDLE
                self._source = None
            raise
        finally:
            source.close()

        with self._lock:
            self._state = ExecutorState.CANCELLED if result.cancelled else ExecutorState.COMPLETED
            self._source = None
        return result

    def _run(
        self,
        pending: list[PendingOperation],
        token: CancellationToken,
        on_progress: ProgressHandler | None,
        on_operation_error: ErrorHandler | None,
    ) -> ExecutionResult:
        total = len(pending)
        succeeded = 0
        failures: list[OperationFailure] = []
        cancelled = False

        for index, operation in enumerate(pending):
            if token.is_cancelled:
                cancelled = True
                break

            base = index / total * 100 if total else 0.0

            def step(
                event: ProgressEvent,
                _op: PendingOperation = operation,
                _index: int = index,
                _base: float = base,
            ) -> None:
                self._emit(
                    on_progress,
                    ExecutionProgress(
                        overall_progress=round(_base + event.percentage / total),
                        description=f"{_op.type.value}: {_op.path}",
                        current_file=event.current_file or _op.path,
                        current_index=_index,
                        total_count=total,
                        operation_type=_op.type,
                    ),
                )

            self._emit(
                on_progress,
                ExecutionProgress(
                    overall_progress=round(base),
                    description=f"{operation.type.value}: {operation.path}",
                    current_file=operation.path,
                    current_index=index,
                    total_count=total,
                    operation_type=operation.type,
                ),
            )

            result = self.dispatch(operation, token=token, on_progress=step)
            if result.is_success:
                succeeded += 1
                continue

            if result.status is OperationStatus.CANCELLED and token.is_cancelled:
                cancelled = True
                break

            self._log.warning("Operation %s (%s) failed: %r", operation.id, operation.description, result)
            failures.append(OperationFailure(operation=operation, result=result))
            if on_operation_error is not None:
                on_operation_error(operation, result)

        if not cancelled:
            self._emit(
                on_progress,
                ExecutionProgress(
                    overall_progress=100,
                    description=f"Completed: {succeeded} succeeded, {len(failures)} failed",
                    current_file=None,
                    current_index=total,
                    total_count=total,
                ),
            )

        return ExecutionResult(
            success_count=succeeded,
            failure_count=len(failures),
            cancelled=cancelled,
            error=f"{len(failures)} operation(s) failed" if failures else None,
            failures=tuple(failures),
        )

    def _emit(self, on_progress: ProgressHandler | None, progress: ExecutionProgress) -> None:
        if on_progress is not None:
            on_progress(progress)

    def dispatch(
        self,
        operation: PendingOperation,
        *,
        token: CancellationToken | None = None,
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ) -> OperationResult[Any]:
        """Apply a single operation to the provider and return its result.

        Creates, moves and copies never replace an existing destination; a
        clash fails the operation.
        """
        provider = self._provider
        transfer = TransferOptions(recursive=operation.recursive, on_progress=on_progress, token=token)
        placement = dataclasses.replace(transfer, overwrite=False)
        kind = operation.type
        try:
            if kind is OperationType.CREATE:
                path = _required(operation.destination, operation)
                if operation.entry_type in (EntryType.DIRECTORY, EntryType.BUCKET):
                    return provider.mkdir(path)
                return provider.write(
                    path, operation.content or b"", WriteOptions(overwrite=False, on_progress=on_progress, token=token)
                )
            if kind is OperationType.DELETE:
                return provider.delete(
                    _required(operation.source, operation),
                    DeleteOptions(recursive=operation.recursive, on_progress=on_progress, token=token),
                )
            if kind in (OperationType.MOVE, OperationType.RENAME):
                return provider.move(
                    _required(operation.source, operation), _required(operation.destination, operation), placement
                )
            if kind is OperationType.COPY:
                return provider.copy(
                    _required(operation.source, operation), _required(operation.destination, operation), placement
                )
            if kind is OperationType.DOWNLOAD:
                return provider.download_to_local(
                    _required(operation.source, operation), _required(operation.destination, operation), transfer
                )
            if kind is OperationType.UPLOAD:
                return provider.upload_from_local(
                    _required(operation.source, operation), _required(operation.destination, operation), transfer
                )
        except Cancelled as exc:
            return exc.to_result()
        return error("UNKNOWN_OPERATION", f"Unknown operation type: {kind!r}")


def _required(value: str | None, operation: PendingOperation) -> str:
    if value is None:
        raise ValueError(f"Operation {operation.id} ({operation.type.value}) is missing a path")
    return value
