"""Capability-gated storage operations, planning and execution across backends."""

from remote_ops._cancellation import CancellationToken, CancellationTokenSource
from remote_ops._capabilities import Capability, CapabilitySet
from remote_ops._config import EngineConfig, ProviderConfig, RetryConfig
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
from remote_ops._executor import (
    ExecutionProgress,
    ExecutionResult,
    ExecutorState,
    OperationExecutor,
    OperationFailure,
)
from remote_ops._mapping import (
    MappedError,
    OSFailure,
    S3Failure,
    SFTPFailure,
    map_failure,
    map_os_failure,
    map_s3_failure,
    map_sftp_failure,
)
from remote_ops._messages import UserError, most_severe_error, summarize_results, to_user_error
from remote_ops._models import Entry, EntryType, ListPage, ProgressEvent, new_entry_id
from remote_ops._planner import (
    ChangeKind,
    ChangeSet,
    CopyConflictPolicy,
    EntryIdMap,
    OperationPlan,
    OperationType,
    PendingOperation,
    PlanSummary,
    build_operation_plan,
    detect_changes,
    resolve_copy_destination,
    validate_operation_plan,
)
from remote_ops._provider import SessionContext, StorageProvider
from remote_ops._registry import Registry, register_provider
from remote_ops._result import OperationError, OperationResult, OperationStatus
from remote_ops._retry import DEFAULT_RETRY_POLICY, NO_RETRY, S3_RETRY_POLICY, RetryPolicy, is_transient_error
from remote_ops._strategy import GenericTransferStrategy, TransferStrategy, select_transfer_strategy
from remote_ops._transfer import (
    DELETE_BATCH_SIZE,
    MULTIPART_THRESHOLD,
    PART_SIZE,
    CompletedPart,
    MultipartClient,
    delete_in_batches,
    list_all_keys,
    should_use_multipart_upload,
    upload_in_parts,
)
from remote_ops._types import DeleteOptions, ListOptions, ReadOptions, TransferOptions, WriteOptions

__version__ = "0.1.0"

__all__ = [
    # Providers
    "StorageProvider",
    "SessionContext",
    "Registry",
    "register_provider",
    # Capabilities
    "Capability",
    "CapabilitySet",
    # Results
    "OperationResult",
    "OperationStatus",
    "OperationError",
    "unwrap",
    "error_for_result",
    # Models & options
    "Entry",
    "EntryType",
    "ListPage",
    "ProgressEvent",
    "new_entry_id",
    "ListOptions",
    "ReadOptions",
    "WriteOptions",
    "DeleteOptions",
    "TransferOptions",
    # Error mapping & messages
    "MappedError",
    "S3Failure",
    "SFTPFailure",
    "OSFailure",
    "map_failure",
    "map_s3_failure",
    "map_sftp_failure",
    "map_os_failure",
    "UserError",
    "to_user_error",
    "most_severe_error",
    "summarize_results",
    # Retry
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "S3_RETRY_POLICY",
    "NO_RETRY",
    "is_transient_error",
    # Transfers
    "TransferStrategy",
    "GenericTransferStrategy",
    "select_transfer_strategy",
    "MultipartClient",
    "CompletedPart",
    "upload_in_parts",
    "delete_in_batches",
    "list_all_keys",
    "should_use_multipart_upload",
    "MULTIPART_THRESHOLD",
    "PART_SIZE",
    "DELETE_BATCH_SIZE",
    # Planning & execution
    "ChangeKind",
    "ChangeSet",
    "CopyConflictPolicy",
    "EntryIdMap",
    "OperationPlan",
    "OperationType",
    "PendingOperation",
    "PlanSummary",
    "build_operation_plan",
    "detect_changes",
    "resolve_copy_destination",
    "validate_operation_plan",
    "OperationExecutor",
    "ExecutorState",
    "ExecutionProgress",
    "ExecutionResult",
    "OperationFailure",
    # Cancellation
    "CancellationToken",
    "CancellationTokenSource",
    # Config
    "EngineConfig",
    "ProviderConfig",
    "RetryConfig",
    # Errors
    "RemoteOpsError",
    "NotFound",
    "AlreadyExists",
    "PermissionDenied",
    "InvalidPath",
    "CapabilityNotSupported",
    "ConnectionFailed",
    "Cancelled",
    "PlanConflict",
    # Version
    "__version__",
]
