"""StorageProvider: the contract every backend implements.

All public operations return an :class:`~remote_ops._result.OperationResult`.
Expected failures (missing objects, denied access, unsupported features,
network trouble) never raise; they come back as non-success results.
Exceptions escape only for programmer errors.
"""

from __future__ import annotations

import abc
import dataclasses
import logging
import os
import stat as _stat
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from remote_ops._capabilities import Capability
from remote_ops._errors import CapabilityNotSupported, RemoteOpsError
from remote_ops._mapping import map_os_failure, os_failure_from
from remote_ops._models import Entry, EntryType
from remote_ops._path import as_directory, is_directory_path, join_path
from remote_ops._result import OperationResult, success, unimplemented
from remote_ops._retry import DEFAULT_RETRY_POLICY
from remote_ops._strategy import GenericTransferStrategy, check_destination, is_recursive, select_transfer_strategy
from remote_ops._transfer import report_progress
from remote_ops._types import DeleteOptions, ListOptions, ReadOptions, TransferOptions, WriteOptions

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType

    from remote_ops._capabilities import CapabilitySet
    from remote_ops._models import ListPage
    from remote_ops._retry import RetryPolicy
    from remote_ops._strategy import AcceleratedTransfer, TransferStrategy
    from remote_ops._types import Metadata, PathLike, WritableContent

T = TypeVar("T")

log = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SessionContext:
    """Mutable-by-replacement session state of one provider instance.

    Only the owner of the provider changes it, through ``set_container`` /
    ``set_region`` / ``connect``. Share a provider between concurrent users
    by giving each one a :meth:`StorageProvider.clone`.

    :param container: Current bucket or share, if the backend has containers.
    :param region: Current region, if the backend is regional.
    """

    container: str | None = None
    region: str | None = None


class StorageProvider(abc.ABC):
    """Abstract base class for storage providers.

    :param retry: Policy wrapped around single network calls.
    :param logger: Logger for diagnostics. Defaults to the module logger.
    :param session: Initial session state.
    :param accelerated_transfer: Native move/copy strategy, if the backend has one.
    """

    def __init__(
        self,
        *,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
        session: SessionContext | None = None,
        accelerated_transfer: AcceleratedTransfer | None = None,
    ) -> None:
        self._retry = retry or DEFAULT_RETRY_POLICY
        self._log = logger or log
        self._session = session or SessionContext()
        self._accelerated_transfer = accelerated_transfer
        self._generic_transfer = GenericTransferStrategy(
            read=self.read,
            write=self.write,
            delete=self.delete,
            list=self.list,
        )

    # region: identity and capabilities
    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Unique identifier for this provider type (e.g. ``'local'``, ``'s3'``)."""

    @property
    @abc.abstractmethod
    def capabilities(self) -> CapabilitySet:
        """Declared capabilities, fixed for the provider's lifetime."""

    def has_capability(self, cap: Capability) -> bool:
        return self.capabilities.supports(cap)

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def transfer_strategy(self) -> TransferStrategy:
        """Strategy used by :meth:`move` and :meth:`copy`."""
        return select_transfer_strategy(self.capabilities, self._generic_transfer, self._accelerated_transfer)

    @abc.abstractmethod
    def clone(self) -> StorageProvider:
        """A fresh provider with the same configuration and session."""

    # endregion

    # region: result plumbing
    def _run(self, operation: str, fn: Callable[[], T], *, path: str = "") -> OperationResult[T]:
        """Call ``fn`` and wrap its return value or taxonomy error in a result."""
        try:
            return success(fn())
        except RemoteOpsError as exc:
            if exc.backend is None:
                exc.backend = self.name
            self._log.debug("%s %r failed on %s: %r", operation, path, self.name, exc)
            return exc.to_result()

    def _gated(
        self, cap: Capability, operation: str, fn: Callable[[], T], *, path: str = ""
    ) -> OperationResult[T]:
        if not self.has_capability(cap):
            return unimplemented(operation)
        return self._run(operation, fn, path=path)

    def _require(self, cap: Capability, path: str = "") -> None:
        if not self.has_capability(cap):
            raise CapabilityNotSupported(
                f"{cap.value} not supported by this provider", path=path, backend=self.name, capability=cap.value
            )

    @contextmanager
    def _local_errors(self, path: str) -> Iterator[None]:
        """Map local filesystem errors on the local side of a transfer."""
        try:
            yield
        except OSError as exc:
            mapped = map_os_failure(os_failure_from(exc))
            raise mapped.to_exception(path=path, backend="local") from exc

    # endregion

    # region: core operations
    @abc.abstractmethod
    def list(self, path: str = "", options: ListOptions | None = None) -> OperationResult[ListPage]:
        """List entries under a directory path."""

    @abc.abstractmethod
    def get_metadata(self, path: str) -> OperationResult[Entry]:
        """Describe a single object."""

    @abc.abstractmethod
    def exists(self, path: str) -> OperationResult[bool]:
        """Whether an object exists. A missing object is a successful ``False``."""

    @abc.abstractmethod
    def read(self, path: str, options: ReadOptions | None = None) -> OperationResult[bytes]:
        """Read an object's content, optionally a byte range."""

    @abc.abstractmethod
    def write(
        self, path: str, content: WritableContent, options: WriteOptions | None = None
    ) -> OperationResult[None]:
        """Write an object's content."""

    @abc.abstractmethod
    def mkdir(self, path: str) -> OperationResult[None]:
        """Create a directory (a marker object on object stores)."""

    @abc.abstractmethod
    def delete(self, path: str, options: DeleteOptions | None = None) -> OperationResult[None]:
        """Delete an object, or a directory tree with ``recursive``."""

    def move(self, src: str, dst: str, options: TransferOptions | None = None) -> OperationResult[None]:
        """Move or rename an object, or a subtree for directory paths."""
        options = options or TransferOptions()
        if not self._can_transfer(src, options, deletes=True):
            return unimplemented("move")
        strategy = self.transfer_strategy

        def move() -> None:
            check_destination(src, dst, options)
            strategy.move(src, dst, options)

        return self._run("move", move, path=src)

    def copy(self, src: str, dst: str, options: TransferOptions | None = None) -> OperationResult[None]:
        """Copy an object, or a subtree for directory paths."""
        options = options or TransferOptions()
        if not self._can_transfer(src, options, deletes=False):
            return unimplemented("copy")
        strategy = self.transfer_strategy

        def copy() -> None:
            check_destination(src, dst, options)
            strategy.copy(src, dst, options)

        return self._run("copy", copy, path=src)

    def _can_transfer(self, src: str, options: TransferOptions, *, deletes: bool) -> bool:
        """Whether move/copy can run, natively or composed from primitives."""
        if self.transfer_strategy is not self._generic_transfer:
            return True
        needed = [Capability.READ, Capability.WRITE]
        if deletes:
            needed.append(Capability.DELETE)
        if is_recursive(src, options):
            needed.append(Capability.LIST)
        return all(self.has_capability(c) for c in needed)

    # endregion

    # region: local transfers
    def download_to_local(
        self, remote_path: str, local_path: PathLike, options: TransferOptions | None = None
    ) -> OperationResult[None]:
        """Copy an object (or a subtree for directory paths) to the local disk."""
        options = options or TransferOptions()
        return self._gated(
            Capability.DOWNLOAD,
            "download_to_local",
            lambda: self._download(remote_path, Path(local_path), options),
            path=remote_path,
        )

    def upload_from_local(
        self, local_path: PathLike, remote_path: str, options: TransferOptions | None = None
    ) -> OperationResult[None]:
        """Copy a local file (or directory tree) to ``remote_path``."""
        options = options or TransferOptions()
        return self._gated(
            Capability.UPLOAD,
            "upload_from_local",
            lambda: self._upload(Path(local_path), remote_path, options),
            path=remote_path,
        )

    def _download(self, remote_path: str, local: Path, options: TransferOptions) -> None:
        if not is_recursive(remote_path, options):
            data = self.read(remote_path).unwrap(path=remote_path)
            with self._local_errors(str(local)):
                local.parent.mkdir(parents=True, exist_ok=True)
                local.write_bytes(data)
            report_progress(options.on_progress, "Downloading", len(data), len(data), remote_path)
            return

        prefix = as_directory(remote_path)
        keys = self._generic_transfer.descendant_files(prefix, options.token)
        with self._local_errors(str(local)):
            local.mkdir(parents=True, exist_ok=True)
        for index, key in enumerate(keys):
            if options.token is not None:
                options.token.throw_if_cancelled()
            data = self.read(key).unwrap(path=key)
            target = local.joinpath(*key[len(prefix) :].split("/"))
            with self._local_errors(str(target)):
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
            report_progress(options.on_progress, "Downloading", index + 1, len(keys), key)

    def _upload(self, local: Path, remote_path: str, options: TransferOptions) -> None:
        with self._local_errors(str(local)):
            is_dir = local.is_dir()
            if not is_dir and not local.exists():
                raise FileNotFoundError(2, "No such file or directory", str(local))
        write_options = WriteOptions(overwrite=options.overwrite, token=options.token)
        if not is_dir:
            target = remote_path
            if is_directory_path(remote_path):
                target = join_path(remote_path, local.name)
            with self._local_errors(str(local)):
                data = local.read_bytes()
            self.write(target, data, write_options).unwrap(path=target)
            report_progress(options.on_progress, "Uploading", len(data), len(data), target)
            return

        prefix = as_directory(remote_path)
        with self._local_errors(str(local)):
            files = sorted(p for p in local.rglob("*") if p.is_file())
        for index, file in enumerate(files):
            if options.token is not None:
                options.token.throw_if_cancelled()
            key = prefix + file.relative_to(local).as_posix()
            with self._local_errors(str(file)):
                data = file.read_bytes()
            self.write(key, data, write_options).unwrap(path=key)
            report_progress(options.on_progress, "Uploading", index + 1, len(files), key)

    # endregion

    # region: optional operations
    def list_containers(self) -> OperationResult[list[Entry]]:
        """List buckets or shares (``Containers``)."""
        return unimplemented("list_containers")

    def set_container(self, name: str) -> OperationResult[None]:
        """Switch the current bucket or share (``Containers``)."""
        if not self.has_capability(Capability.CONTAINERS):
            return unimplemented("set_container")
        self._session = dataclasses.replace(self._session, container=name)
        return success()

    def get_container(self) -> OperationResult[str | None]:
        if not self.has_capability(Capability.CONTAINERS):
            return unimplemented("get_container")
        return success(self._session.container)

    def set_region(self, region: str) -> OperationResult[None]:
        """Switch the current region (``Containers``)."""
        if not self.has_capability(Capability.CONTAINERS):
            return unimplemented("set_region")
        self._session = dataclasses.replace(self._session, region=region)
        return success()

    def connect(self) -> OperationResult[None]:
        """Open the backend connection (``Connection``)."""
        return unimplemented("connect")

    def disconnect(self) -> OperationResult[None]:
        return unimplemented("disconnect")

    def is_connected(self) -> OperationResult[bool]:
        return unimplemented("is_connected")

    def set_metadata(self, path: str, metadata: Metadata) -> OperationResult[None]:
        """Replace an object's user metadata (``Metadata``)."""
        return unimplemented("set_metadata")

    def get_presigned_url(
        self, path: str, *, expires_in: int = 3600, method: str = "get"
    ) -> OperationResult[str]:
        """Time-limited URL for direct access (``PresignedUrls``)."""
        return unimplemented("get_presigned_url")

    # endregion

    # region: lifecycle
    def close(self) -> None:  # noqa: B027
        """Release resources. Default is a no-op."""

    def __enter__(self) -> StorageProvider:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, session={self._session!r})"

    # endregion


def read_content(content: WritableContent) -> bytes:
    """Materialize writable content as bytes."""
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    return content.read()


def entry_from_stat(path: str, st: os.stat_result | Any) -> Entry:
    """Build an :class:`Entry` from an ``os.stat`` result or SFTP attributes."""
    mode = st.st_mode or 0
    if _stat.S_ISDIR(mode):
        entry_type = EntryType.DIRECTORY
        path = as_directory(path)
    elif _stat.S_ISLNK(mode):
        entry_type = EntryType.SYMLINK
    else:
        entry_type = EntryType.FILE
    modified = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc) if st.st_mtime is not None else None
    return Entry.from_path(
        path,
        type=entry_type,
        size=None if entry_type is EntryType.DIRECTORY else int(st.st_size or 0),
        modified=modified,
        metadata={"permissions": oct(_stat.S_IMODE(mode))},
    )
