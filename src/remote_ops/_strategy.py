"""Move and copy strategies.

Every provider gets a :class:`GenericTransferStrategy` composed from its own
``read``/``write``/``delete``/``list`` operations. A provider that can move or
copy natively also supplies an accelerated strategy; it is used only while
the capability it depends on is declared.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Protocol

from remote_ops._errors import InvalidPath
from remote_ops._path import as_directory, is_directory_path, normalize_path
from remote_ops._transfer import copy_prefix, move_prefix
from remote_ops._types import DeleteOptions, ListOptions, TransferOptions, WriteOptions

if TYPE_CHECKING:
    from remote_ops._capabilities import Capability, CapabilitySet
    from remote_ops._cancellation import CancellationToken
    from remote_ops._models import ListPage
    from remote_ops._result import OperationResult

log = logging.getLogger(__name__)

ReadFn = Callable[[str], "OperationResult[bytes]"]
WriteFn = Callable[[str, bytes, WriteOptions], "OperationResult[Any]"]
DeleteFn = Callable[[str, DeleteOptions], "OperationResult[Any]"]
ListFn = Callable[[str, ListOptions], "OperationResult[ListPage]"]


class TransferStrategy(Protocol):
    """Moves and copies single objects or whole subtrees.

    Implementations raise :class:`~remote_ops._errors.RemoteOpsError` on
    failure; the provider turns that into a result.
    """

    def copy(self, src: str, dst: str, options: TransferOptions) -> None: ...

    def move(self, src: str, dst: str, options: TransferOptions) -> None: ...


class AcceleratedTransfer(TransferStrategy, Protocol):
    """A native strategy and the capability it needs to be used."""

    required_capability: Capability


def is_recursive(path: str, options: TransferOptions) -> bool:
    return options.recursive or is_directory_path(path)


def check_destination(src: str, dst: str, options: TransferOptions) -> None:
    """Reject a destination that is the source itself or lies inside the source subtree.

    :raises InvalidPath: With code ``INVALID_DESTINATION``.
    """
    if is_recursive(src, options):
        src_prefix = as_directory(normalize_path(src))
        if as_directory(normalize_path(dst)).startswith(src_prefix):
            raise InvalidPath(
                f"Cannot transfer {src!r} into itself: {dst!r}", path=dst, code="INVALID_DESTINATION"
            )
    elif normalize_path(src) == normalize_path(dst):
        raise InvalidPath(f"Source and destination are the same: {src!r}", path=dst, code="INVALID_DESTINATION")


class GenericTransferStrategy:
    """Move/copy built only from read, write, delete and list.

    Subtrees are enumerated with a recursive listing; each file is read from
    the source and written to the destination. A move deletes each source
    file after its copy landed, then removes the emptied source directory.

    :param read: Reads a whole object.
    :param write: Writes a whole object.
    :param delete: Deletes an object or directory.
    :param list: Lists a directory.
    """

    def __init__(self, *, read: ReadFn, write: WriteFn, delete: DeleteFn, list: ListFn) -> None:
        self._read = read
        self._write = write
        self._delete = delete
        self._list = list

    def copy(self, src: str, dst: str, options: TransferOptions) -> None:
        check_destination(src, dst, options)
        if is_recursive(src, options):
            src_prefix, dst_prefix = as_directory(src), as_directory(dst)
            keys = self.descendant_files(src_prefix, options.token)
            copy_prefix(
                keys,
                src_prefix,
                dst_prefix,
                lambda s, d: self._copy_one(s, d, options),
                on_progress=options.on_progress,
                token=options.token,
            )
        else:
            self._copy_one(src, dst, options)

    def move(self, src: str, dst: str, options: TransferOptions) -> None:
        check_destination(src, dst, options)
        if is_recursive(src, options):
            src_prefix, dst_prefix = as_directory(src), as_directory(dst)
            keys = self.descendant_files(src_prefix, options.token)
            move_prefix(
                keys,
                src_prefix,
                dst_prefix,
                lambda s, d: self._move_one(s, d, options),
                on_progress=options.on_progress,
                token=options.token,
            )
            self._delete(src_prefix, DeleteOptions(recursive=True, missing_ok=True)).unwrap(path=src_prefix)
        else:
            self._move_one(src, dst, options)

    def descendant_files(self, prefix: str, token: CancellationToken | None = None) -> list[str]:
        """Paths of all files under ``prefix``, following pagination."""
        keys: list[str] = []
        continuation: str | None = None
        while True:
            if token is not None:
                token.throw_if_cancelled()
            page = self._list(prefix, ListOptions(recursive=True, continuation_token=continuation)).unwrap(
                path=prefix
            )
            keys.extend(entry.path for entry in page.entries if not entry.is_directory)
            continuation = page.continuation_token
            if not page.has_more or not continuation:
                return keys

    def _copy_one(self, src: str, dst: str, options: TransferOptions) -> None:
        data = self._read(src).unwrap(path=src)
        self._write(dst, data, WriteOptions(overwrite=options.overwrite)).unwrap(path=dst)

    def _move_one(self, src: str, dst: str, options: TransferOptions) -> None:
        self._copy_one(src, dst, options)
        self._delete(src, DeleteOptions()).unwrap(path=src)


def select_transfer_strategy(
    capabilities: CapabilitySet,
    generic: TransferStrategy,
    accelerated: AcceleratedTransfer | None = None,
) -> TransferStrategy:
    """Pick the accelerated strategy when present and its capability is declared."""
    if accelerated is not None and capabilities.supports(accelerated.required_capability):
        return accelerated
    return generic
