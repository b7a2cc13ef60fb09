"""Option containers and type aliases used throughout remote_ops."""

from __future__ import annotations

import dataclasses
import os  # noqa: TC003
from typing import TYPE_CHECKING, BinaryIO, Callable, Union

if TYPE_CHECKING:
    from remote_ops._cancellation import CancellationToken
    from remote_ops._models import ProgressEvent

PathLike = Union[str, "os.PathLike[str]"]  # noqa: UP007
WritableContent = BinaryIO | bytes
Metadata = dict[str, str]
ProgressCallback = Callable[["ProgressEvent"], None]


@dataclasses.dataclass(frozen=True)
class ListOptions:
    """Options for :meth:`StorageProvider.list`.

    :param recursive: List all descendants instead of direct children.
    :param max_results: Page size hint.
    :param continuation_token: Cursor returned by a previous page.
    :param include_hidden: Include dotfiles.
    """

    recursive: bool = False
    max_results: int | None = None
    continuation_token: str | None = None
    include_hidden: bool = True


@dataclasses.dataclass(frozen=True)
class ReadOptions:
    """Byte range for :meth:`StorageProvider.read` (``end`` exclusive)."""

    start: int | None = None
    end: int | None = None


@dataclasses.dataclass(frozen=True)
class WriteOptions:
    """Options for :meth:`StorageProvider.write`.

    :param overwrite: Replace an existing object.
    :param content_type: MIME type stored with the object, where supported.
    :param metadata: User metadata stored with the object, where supported.
    :param on_progress: Progress callback for large writes.
    :param token: Cancellation token checked between chunks.
    """

    overwrite: bool = True
    content_type: str | None = None
    metadata: Metadata | None = None
    on_progress: ProgressCallback | None = None
    token: CancellationToken | None = None


@dataclasses.dataclass(frozen=True)
class DeleteOptions:
    """Options for :meth:`StorageProvider.delete`.

    :param recursive: Delete a directory and everything under it.
    :param missing_ok: Succeed when the path does not exist.
    :param on_progress: Progress callback for recursive deletes.
    :param token: Cancellation token checked between batches.
    """

    recursive: bool = False
    missing_ok: bool = False
    on_progress: ProgressCallback | None = None
    token: CancellationToken | None = None


@dataclasses.dataclass(frozen=True)
class TransferOptions:
    """Options for move, copy, download and upload.

    :param recursive: Transfer a whole directory subtree.
    :param overwrite: Replace existing destinations.
    :param on_progress: Per-item progress callback.
    :param token: Cancellation token checked between items.
    """

    recursive: bool = False
    overwrite: bool = True
    on_progress: ProgressCallback | None = None
    token: CancellationToken | None = None
