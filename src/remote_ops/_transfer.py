"""Mechanics of large and bulk transfers.

These helpers know nothing about a particular backend. Providers hand them
small callables (upload one part, delete one batch, fetch one listing page,
copy one key) and get sequencing, pagination and progress reporting back.
Failures propagate to the caller; nothing here decides whether a batch
should continue.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Callable, Optional, Protocol, TypeVar

from remote_ops._models import ProgressEvent
from remote_ops._path import rebase_key

if TYPE_CHECKING:
    from collections.abc import Sequence

    from remote_ops._cancellation import CancellationToken
    from remote_ops._retry import RetryPolicy
    from remote_ops._types import Metadata, ProgressCallback

T = TypeVar("T")

log = logging.getLogger(__name__)

MIB = 1024 * 1024
MULTIPART_THRESHOLD = 5 * MIB
PART_SIZE = 5 * MIB
DELETE_BATCH_SIZE = 1000

PageFetcher = Callable[[Optional[str]], "tuple[Sequence[str], Optional[str]]"]


def report_progress(
    callback: ProgressCallback | None,
    operation: str,
    transferred: int,
    total: int,
    current_file: str | None = None,
) -> None:
    """Send a :class:`ProgressEvent` to ``callback`` if there is one."""
    if callback is not None:
        callback(ProgressEvent.of(operation, transferred, total, current_file))


def _check(token: CancellationToken | None) -> None:
    if token is not None:
        token.throw_if_cancelled()


def _invoke(retry: RetryPolicy | None, fn: Callable[..., T], *args: object) -> T:
    if retry is None:
        return fn(*args)
    return retry.call(fn, *args)


# region: chunked upload
def should_use_multipart_upload(size: int, threshold: int = MULTIPART_THRESHOLD) -> bool:
    """Whether a payload of ``size`` bytes needs a multipart session.

    A payload exactly at the threshold still uses a single request.
    """
    return size > threshold


def part_count(size: int, part_size: int = PART_SIZE) -> int:
    return -(-size // part_size)


@dataclasses.dataclass(frozen=True)
class CompletedPart:
    """An uploaded part and the integrity token the server returned for it."""

    part_number: int
    etag: str


class MultipartClient(Protocol):
    """Backend operations needed for a multipart upload session."""

    def create_multipart_upload(
        self, key: str, *, content_type: str | None = None, metadata: Metadata | None = None
    ) -> str: ...

    def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str: ...

    def complete_multipart_upload(self, key: str, upload_id: str, parts: Sequence[CompletedPart]) -> None: ...

    def abort_multipart_upload(self, key: str, upload_id: str) -> None: ...


def upload_in_parts(
    client: MultipartClient,
    key: str,
    payload: bytes,
    *,
    part_size: int = PART_SIZE,
    content_type: str | None = None,
    metadata: Metadata | None = None,
    on_progress: ProgressCallback | None = None,
    retry: RetryPolicy | None = None,
    token: CancellationToken | None = None,
    label: str = "Uploading file",
) -> list[CompletedPart]:
    """Upload ``payload`` to ``key`` in sequential parts.

    Parts are numbered from 1 and uploaded in order; progress is reported after
    each one. ``retry`` wraps each single part upload, never the session. On
    any failure the session is aborted (abort errors are logged and dropped)
    and the original exception is re-raised.

    :returns: The completed parts in part-number order.
    :raises ValueError: If ``payload`` is empty or ``part_size`` is not positive.
    """
    if part_size <= 0:
        raise ValueError("part_size must be positive")
    total = len(payload)
    if total == 0:
        raise ValueError("Cannot upload an empty payload in parts")

    upload_id = client.create_multipart_upload(key, content_type=content_type, metadata=metadata)
    log.debug("Started multipart upload %s for %s (%d parts)", upload_id, key, part_count(total, part_size))
    parts: list[CompletedPart] = []
    view = memoryview(payload)
    try:
        for part_number, start in enumerate(range(0, total, part_size), start=1):
            _check(token)
            end = min(start + part_size, total)
            etag = _invoke(retry, client.upload_part, key, upload_id, part_number, bytes(view[start:end]))
            parts.append(CompletedPart(part_number=part_number, etag=etag))
            report_progress(on_progress, label, end, total, key)
        client.complete_multipart_upload(key, upload_id, parts)
    except BaseException:
        try:
            client.abort_multipart_upload(key, upload_id)
        except Exception:
            log.warning("Failed to abort multipart upload %s for %s", upload_id, key, exc_info=True)
        raise
    return parts


# endregion


# region: batch delete
def delete_in_batches(
    delete_batch: Callable[[Sequence[str]], None],
    keys: Sequence[str],
    *,
    batch_size: int = DELETE_BATCH_SIZE,
    on_progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
    label: str = "Deleting",
) -> int:
    """Delete ``keys`` with one ``delete_batch`` call per ``batch_size`` keys.

    Progress after each batch is ``min(processed, total) / total``.

    :returns: Number of keys deleted.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    total = len(keys)
    for start in range(0, total, batch_size):
        _check(token)
        batch = keys[start : start + batch_size]
        delete_batch(batch)
        report_progress(on_progress, label, min(start + batch_size, total), total, batch[-1])
    return total


# endregion


# region: listing
def list_all_keys(
    fetch_page: PageFetcher,
    *,
    exclude_key: str | None = None,
    exclude_directory_markers: bool = False,
    token: CancellationToken | None = None,
) -> list[str]:
    """Collect every key from a paginated listing.

    ``fetch_page`` receives the continuation token of the previous page
    (``None`` first) and returns ``(keys, next_token)``. Fetching stops once
    no continuation token is returned.
    """
    keys: list[str] = []
    continuation: str | None = None
    while True:
        _check(token)
        page, continuation = fetch_page(continuation)
        for key in page:
            if exclude_key is not None and key == exclude_key:
                continue
            if exclude_directory_markers and key.endswith("/"):
                continue
            keys.append(key)
        if not continuation:
            return keys


# endregion


# region: recursive copy and move
def transfer_prefix(
    keys: Sequence[str],
    src_prefix: str,
    dst_prefix: str,
    transfer_one: Callable[[str, str], None],
    *,
    on_progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
    label: str = "Copying",
) -> list[tuple[str, str]]:
    """Apply ``transfer_one(src_key, dst_key)`` to each key under ``src_prefix``.

    Destinations are ``dst_prefix + key[len(src_prefix):]``. The first failure
    stops the walk and propagates.

    :returns: The ``(source, destination)`` pairs processed, in order.
    """
    done: list[tuple[str, str]] = []
    total = len(keys)
    for index, key in enumerate(keys):
        _check(token)
        dest = rebase_key(key, src_prefix, dst_prefix)
        transfer_one(key, dest)
        done.append((key, dest))
        report_progress(on_progress, label, index + 1, total, key)
    return done


def copy_prefix(
    keys: Sequence[str],
    src_prefix: str,
    dst_prefix: str,
    copy_one: Callable[[str, str], None],
    *,
    on_progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
) -> list[tuple[str, str]]:
    return transfer_prefix(keys, src_prefix, dst_prefix, copy_one, on_progress=on_progress, token=token)


def move_prefix(
    keys: Sequence[str],
    src_prefix: str,
    dst_prefix: str,
    move_one: Callable[[str, str], None],
    *,
    on_progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
) -> list[tuple[str, str]]:
    return transfer_prefix(
        keys, src_prefix, dst_prefix, move_one, on_progress=on_progress, token=token, label="Moving"
    )


# endregion
