"""Immutable entry snapshots, listing pages and progress events."""

from __future__ import annotations

import dataclasses
import enum
import secrets
import time
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from remote_ops._path import is_directory_path, path_name

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            break
    return "".join(reversed(digits))


def new_entry_id() -> str:
    """Generate a fresh opaque entry id (``entry_<base36 ms>_<16 hex>``)."""
    return f"entry_{_to_base36(int(time.time() * 1000))}_{secrets.token_hex(8)}"


class EntryType(enum.Enum):
    """Kind of object an entry describes."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    BUCKET = "bucket"


@dataclasses.dataclass(frozen=True, eq=False)
class Entry:
    """Immutable snapshot of one addressable object.

    Identity is the ``id``: two snapshots of the same object taken before and
    after a rename compare equal.

    :param id: Stable, opaque identity assigned once.
    :param name: Display name (final path component).
    :param type: Kind of object.
    :param path: Backend-native path; directories end with ``/``.
    :param size: Size in bytes, if known.
    :param modified: Last modification time, if known.
    :param metadata: Backend-specific fields (content type, etag, ...).
    """

    id: str
    name: str
    type: EntryType
    path: str
    size: int | None = None
    modified: datetime | None = None
    metadata: Mapping[str, Any] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def from_path(
        cls,
        path: str,
        *,
        id: str | None = None,
        type: EntryType | None = None,
        size: int | None = None,
        modified: datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Entry:
        """Build an entry, deriving name and type from ``path``."""
        entry_type = type or (EntryType.DIRECTORY if is_directory_path(path) else EntryType.FILE)
        return cls(
            id=id or new_entry_id(),
            name=path_name(path),
            type=entry_type,
            path=path,
            size=size,
            modified=modified,
            metadata=metadata or {},
        )

    @property
    def is_directory(self) -> bool:
        return self.type in (EntryType.DIRECTORY, EntryType.BUCKET)

    def with_path(self, path: str) -> Entry:
        """Snapshot of the same object at another path."""
        return dataclasses.replace(self, path=path, name=path_name(path))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Entry):
            return self.id == other.id
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.id)


@dataclasses.dataclass(frozen=True)
class ListPage:
    """One page of a directory listing.

    :param entries: Entries on this page.
    :param has_more: Whether another page is available.
    :param continuation_token: Opaque cursor for the next page.
    """

    entries: tuple[Entry, ...] = ()
    has_more: bool = False
    continuation_token: str | None = None


@dataclasses.dataclass(frozen=True)
class ProgressEvent:
    """Progress of a single transfer.

    :param operation: Label of the running operation (e.g. ``"Uploading file"``).
    :param bytes_transferred: Units done so far (bytes, or items for bulk operations).
    :param total_bytes: Total units.
    :param percentage: Rounded completion percentage (0 when the total is 0).
    :param current_file: Key or path currently being processed.
    """

    operation: str
    bytes_transferred: int
    total_bytes: int
    percentage: int
    current_file: str | None = None

    @classmethod
    def of(cls, operation: str, transferred: int, total: int, current_file: str | None = None) -> ProgressEvent:
        percentage = round(transferred / total * 100) if total > 0 else 0
        return cls(operation, transferred, total, percentage, current_file)
