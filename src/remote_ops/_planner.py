"""Change detection and operation planning.

An edited listing is compared with the listing it started from, keyed by
entry identity rather than by path. The classified difference becomes an
ordered list of primitive operations: creates, copies, moves, then deletes.
"""

from __future__ import annotations

import dataclasses
import enum
import itertools
import uuid
from typing import TYPE_CHECKING

from remote_ops._errors import PlanConflict
from remote_ops._models import Entry, EntryType, new_entry_id
from remote_ops._path import as_directory, parent_path, path_name, split_extension

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence


class OperationType(enum.Enum):
    """Kinds of pending operations."""

    CREATE = "create"
    DELETE = "delete"
    MOVE = "move"
    COPY = "copy"
    RENAME = "rename"
    DOWNLOAD = "download"
    UPLOAD = "upload"


class ChangeKind(enum.Enum):
    """How one entry changed between two snapshots."""

    UNCHANGED = "unchanged"
    CREATED = "created"
    DELETED = "deleted"
    MOVED = "moved"
    COPIED = "copied"


class CopyConflictPolicy(enum.Enum):
    """What to do with a copy whose destination is its own source.

    :cvar RENAME: Pick the first free sibling name (``a copy.txt``, ``a copy 2.txt``, ...).
    :cvar REJECT: Raise :class:`~remote_ops._errors.PlanConflict`.
    """

    RENAME = "rename"
    REJECT = "reject"


@dataclasses.dataclass(frozen=True)
class PendingOperation:
    """One primitive operation awaiting confirmation or execution.

    :param id: Unique id within a plan or session.
    :param type: Kind of operation.
    :param source: Path the operation reads from or removes.
    :param destination: Path the operation creates or writes to.
    :param recursive: Apply to a whole directory subtree.
    :param entry_type: For creates: file or directory.
    :param content: For file creates: initial content (empty by default).
    """

    id: str
    type: OperationType
    source: str | None = None
    destination: str | None = None
    recursive: bool = False
    entry_type: EntryType | None = None
    content: bytes | None = dataclasses.field(default=None, repr=False)

    @property
    def path(self) -> str:
        """The path shown to users: the destination for creates and uploads, else the source."""
        if self.type in (OperationType.CREATE, OperationType.UPLOAD):
            return self.destination or ""
        return self.source or self.destination or ""

    @property
    def description(self) -> str:
        if self.source and self.destination:
            return f"{self.type.value}: {self.source} -> {self.destination}"
        return f"{self.type.value}: {self.path}"

    # region: factories
    @classmethod
    def create(
        cls,
        path: str,
        *,
        entry_type: EntryType | None = None,
        content: bytes | None = None,
        id: str | None = None,
    ) -> PendingOperation:
        if entry_type is None:
            entry_type = EntryType.DIRECTORY if path.endswith("/") else EntryType.FILE
        return cls(
            id=id or _direct_id(),
            type=OperationType.CREATE,
            destination=path,
            entry_type=entry_type,
            content=content,
        )

    @classmethod
    def delete(cls, path: str, *, recursive: bool = False, id: str | None = None) -> PendingOperation:
        return cls(id=id or _direct_id(), type=OperationType.DELETE, source=path, recursive=recursive)

    @classmethod
    def move(
        cls, source: str, destination: str, *, recursive: bool = False, id: str | None = None
    ) -> PendingOperation:
        return cls(id or _direct_id(), OperationType.MOVE, source, destination, recursive)

    @classmethod
    def rename(cls, source: str, new_name: str, *, id: str | None = None) -> PendingOperation:
        """Rename in place: ``new_name`` replaces the final path component."""
        directory = source.endswith("/")
        destination = parent_path(source) + new_name.strip("/")
        if directory:
            destination = as_directory(destination)
        return cls(id or _direct_id(), OperationType.RENAME, source, destination, directory)

    @classmethod
    def copy(
        cls, source: str, destination: str, *, recursive: bool = False, id: str | None = None
    ) -> PendingOperation:
        return cls(id or _direct_id(), OperationType.COPY, source, destination, recursive)

    @classmethod
    def download(
        cls, remote: str, local: str, *, recursive: bool = False, id: str | None = None
    ) -> PendingOperation:
        return cls(id or _direct_id(), OperationType.DOWNLOAD, remote, local, recursive)

    @classmethod
    def upload(
        cls, local: str, remote: str, *, recursive: bool = False, id: str | None = None
    ) -> PendingOperation:
        return cls(id or _direct_id(), OperationType.UPLOAD, local, remote, recursive)

    # endregion


def _direct_id() -> str:
    return uuid.uuid4().hex


def _covers(root: str, path: str) -> bool:
    """Whether ``path`` is ``root`` or, for a directory root, lies under it."""
    return path == root or (root.endswith("/") and path.startswith(root))


@dataclasses.dataclass
class ChangeSet:
    """Classified difference between two snapshots.

    :param creates: New entries (in edited order).
    :param deletes: Entries that disappeared (in original order).
    :param moves: Original entry to its new path.
    :param copies: ``(source entry, destination path)`` pairs. A list rather
        than a mapping, so one source can be duplicated more than once.
    :param classification: Every id from both snapshots and how it changed.
    :param original_paths: Every path of the original snapshot, unchanged
        entries included, so generated names can avoid them.
    """

    creates: list[Entry] = dataclasses.field(default_factory=list)
    deletes: list[Entry] = dataclasses.field(default_factory=list)
    moves: dict[Entry, str] = dataclasses.field(default_factory=dict)
    copies: list[tuple[Entry, str]] = dataclasses.field(default_factory=list)
    classification: dict[str, ChangeKind] = dataclasses.field(default_factory=dict)
    original_paths: set[str] = dataclasses.field(default_factory=set)

    @property
    def total(self) -> int:
        return len(self.creates) + len(self.deletes) + len(self.moves) + len(self.copies)

    @property
    def is_empty(self) -> bool:
        return self.total == 0


@dataclasses.dataclass(frozen=True)
class PlanSummary:
    """Per-kind operation counts of a plan."""

    creates: int = 0
    deletes: int = 0
    moves: int = 0
    copies: int = 0

    @property
    def total(self) -> int:
        return self.creates + self.deletes + self.moves + self.copies


@dataclasses.dataclass(frozen=True)
class OperationPlan:
    """Ordered operations plus their summary."""

    operations: tuple[PendingOperation, ...] = ()
    summary: PlanSummary = dataclasses.field(default_factory=PlanSummary)

    def __iter__(self) -> Iterator[PendingOperation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    def validate(self) -> list[str]:
        return validate_operation_plan(self.operations)


# region: change detection
def detect_changes(original: Iterable[Entry], edited: Iterable[Entry]) -> ChangeSet:
    """Classify every entry of two snapshots by identity.

    - deleted: id only in ``original``
    - created: id only in ``edited``, at a path no original entry occupies
    - copied: id only in ``edited``, at the path of an original entry of
      the same type (that entry is the copy source)
    - moved: id in both, path differs
    - unchanged: id in both, same path

    Edited entries without an id are treated as new and given one.
    """
    original_by_id: dict[str, Entry] = {}
    original_by_path: dict[str, Entry] = {}
    for entry in original:
        original_by_id[entry.id] = entry
        original_by_path.setdefault(entry.path, entry)

    edited_by_id: dict[str, Entry] = {}
    for entry in edited:
        if not entry.id:
            entry = dataclasses.replace(entry, id=new_entry_id())
        edited_by_id[entry.id] = entry

    changes = ChangeSet(original_paths=set(original_by_path))
    for entry_id, entry in edited_by_id.items():
        before = original_by_id.get(entry_id)
        if before is None:
            source = original_by_path.get(entry.path)
            if source is not None and source.type is entry.type:
                changes.copies.append((source, entry.path))
                changes.classification[entry_id] = ChangeKind.COPIED
            else:
                changes.creates.append(entry)
                changes.classification[entry_id] = ChangeKind.CREATED
        elif before.path != entry.path:
            changes.moves[before] = entry.path
            changes.classification[entry_id] = ChangeKind.MOVED
        else:
            changes.classification[entry_id] = ChangeKind.UNCHANGED

    for entry_id, entry in original_by_id.items():
        if entry_id not in edited_by_id:
            changes.deletes.append(entry)
            changes.classification[entry_id] = ChangeKind.DELETED

    return changes


# endregion


# region: planning
def resolve_copy_destination(path: str, taken: Iterable[str]) -> str:
    """First free sibling name for a duplicate of ``path``.

    ``docs/a.txt`` becomes ``docs/a copy.txt``, then ``docs/a copy 2.txt``;
    directories keep their trailing slash (``photos copy/``).
    """
    occupied = set(taken)
    directory = path.endswith("/")
    parent = parent_path(path)
    name = path_name(path)
    stem, ext = (name, "") if directory else split_extension(name)
    for n in itertools.count(1):
        suffix = " copy" if n == 1 else f" copy {n}"
        candidate = f"{parent}{stem}{suffix}{ext}"
        if directory:
            candidate = as_directory(candidate)
        if candidate not in occupied:
            return candidate
    raise AssertionError("unreachable")


def build_operation_plan(
    change_set: ChangeSet,
    *,
    taken_paths: Iterable[str] = (),
    copy_conflict: CopyConflictPolicy = CopyConflictPolicy.RENAME,
) -> OperationPlan:
    """Turn a change set into creates, copies, moves and deletes, in that order.

    Operation ids are ``op-0``, ``op-1``, ... in plan order. A copy whose
    destination equals its source path is resolved by ``copy_conflict``.

    :param change_set: Output of :func:`detect_changes`.
    :param taken_paths: Paths known to exist on the backend, avoided when
        renaming duplicates.
    :param copy_conflict: Policy for same-path copies.
    :raises PlanConflict: For a same-path copy under ``REJECT``.
    """
    counter = itertools.count()

    def next_id() -> str:
        return f"op-{next(counter)}"

    taken = set(taken_paths)
    taken.update(change_set.original_paths)
    taken.update(entry.path for entry in change_set.creates)
    taken.update(source.path for source, _ in change_set.copies)
    taken.update(change_set.moves.values())

    operations: list[PendingOperation] = []
    for entry in change_set.creates:
        operations.append(PendingOperation.create(entry.path, entry_type=entry.type, id=next_id()))

    for source, destination in change_set.copies:
        if destination == source.path:
            if copy_conflict is CopyConflictPolicy.REJECT:
                raise PlanConflict(f"Copy destination is the source itself: {destination}", path=destination)
            destination = resolve_copy_destination(source.path, taken)
        taken.add(destination)
        operations.append(
            PendingOperation.copy(source.path, destination, recursive=source.is_directory, id=next_id())
        )

    for source, destination in change_set.moves.items():
        operations.append(
            PendingOperation.move(source.path, destination, recursive=source.is_directory, id=next_id())
        )

    for entry in change_set.deletes:
        operations.append(PendingOperation.delete(entry.path, recursive=entry.is_directory, id=next_id()))

    summary = PlanSummary(
        creates=len(change_set.creates),
        deletes=len(change_set.deletes),
        moves=len(change_set.moves),
        copies=len(change_set.copies),
    )
    return OperationPlan(operations=tuple(operations), summary=summary)


def _touched_paths(operation: PendingOperation) -> list[str]:
    if operation.type is OperationType.CREATE:
        return [operation.destination or ""]
    if operation.type is OperationType.DELETE:
        return [operation.source or ""]
    if operation.type in (OperationType.MOVE, OperationType.RENAME):
        return [operation.source or "", operation.destination or ""]
    if operation.type is OperationType.COPY:
        return [operation.destination or ""]
    return []


def validate_operation_plan(operations: Sequence[PendingOperation]) -> list[str]:
    """Report paths touched by more than one operation.

    Creates, copies and deletes touch their target; moves touch both ends.
    Local-side paths of downloads and uploads are not considered.

    :returns: Human-readable problems; empty when the plan is safe.
    """
    owners: dict[str, PendingOperation] = {}
    problems: list[str] = []
    for operation in operations:
        for path in _touched_paths(operation):
            previous = owners.get(path)
            if previous is not None and previous is not operation:
                problems.append(
                    f"Conflicting operations on {path!r}: {previous.id} ({previous.type.value}) "
                    f"and {operation.id} ({operation.type.value})"
                )
            else:
                owners[path] = operation
    return problems


# endregion


class EntryIdMap:
    """Stable ids for paths across repeated listings.

    Providers hand out fresh ids on every listing; this map gives an object
    the same id each time it is seen at the same path, and follows it through
    moves recorded with :meth:`record`.
    """

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}

    def id_for(self, path: str) -> str:
        """Existing id for ``path`` or a newly assigned one."""
        if path not in self._ids:
            self._ids[path] = new_entry_id()
        return self._ids[path]

    def adopt(self, entries: Iterable[Entry]) -> list[Entry]:
        """Re-key entries with the ids this map holds for their paths."""
        return [dataclasses.replace(entry, id=self.id_for(entry.path)) for entry in entries]

    def rename(self, old: str, new: str) -> None:
        """Carry ids from ``old`` (and, for directories, its descendants) to ``new``."""
        moved = {p: i for p, i in self._ids.items() if _covers(old, p)}
        for path, entry_id in moved.items():
            del self._ids[path]
            self._ids[new + path[len(old) :]] = entry_id

    def forget(self, path: str) -> None:
        """Drop ``path`` and, for directories, everything under it."""
        for key in [p for p in self._ids if _covers(path, p)]:
            del self._ids[key]

    def record(self, operation: PendingOperation, entry_id: str | None = None) -> None:
        """Update the map after ``operation`` was applied successfully."""
        if operation.type in (OperationType.MOVE, OperationType.RENAME):
            self.rename(operation.source or "", operation.destination or "")
        elif operation.type is OperationType.DELETE:
            self.forget(operation.source or "")
        elif operation.type in (OperationType.CREATE, OperationType.COPY, OperationType.UPLOAD):
            destination = operation.destination or ""
            if entry_id is not None:
                self._ids[destination] = entry_id
            else:
                self.id_for(destination)

    def __contains__(self, path: object) -> bool:
        return path in self._ids

    def __len__(self) -> int:
        return len(self._ids)
