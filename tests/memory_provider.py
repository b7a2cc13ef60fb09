"""Dict-backed provider used by the unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from remote_ops._capabilities import Capability, CapabilitySet
from remote_ops._errors import AlreadyExists, NotFound, RemoteOpsError
from remote_ops._models import Entry, ListPage
from remote_ops._path import as_directory, rebase_key
from remote_ops._provider import StorageProvider, read_content
from remote_ops._result import OperationResult, success
from remote_ops._types import DeleteOptions, ListOptions, ReadOptions, TransferOptions, WriteOptions

if TYPE_CHECKING:
    from typing import Any

    from remote_ops._strategy import AcceleratedTransfer
    from remote_ops._types import WritableContent

BASIC_CAPABILITIES = CapabilitySet(
    {
        Capability.LIST,
        Capability.READ,
        Capability.WRITE,
        Capability.DELETE,
        Capability.MKDIR,
        Capability.RMDIR,
        Capability.COPY,
        Capability.MOVE,
        Capability.DOWNLOAD,
        Capability.UPLOAD,
    }
)


class MemoryProvider(StorageProvider):
    """Keeps files in a dict and directories in a set.

    Every primitive call is recorded in :attr:`calls` as ``(operation, path)``.
    ``failures`` maps such a pair to the exception that call raises.
    """

    def __init__(
        self,
        files: dict[str, bytes] | None = None,
        *,
        capabilities: CapabilitySet | None = None,
        failures: dict[tuple[str, str], RemoteOpsError] | None = None,
        accelerated_transfer: AcceleratedTransfer | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(accelerated_transfer=accelerated_transfer, **kwargs)
        self.files: dict[str, bytes] = dict(files or {})
        self.dirs: set[str] = set()
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, str]] = []
        self.closed = False
        self._capabilities = capabilities or BASIC_CAPABILITIES

    @property
    def name(self) -> str:
        return "memory"

    @property
    def capabilities(self) -> CapabilitySet:
        return self._capabilities

    def clone(self) -> MemoryProvider:
        return MemoryProvider(
            self.files,
            capabilities=self._capabilities,
            retry=self._retry,
            session=self._session,
        )

    def close(self) -> None:
        self.closed = True

    def _track(self, operation: str, path: str) -> None:
        self.calls.append((operation, path))
        failure = self.failures.get((operation, path))
        if failure is not None:
            raise failure

    def _is_dir(self, prefix: str) -> bool:
        if prefix == "" or prefix in self.dirs:
            return True
        return any(key.startswith(prefix) for key in [*self.files, *self.dirs])

    def _entry(self, path: str) -> Entry:
        return Entry.from_path(path, size=len(self.files[path]) if path in self.files else None)

    def list(self, path: str = "", options: ListOptions | None = None) -> OperationResult[ListPage]:
        opts = options or ListOptions()
        return self._gated(Capability.LIST, "list", lambda: self._list(path, opts), path=path)

    def _list(self, path: str, options: ListOptions) -> ListPage:
        self._track("list", path)
        prefix = as_directory(path)
        if not self._is_dir(prefix):
            raise NotFound(f"Directory not found: {path}", path=path)
        found: set[str] = set()
        for key in [*self.files, *self.dirs]:
            if key == prefix or not key.startswith(prefix):
                continue
            if options.recursive:
                found.add(key)
            else:
                head, sep, _ = key[len(prefix) :].partition("/")
                found.add(prefix + head + sep)
        ordered = sorted(found)
        start = int(options.continuation_token or 0)
        end = len(ordered) if options.max_results is None else start + options.max_results
        has_more = end < len(ordered)
        return ListPage(
            entries=tuple(self._entry(p) for p in ordered[start:end]),
            has_more=has_more,
            continuation_token=str(end) if has_more else None,
        )

    def get_metadata(self, path: str) -> OperationResult[Entry]:
        def _get() -> Entry:
            self._track("get_metadata", path)
            if path in self.files:
                return self._entry(path)
            if path and self._is_dir(as_directory(path)):
                return self._entry(as_directory(path))
            raise NotFound(f"Not found: {path}", path=path)

        return self._run("get_metadata", _get, path=path)

    def exists(self, path: str) -> OperationResult[bool]:
        return success(path in self.files or (bool(path) and self._is_dir(as_directory(path))))

    def read(self, path: str, options: ReadOptions | None = None) -> OperationResult[bytes]:
        opts = options or ReadOptions()

        def _read() -> bytes:
            self._track("read", path)
            if path not in self.files:
                raise NotFound(f"File not found: {path}", path=path)
            return self.files[path][opts.start : opts.end]

        return self._gated(Capability.READ, "read", _read, path=path)

    def write(self, path: str, content: WritableContent, options: WriteOptions | None = None) -> OperationResult[None]:
        opts = options or WriteOptions()

        def _write() -> None:
            self._track("write", path)
            if not opts.overwrite and path in self.files:
                raise AlreadyExists(f"File already exists: {path}", path=path)
            self.files[path] = read_content(content)

        return self._gated(Capability.WRITE, "write", _write, path=path)

    def mkdir(self, path: str) -> OperationResult[None]:
        def _mkdir() -> None:
            self._track("mkdir", path)
            self.dirs.add(as_directory(path))

        return self._gated(Capability.MKDIR, "mkdir", _mkdir, path=path)

    def delete(self, path: str, options: DeleteOptions | None = None) -> OperationResult[None]:
        opts = options or DeleteOptions()

        def _delete() -> None:
            self._track("delete", path)
            if path in self.files:
                del self.files[path]
                return
            prefix = as_directory(path)
            if prefix and self._is_dir(prefix):
                children = [k for k in [*self.files, *self.dirs] if k != prefix and k.startswith(prefix)]
                if children and not opts.recursive:
                    raise RemoteOpsError(f"Directory not empty: {path}", path=path, code="NOT_EMPTY")
                for key in children:
                    self.files.pop(key, None)
                    self.dirs.discard(key)
                self.dirs.discard(prefix)
                return
            if not opts.missing_ok:
                raise NotFound(f"Not found: {path}", path=path)

        return self._gated(Capability.DELETE, "delete", _delete, path=path)


class RecordingNativeTransfer:
    """Accelerated strategy that renames dict keys and records each call."""

    required_capability = Capability.SERVER_SIDE_COPY

    def __init__(self, provider: MemoryProvider | None = None) -> None:
        self.provider = provider
        self.calls: list[tuple[str, str, str]] = []

    def copy(self, src: str, dst: str, options: TransferOptions) -> None:
        self.calls.append(("copy", src, dst))
        self._apply(src, dst, keep_source=True)

    def move(self, src: str, dst: str, options: TransferOptions) -> None:
        self.calls.append(("move", src, dst))
        self._apply(src, dst, keep_source=False)

    def _apply(self, src: str, dst: str, *, keep_source: bool) -> None:
        if self.provider is None:
            return
        files = self.provider.files
        if src in files:
            files[dst] = files[src] if keep_source else files.pop(src)
            return
        prefix = as_directory(src)
        for key in [k for k in files if k.startswith(prefix)]:
            target = rebase_key(key, prefix, as_directory(dst))
            files[target] = files[key] if keep_source else files.pop(key)
