"""Local filesystem provider: stdlib-only reference implementation."""

from __future__ import annotations

import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from remote_ops._capabilities import Capability, CapabilitySet
from remote_ops._errors import AlreadyExists, InvalidPath, NotFound, RemoteOpsError
from remote_ops._mapping import map_os_failure, os_failure_from
from remote_ops._models import ListPage
from remote_ops._path import as_directory, is_directory_path, normalize_path
from remote_ops._provider import StorageProvider, entry_from_stat, read_content
from remote_ops._result import OperationResult
from remote_ops._strategy import is_recursive
from remote_ops._transfer import report_progress
from remote_ops._types import DeleteOptions, ListOptions, ReadOptions, TransferOptions, WriteOptions

if TYPE_CHECKING:
    import logging
    from collections.abc import Iterator

    from remote_ops._models import Entry
    from remote_ops._provider import SessionContext
    from remote_ops._retry import RetryPolicy
    from remote_ops._types import WritableContent

_LOCAL_CAPABILITIES = CapabilitySet(
    {
        Capability.LIST,
        Capability.READ,
        Capability.WRITE,
        Capability.DELETE,
        Capability.MKDIR,
        Capability.RMDIR,
        Capability.COPY,
        Capability.MOVE,
        Capability.SERVER_SIDE_COPY,
        Capability.DOWNLOAD,
        Capability.UPLOAD,
        Capability.PERMISSIONS,
        Capability.SYMLINKS,
    }
)


class _LocalNativeTransfer:
    """Rename and copy on disk without passing bytes through the provider."""

    required_capability = Capability.SERVER_SIDE_COPY

    def __init__(self, provider: LocalProvider) -> None:
        self._provider = provider

    def _endpoints(self, src: str, dst: str, options: TransferOptions) -> tuple[Path, Path]:
        src_full = self._provider._resolve(src)
        dst_full = self._provider._resolve(dst)
        if not src_full.exists():
            raise NotFound(f"Source not found: {src}", path=src)
        if src_full.is_dir() and not is_recursive(src, options):
            raise RemoteOpsError(f"Source is a directory: {src}", path=src, code="IS_DIRECTORY")
        if dst_full.exists() and not options.overwrite:
            raise AlreadyExists(f"Destination already exists: {dst}", path=dst)
        if options.token is not None:
            options.token.throw_if_cancelled()
        return src_full, dst_full

    def move(self, src: str, dst: str, options: TransferOptions) -> None:
        with self._provider._errors(src):
            src_full, dst_full = self._endpoints(src, dst, options)
            dst_full.parent.mkdir(parents=True, exist_ok=True)
            if dst_full.is_dir() and src_full.is_dir():
                shutil.rmtree(dst_full)
            shutil.move(str(src_full), str(dst_full))
        report_progress(options.on_progress, "Moving", 1, 1, src)

    def copy(self, src: str, dst: str, options: TransferOptions) -> None:
        with self._provider._errors(src):
            src_full, dst_full = self._endpoints(src, dst, options)
            dst_full.parent.mkdir(parents=True, exist_ok=True)
            if src_full.is_dir():
                shutil.copytree(src_full, dst_full, dirs_exist_ok=options.overwrite)
            else:
                shutil.copy2(src_full, dst_full)
        report_progress(options.on_progress, "Copying", 1, 1, src)


class LocalProvider(StorageProvider):
    """Local filesystem provider using only the Python standard library.

    :param root: Directory that provider paths are relative to. Created if missing.
    :param retry: Retry policy reported by :attr:`retry_policy`; disk calls are not retried.
    :param logger: Logger for diagnostics.
    :param session: Initial session state.
    """

    def __init__(
        self,
        root: str,
        *,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
        session: SessionContext | None = None,
    ) -> None:
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        super().__init__(
            retry=retry, logger=logger, session=session, accelerated_transfer=_LocalNativeTransfer(self)
        )

    @property
    def name(self) -> str:
        return "local"

    @property
    def capabilities(self) -> CapabilitySet:
        return _LOCAL_CAPABILITIES

    @property
    def root(self) -> Path:
        return self._root

    def clone(self) -> LocalProvider:
        return LocalProvider(str(self._root), retry=self._retry, logger=self._log, session=self._session)

    # region: path safety
    def _resolve(self, path: str) -> Path:
        """Resolve a provider path to an absolute path within root.

        ``.resolve()`` follows symlinks to their real target, and
        ``relative_to(self._root)`` then rejects anything that escapes the
        root, symlinks included.

        :raises InvalidPath: If the resolved path escapes the root.
        """
        resolved = (self._root / normalize_path(path)).resolve()
        try:
            resolved.relative_to(self._root)
        except ValueError:
            raise InvalidPath(f"Path escapes root directory: {path}", path=path, backend=self.name) from None
        return resolved

    def to_key(self, full: Path) -> str:
        """Provider path of an absolute path under root (directories get a trailing slash)."""
        rel = full.relative_to(self._root).as_posix()
        if rel == ".":
            return ""
        return as_directory(rel) if full.is_dir() else rel

    @contextmanager
    def _errors(self, path: str = "") -> Iterator[None]:
        """Map OS exceptions to remote_ops errors."""
        try:
            yield
        except RemoteOpsError:
            raise
        except OSError as exc:
            mapped = map_os_failure(os_failure_from(exc))
            raise mapped.to_exception(path=path, backend=self.name) from exc

    # endregion

    # region: listing and metadata
    def list(self, path: str = "", options: ListOptions | None = None) -> OperationResult[ListPage]:
        options = options or ListOptions()
        return self._run("list", lambda: self._list(path, options), path=path)

    def _list(self, path: str, options: ListOptions) -> ListPage:
        with self._errors(path):
            full = self._resolve(path)
            if not full.exists():
                raise NotFound(f"Directory not found: {path}", path=path, backend=self.name)
            if not full.is_dir():
                raise RemoteOpsError(f"Not a directory: {path}", path=path, backend=self.name, code="NOT_A_DIRECTORY")
            items = full.rglob("*") if options.recursive else full.iterdir()
            entries = [
                entry_from_stat(self.to_key(item), item.lstat())
                for item in sorted(items)
                if options.include_hidden or not item.name.startswith(".")
            ]
        start = int(options.continuation_token or 0)
        if options.max_results is None:
            return ListPage(entries=tuple(entries[start:]))
        end = start + options.max_results
        has_more = end < len(entries)
        return ListPage(
            entries=tuple(entries[start:end]),
            has_more=has_more,
            continuation_token=str(end) if has_more else None,
        )

    def get_metadata(self, path: str) -> OperationResult[Entry]:
        def stat() -> Entry:
            with self._errors(path):
                full = self._resolve(path)
                return entry_from_stat(self.to_key(full), full.lstat())

        return self._run("get_metadata", stat, path=path)

    def exists(self, path: str) -> OperationResult[bool]:
        return self._run("exists", lambda: self._resolve(path).exists(), path=path)

    # endregion

    # region: read and write
    def read(self, path: str, options: ReadOptions | None = None) -> OperationResult[bytes]:
        options = options or ReadOptions()

        def read() -> bytes:
            with self._errors(path):
                full = self._resolve(path)
                if options.start is None and options.end is None:
                    return full.read_bytes()
                with full.open("rb") as f:
                    start = options.start or 0
                    f.seek(start)
                    if options.end is None:
                        return f.read()
                    return f.read(max(options.end - start, 0))

        return self._run("read", read, path=path)

    def write(
        self, path: str, content: WritableContent, options: WriteOptions | None = None
    ) -> OperationResult[None]:
        options = options or WriteOptions()

        def write() -> None:
            with self._errors(path):
                full = self._resolve(path)
                if not options.overwrite and full.exists():
                    raise AlreadyExists(f"File already exists: {path}", path=path, backend=self.name)
                data = read_content(content)
                full.parent.mkdir(parents=True, exist_ok=True)
                full.write_bytes(data)
            report_progress(options.on_progress, "Writing file", len(data), len(data), path)

        return self._run("write", write, path=path)

    def mkdir(self, path: str) -> OperationResult[None]:
        def mkdir() -> None:
            with self._errors(path):
                self._resolve(path).mkdir(parents=True, exist_ok=True)

        return self._run("mkdir", mkdir, path=path)

    # endregion

    # region: delete
    def delete(self, path: str, options: DeleteOptions | None = None) -> OperationResult[None]:
        options = options or DeleteOptions()
        return self._run("delete", lambda: self._delete(path, options), path=path)

    def _delete(self, path: str, options: DeleteOptions) -> None:
        with self._errors(path):
            full = self._resolve(path)
            if full == self._root:
                raise InvalidPath("Refusing to delete the provider root", path=path, backend=self.name)
            if not full.exists() and not full.is_symlink():
                if options.missing_ok:
                    return
                raise NotFound(f"Path not found: {path}", path=path, backend=self.name)
            if full.is_dir() and not full.is_symlink():
                if options.recursive:
                    shutil.rmtree(full)
                else:
                    full.rmdir()
            elif is_directory_path(path):
                raise RemoteOpsError(f"Not a directory: {path}", path=path, backend=self.name, code="NOT_A_DIRECTORY")
            else:
                full.unlink()
        report_progress(options.on_progress, "Deleting", 1, 1, path)

    # endregion
