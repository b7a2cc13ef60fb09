"""SFTP provider using pure paramiko."""

from __future__ import annotations

import contextlib
import dataclasses
import errno
import logging
import os
import re
import stat
from contextlib import contextmanager
from enum import Enum
from io import StringIO
from typing import TYPE_CHECKING, Any

from remote_ops._capabilities import Capability, CapabilitySet
from remote_ops._errors import AlreadyExists, InvalidPath, NotFound, RemoteOpsError
from remote_ops._mapping import (
    SSH_FX_CONNECTION_LOST,
    SSH_FX_FAILURE,
    SSH_FX_PERMISSION_DENIED,
    SFTPFailure,
    map_sftp_failure,
)
from remote_ops._models import Entry, ListPage
from remote_ops._path import is_directory_path, join_path, normalize_path
from remote_ops._provider import StorageProvider, entry_from_stat, read_content
from remote_ops._result import OperationResult
from remote_ops._strategy import is_recursive
from remote_ops._transfer import report_progress
from remote_ops._types import DeleteOptions, ListOptions, ReadOptions, TransferOptions, WriteOptions

if TYPE_CHECKING:
    from collections.abc import Iterator

    from remote_ops._provider import SessionContext
    from remote_ops._retry import RetryPolicy
    from remote_ops._types import WritableContent

log = logging.getLogger(__name__)

_SFTP_CAPABILITIES = CapabilitySet(
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
        Capability.CONNECTION,
        Capability.PERMISSIONS,
        Capability.SYMLINKS,
    }
)

# RFC 4253 compliant chunk size for SFTP data transfer
_CHUNK_SIZE = 32768


# region: host key policy
class HostKeyPolicy(Enum):
    """Controls how unknown remote host keys are handled.

    :cvar STRICT: Reject unknown hosts (production default).
    :cvar TRUST_ON_FIRST_USE: Save on first connect, verify after.
    :cvar AUTO_ADD: Accept any key (dev/testing ONLY).
    """

    STRICT = "strict"
    TRUST_ON_FIRST_USE = "tofu"
    AUTO_ADD = "auto"


# endregion

# region: PEM handling
_NON_BASE64_PATTERN = re.compile(r"[^A-Za-z\d+/=]")
_PEM_SEPARATOR = "-----"


def _sanitize_pem(pem_content: str) -> str:
    """Restore line breaks in a PEM whose payload newlines were replaced by another character."""
    parts = pem_content.split(_PEM_SEPARATOR)
    if len(parts) != 5:
        raise ValueError("Invalid PEM structure (expected 5 parts).")

    payload = parts[2]
    separators = set(_NON_BASE64_PATTERN.findall(payload))
    if len(separators) != 1:
        raise ValueError(f"Unexpected PEM characters: {sorted(separators)}")
    parts[2] = payload.replace(separators.pop(), "\n")
    return _PEM_SEPARATOR.join(parts)


def load_private_key(source: str, *, from_file: bool = False) -> Any:
    """Load an RSA private key from a file path or a PEM string.

    :param source: File path (with ``from_file``) or PEM-encoded string.
    :param from_file: Treat ``source`` as a file path.
    :returns: A ``paramiko.RSAKey``.
    """
    import paramiko

    if from_file:
        return paramiko.RSAKey.from_private_key_file(source)
    with StringIO(_sanitize_pem(source)) as buf:
        return paramiko.RSAKey.from_private_key(buf)


# endregion

# region: host keys and errors
_HOST_KEYS_ENV = "SFTP_KNOWN_HOST_KEYS"


def _load_host_keys_from_string(ssh: Any, keys_content: str) -> None:  # pragma: no cover
    """Parse a known_hosts-formatted string into an SSHClient's host keys."""
    import tempfile

    with tempfile.NamedTemporaryFile(mode="w", suffix=".known_hosts", delete=True) as tmp:
        tmp.write(keys_content)
        tmp.flush()
        ssh.load_host_keys(tmp.name)


def sftp_failure_from(exc: BaseException) -> SFTPFailure | None:
    """Describe a paramiko or socket exception as an :class:`SFTPFailure`."""
    import paramiko

    if isinstance(exc, paramiko.AuthenticationException):
        return SFTPFailure(status=SSH_FX_PERMISSION_DENIED, message=str(exc) or "Authentication failed")
    if isinstance(exc, (paramiko.SSHException, EOFError)):
        return SFTPFailure(status=SSH_FX_CONNECTION_LOST, message=str(exc) or type(exc).__name__)
    if isinstance(exc, TimeoutError):
        return SFTPFailure(errno=errno.ETIMEDOUT, message=str(exc) or "timed out")
    if isinstance(exc, OSError):
        # paramiko reports SSH_FX_FAILURE as an errno-less IOError("Failure")
        if exc.errno is None:
            return SFTPFailure(status=SSH_FX_FAILURE, message=str(exc))
        return SFTPFailure(errno=exc.errno, message=exc.strerror or str(exc))
    if isinstance(exc, paramiko.SFTPError):
        return SFTPFailure(status=SSH_FX_FAILURE, message=str(exc))
    return None


def _is_connect_retryable(exc: BaseException) -> bool:
    import paramiko

    if isinstance(exc, paramiko.AuthenticationException):
        return False
    return isinstance(exc, (paramiko.SSHException, OSError, EOFError))


def is_retryable_sftp_error(exc: BaseException) -> bool:
    """Transport failures worth repeating a single idempotent SFTP call for."""
    import paramiko

    if isinstance(exc, paramiko.AuthenticationException):
        return False
    return isinstance(exc, (paramiko.SSHException, EOFError, ConnectionError, TimeoutError))


# endregion


class _SFTPRenameTransfer:
    """Move with the server's rename; copies are composed from read and write."""

    required_capability = Capability.MOVE

    def __init__(self, provider: SFTPProvider) -> None:
        self._provider = provider

    def copy(self, src: str, dst: str, options: TransferOptions) -> None:
        self._provider._generic_transfer.copy(src, dst, options)

    def move(self, src: str, dst: str, options: TransferOptions) -> None:
        provider = self._provider
        with provider._errors(src):
            sftp = provider._sftp
            src_sftp = provider._sftp_path(src)
            dst_sftp = provider._sftp_path(dst)
            attrs = provider._stat_or_none(src_sftp)
            if attrs is None:
                raise NotFound(f"Source not found: {src}", path=src, backend=provider.name)
            if stat.S_ISDIR(attrs.st_mode or 0) and not is_recursive(src, options):
                raise RemoteOpsError(
                    f"Source is a directory: {src}", path=src, backend=provider.name, code="IS_DIRECTORY"
                )
            existing = provider._stat_or_none(dst_sftp)
            if existing is not None and not options.overwrite:
                raise AlreadyExists(f"Destination already exists: {dst}", path=dst, backend=provider.name)
            if options.token is not None:
                options.token.throw_if_cancelled()
            provider._ensure_parent_dirs(dst_sftp)
            try:
                sftp.posix_rename(src_sftp, dst_sftp)
            except OSError:  # pragma: no cover -- fallback for servers without posix_rename
                if existing is not None:
                    with contextlib.suppress(OSError):
                        sftp.remove(dst_sftp)
                sftp.rename(src_sftp, dst_sftp)
        report_progress(options.on_progress, "Moving", 1, 1, src)


class SFTPProvider(StorageProvider):
    """SFTP provider using pure paramiko.

    The connection is opened lazily on first use, or explicitly with
    :meth:`connect`, and re-opened when found stale.

    :param host: SFTP server hostname (required, non-empty).
    :param port: SSH port (default: 22).
    :param username: SSH username.
    :param password: SSH password.
    :param pkey: paramiko.PKey instance for key-based auth.
    :param private_key: PEM-encoded RSA key, for configs that cannot hold a
        ``PKey``. Line breaks may have been replaced by another character.
    :param private_key_file: Path to an RSA key file.
    :param base_path: Root path on the remote server (default: ``/``).
    :param host_key_policy: Host key verification policy.
    :param known_host_keys: Known hosts string (code-level override).
    :param host_keys_path: Path to known_hosts file (default: ``~/.ssh/known_hosts``).
    :param timeout: SSH connection timeout in seconds.
    :param connect_kwargs: Extra kwargs passed to ``SSHClient.connect()``.
    :param retry: Retry policy for opening the connection.
    :param logger: Logger for diagnostics.
    """

    def __init__(
        self,
        host: str,
        *,
        port: int = 22,
        username: str | None = None,
        password: str | None = None,
        pkey: Any = None,
        private_key: str | None = None,
        private_key_file: str | None = None,
        base_path: str = "/",
        host_key_policy: HostKeyPolicy = HostKeyPolicy.STRICT,
        known_host_keys: str | None = None,
        host_keys_path: str | None = None,
        timeout: int = 10,
        connect_kwargs: dict[str, Any] | None = None,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
        session: SessionContext | None = None,
    ) -> None:
        if not host or not host.strip():
            raise ValueError("host must be a non-empty string")
        if private_key is not None and private_key_file is not None:
            raise ValueError("Pass private_key or private_key_file, not both")
        if pkey is None and private_key_file is not None:
            pkey = load_private_key(private_key_file, from_file=True)
        elif pkey is None and private_key is not None:
            pkey = load_private_key(private_key)
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._pkey = pkey
        self._base_path = base_path.rstrip("/") or "/"
        self._host_key_policy = host_key_policy
        self._known_host_keys = known_host_keys
        self._host_keys_path = host_keys_path
        self._timeout = timeout
        self._connect_kwargs = connect_kwargs or {}
        self._resolved_host_keys = known_host_keys or os.environ.get(_HOST_KEYS_ENV)

        self._ssh_client: Any = None
        self._sftp_client: Any = None
        super().__init__(
            retry=retry,
            logger=logger or log,
            session=session,
            accelerated_transfer=_SFTPRenameTransfer(self),
        )

    @property
    def name(self) -> str:
        return "sftp"

    @property
    def capabilities(self) -> CapabilitySet:
        return _SFTP_CAPABILITIES

    def clone(self) -> SFTPProvider:
        """Same server and credentials, separate connection."""
        return SFTPProvider(
            self._host,
            port=self._port,
            username=self._username,
            password=self._password,
            pkey=self._pkey,
            base_path=self._base_path,
            host_key_policy=self._host_key_policy,
            known_host_keys=self._known_host_keys,
            host_keys_path=self._host_keys_path,
            timeout=self._timeout,
            connect_kwargs=self._connect_kwargs,
            retry=self._retry,
            logger=self._log,
            session=dataclasses.replace(self._session),
        )

    # region: lazy connection
    @property
    def _sftp(self) -> Any:
        """Lazy SFTP client with automatic reconnection on staleness."""
        if not self._is_connected():
            self._connect()
        return self._sftp_client

    def _connect(self) -> None:
        """Establish SSH + SFTP connection, retrying transport failures."""
        self._close_clients()
        ssh = self._create_ssh_client()

        def do_connect() -> None:
            self._log.info("Connecting to %s:%d as %s", self._host, self._port, self._username)
            ssh.connect(
                hostname=self._host,
                port=self._port,
                username=self._username,
                password=self._password,
                pkey=self._pkey,
                timeout=self._timeout,
                banner_timeout=self._timeout,
                auth_timeout=self._timeout,
                channel_timeout=self._timeout,
                **self._connect_kwargs,
            )

        self._retry.with_predicate(_is_connect_retryable).call(do_connect)
        self._ssh_client = ssh
        self._sftp_client = ssh.open_sftp()
        self._log.info("SFTP connection established.")

    def _create_ssh_client(self) -> Any:
        """Create and configure an SSHClient with host key policy."""
        import paramiko

        ssh = paramiko.SSHClient()
        if self._resolved_host_keys:  # pragma: no cover -- tests use AUTO_ADD
            _load_host_keys_from_string(ssh, self._resolved_host_keys)
        elif self._host_key_policy in (HostKeyPolicy.STRICT, HostKeyPolicy.TRUST_ON_FIRST_USE):  # pragma: no cover
            keys_path = self._host_keys_path or os.path.expanduser("~/.ssh/known_hosts")
            if os.path.isfile(keys_path):
                ssh.load_host_keys(keys_path)

        if self._host_key_policy is HostKeyPolicy.TRUST_ON_FIRST_USE:  # pragma: no cover
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        elif self._host_key_policy is HostKeyPolicy.AUTO_ADD:
            self._log.warning("AUTO_ADD host key policy -- NOT safe for production.")
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        else:
            ssh.set_missing_host_key_policy(paramiko.RejectPolicy())
        return ssh

    def _is_connected(self) -> bool:
        if self._sftp_client is None or self._ssh_client is None:
            return False
        try:
            self._sftp_client.stat(".")
            return True
        except Exception:
            return False

    def _close_clients(self) -> None:
        if self._sftp_client is not None:
            with contextlib.suppress(Exception):
                self._sftp_client.close()
            self._sftp_client = None
        if self._ssh_client is not None:
            with contextlib.suppress(Exception):
                self._ssh_client.close()
            self._ssh_client = None

    def connect(self) -> OperationResult[None]:
        def connect() -> None:
            with self._errors():
                self._connect()

        return self._gated(Capability.CONNECTION, "connect", connect)

    def disconnect(self) -> OperationResult[None]:
        return self._gated(Capability.CONNECTION, "disconnect", self._close_clients)

    def is_connected(self) -> OperationResult[bool]:
        return self._gated(Capability.CONNECTION, "is_connected", self._is_connected)

    # endregion

    # region: path helpers
    def _sftp_path(self, path: str) -> str:
        """Absolute server path of a provider path."""
        key = normalize_path(path).rstrip("/")
        if not key:
            return self._base_path
        if self._base_path == "/":
            return f"/{key}"
        return f"{self._base_path}/{key}"

    def _call(self, method: str, *args: Any) -> Any:
        """Run one idempotent SFTP client method under the retry policy.

        Each attempt goes through :attr:`_sftp`, so a transport found stale
        after a failure is reopened before the call is repeated.
        """
        return self._retry.with_predicate(is_retryable_sftp_error).call(
            lambda: getattr(self._sftp, method)(*args)
        )

    def _stat_or_none(self, sftp_path: str, *, follow_symlinks: bool = True) -> Any:
        try:
            return self._call("stat" if follow_symlinks else "lstat", sftp_path)
        except OSError as exc:
            if exc.errno == errno.ENOENT:
                return None
            raise

    def _ensure_parent_dirs(self, sftp_path: str) -> None:
        parent = sftp_path.rsplit("/", 1)[0]
        if parent:
            self._makedirs(parent)

    def _makedirs(self, sftp_path: str) -> None:
        """Create ``sftp_path`` and any missing ancestors."""
        current = ""
        for part in sftp_path.split("/"):
            if not part:
                continue
            current = f"{current}/{part}"
            if self._stat_or_none(current) is None:
                with contextlib.suppress(OSError):
                    self._sftp.mkdir(current)

    @contextmanager
    def _errors(self, path: str = "") -> Iterator[None]:
        """Map paramiko/OS exceptions to remote_ops errors."""
        try:
            yield
        except RemoteOpsError:
            raise
        except Exception as exc:
            failure = sftp_failure_from(exc)
            if failure is None:
                raise
            raise map_sftp_failure(failure).to_exception(path=path, backend=self.name) from exc

    # endregion

    # region: listing and metadata
    def list(self, path: str = "", options: ListOptions | None = None) -> OperationResult[ListPage]:
        options = options or ListOptions()
        return self._run("list", lambda: self._list(path, options), path=path)

    def _list(self, path: str, options: ListOptions) -> ListPage:
        with self._errors(path):
            root = self._sftp_path(path)
            attrs = self._stat_or_none(root)
            if attrs is None:
                raise NotFound(f"Directory not found: {path}", path=path, backend=self.name)
            if not stat.S_ISDIR(attrs.st_mode or 0):
                raise RemoteOpsError(f"Not a directory: {path}", path=path, backend=self.name, code="NOT_A_DIRECTORY")
            entries = list(self._walk(normalize_path(path, directory=True), root, recursive=options.recursive))
        if not options.include_hidden:
            entries = [e for e in entries if not e.name.startswith(".")]
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

    def _walk(self, prefix: str, sftp_path: str, *, recursive: bool) -> Iterator[Entry]:
        for attr in sorted(self._call("listdir_attr", sftp_path), key=lambda a: a.filename):
            entry = entry_from_stat(join_path(prefix, attr.filename), attr)
            yield entry
            if recursive and entry.is_directory:
                yield from self._walk(entry.path, f"{sftp_path.rstrip('/')}/{attr.filename}", recursive=True)

    def get_metadata(self, path: str) -> OperationResult[Entry]:
        def stat_entry() -> Entry:
            with self._errors(path):
                return entry_from_stat(normalize_path(path), self._call("stat", self._sftp_path(path)))

        return self._run("get_metadata", stat_entry, path=path)

    def exists(self, path: str) -> OperationResult[bool]:
        def exists() -> bool:
            with self._errors(path):
                return self._stat_or_none(self._sftp_path(path)) is not None

        return self._run("exists", exists, path=path)

    # endregion

    # region: read and write
    def read(self, path: str, options: ReadOptions | None = None) -> OperationResult[bytes]:
        options = options or ReadOptions()

        def read_once() -> bytes:
            with self._sftp.file(self._sftp_path(path), "r") as f:
                if options.start is None and options.end is None:
                    f.prefetch()
                    return bytes(f.read())
                start = options.start or 0
                f.seek(start)
                if options.end is None:
                    return bytes(f.read())
                return bytes(f.read(max(options.end - start, 0)))

        def read() -> bytes:
            with self._errors(path):
                return self._retry.with_predicate(is_retryable_sftp_error).call(read_once)

        return self._run("read", read, path=path)

    def write(
        self, path: str, content: WritableContent, options: WriteOptions | None = None
    ) -> OperationResult[None]:
        options = options or WriteOptions()
        return self._run("write", lambda: self._write(path, content, options), path=path)

    def _write(self, path: str, content: WritableContent, options: WriteOptions) -> None:
        if is_directory_path(normalize_path(path)):
            raise InvalidPath(f"Cannot write to a directory path: {path}", path=path, backend=self.name)
        data = read_content(content)
        total = len(data)
        with self._errors(path):
            sftp_path = self._sftp_path(path)
            if not options.overwrite and self._stat_or_none(sftp_path) is not None:
                raise AlreadyExists(f"File already exists: {path}", path=path, backend=self.name)
            self._ensure_parent_dirs(sftp_path)
            with self._sftp.file(sftp_path, "w") as f:
                f.set_pipelined(True)
                for start in range(0, total, _CHUNK_SIZE):
                    if options.token is not None:
                        options.token.throw_if_cancelled()
                    chunk = data[start : start + _CHUNK_SIZE]
                    f.write(chunk)
                    report_progress(options.on_progress, "Uploading file", start + len(chunk), total, path)
        if total == 0:
            report_progress(options.on_progress, "Uploading file", 0, 0, path)

    def mkdir(self, path: str) -> OperationResult[None]:
        def mkdir() -> None:
            with self._errors(path):
                self._makedirs(self._sftp_path(path))

        return self._run("mkdir", mkdir, path=path)

    # endregion

    # region: delete
    def delete(self, path: str, options: DeleteOptions | None = None) -> OperationResult[None]:
        options = options or DeleteOptions()
        return self._run("delete", lambda: self._delete(path, options), path=path)

    def _delete(self, path: str, options: DeleteOptions) -> None:
        with self._errors(path):
            sftp_path = self._sftp_path(path)
            if sftp_path == self._base_path:
                raise InvalidPath("Refusing to delete the provider root", path=path, backend=self.name)
            attrs = self._stat_or_none(sftp_path, follow_symlinks=False)
            if attrs is None:
                if options.missing_ok:
                    return
                raise NotFound(f"Path not found: {path}", path=path, backend=self.name)
            if stat.S_ISDIR(attrs.st_mode or 0):
                if options.recursive:
                    self._rmtree(sftp_path)
                elif self._call("listdir", sftp_path):
                    raise RemoteOpsError(f"Directory not empty: {path}", path=path, backend=self.name, code="NOT_EMPTY")
                else:
                    self._call("rmdir", sftp_path)
            elif is_directory_path(path):
                raise RemoteOpsError(f"Not a directory: {path}", path=path, backend=self.name, code="NOT_A_DIRECTORY")
            else:
                self._call("remove", sftp_path)
        report_progress(options.on_progress, "Deleting", 1, 1, path)

    def _rmtree(self, sftp_path: str) -> None:
        """Recursively remove a directory tree, bottom-up."""
        for attr in self._call("listdir_attr", sftp_path):
            child = f"{sftp_path}/{attr.filename}"
            if stat.S_ISDIR(attr.st_mode or 0):
                self._rmtree(child)
            else:
                self._call("remove", child)
        self._call("rmdir", sftp_path)

    # endregion

    # region: lifecycle
    def close(self) -> None:
        self._close_clients()

    # endregion
