"""In-process SFTP server backed by a local directory, for provider tests.

Authentication always succeeds. Unlike a permissive stub, the server does not
create missing parent directories on open and ``mkdir`` fails on an existing
directory, so the provider's own directory handling is exercised.
"""

from __future__ import annotations

import contextlib
import os
import socket
import threading
from pathlib import Path, PurePosixPath

import paramiko
from paramiko import (
    AUTH_SUCCESSFUL,
    OPEN_SUCCEEDED,
    RSAKey,
    ServerInterface,
    SFTPAttributes,
    SFTPHandle,
    SFTPServer,
    SFTPServerInterface,
    Transport,
)


class _AcceptAll(ServerInterface):
    def check_auth_password(self, username: str, password: str) -> int:
        return AUTH_SUCCESSFUL

    def check_auth_publickey(self, username: str, key: paramiko.PKey) -> int:
        return AUTH_SUCCESSFUL

    def check_channel_request(self, kind: str, chanid: int) -> int:
        return OPEN_SUCCEEDED


class _FileHandle(SFTPHandle):
    def stat(self) -> SFTPAttributes | int:
        try:
            return SFTPAttributes.from_stat(os.fstat(self.readfile.fileno()))
        except OSError as exc:
            return SFTPServer.convert_errno(exc.errno)

    def chattr(self, attr: SFTPAttributes) -> int:
        return paramiko.SFTP_OK


def _errno_result(exc: OSError) -> int:
    return SFTPServer.convert_errno(exc.errno)


class _DirectoryBackedSFTP(SFTPServerInterface):
    """Maps SFTP requests onto ``root``; set per server before accepting connections."""

    root: str = ""

    def _local(self, path: str) -> str:
        posix = str(PurePosixPath(path)).lstrip("/")
        return str(Path(self.root) / posix)

    def list_folder(self, path: str) -> list[SFTPAttributes] | int:
        local = self._local(path)
        try:
            result = []
            for name in os.listdir(local):
                attr = SFTPAttributes.from_stat(os.lstat(os.path.join(local, name)))
                attr.filename = name
                result.append(attr)
            return result
        except OSError as exc:
            return _errno_result(exc)

    def stat(self, path: str) -> SFTPAttributes | int:
        try:
            return SFTPAttributes.from_stat(os.stat(self._local(path)))
        except OSError as exc:
            return _errno_result(exc)

    def lstat(self, path: str) -> SFTPAttributes | int:
        try:
            return SFTPAttributes.from_stat(os.lstat(self._local(path)))
        except OSError as exc:
            return _errno_result(exc)

    def open(self, path: str, flags: int, attr: SFTPAttributes) -> SFTPHandle | int:
        try:
            fd = os.open(self._local(path), flags, 0o644)
        except OSError as exc:
            return _errno_result(exc)
        if flags & os.O_WRONLY:
            mode = "wb"
        elif flags & os.O_RDWR:
            mode = "rb+"
        else:
            mode = "rb"
        handle = _FileHandle(flags)
        handle.filename = self._local(path)
        handle.readfile = handle.writefile = os.fdopen(fd, mode)
        return handle

    def remove(self, path: str) -> int:
        try:
            os.remove(self._local(path))
        except OSError as exc:
            return _errno_result(exc)
        return paramiko.SFTP_OK

    def rename(self, oldpath: str, newpath: str) -> int:
        if os.path.exists(self._local(newpath)):
            return paramiko.SFTP_FAILURE
        try:
            os.rename(self._local(oldpath), self._local(newpath))
        except OSError as exc:
            return _errno_result(exc)
        return paramiko.SFTP_OK

    def posix_rename(self, oldpath: str, newpath: str) -> int:
        try:
            os.replace(self._local(oldpath), self._local(newpath))
        except OSError as exc:
            return _errno_result(exc)
        return paramiko.SFTP_OK

    def mkdir(self, path: str, attr: SFTPAttributes) -> int:
        try:
            os.mkdir(self._local(path))
        except OSError as exc:
            return _errno_result(exc)
        return paramiko.SFTP_OK

    def rmdir(self, path: str) -> int:
        try:
            os.rmdir(self._local(path))
        except OSError as exc:
            return _errno_result(exc)
        return paramiko.SFTP_OK

    def chattr(self, path: str, attr: SFTPAttributes) -> int:
        return paramiko.SFTP_OK

    def symlink(self, target_path: str, path: str) -> int:
        return paramiko.SFTP_OP_UNSUPPORTED


class SFTPTestServer:
    """Serve ``root`` over SFTP on a free localhost port from a daemon thread.

    Use as a context manager, or call :meth:`start` and :meth:`stop`.
    """

    def __init__(self, root: str, host: str = "127.0.0.1") -> None:
        self.root = root
        self.host = host
        self.port = 0
        self.host_key = RSAKey.generate(2048)
        self._stop = threading.Event()
        self._socket: socket.socket | None = None
        self._thread: threading.Thread | None = None

    @property
    def known_hosts_entry(self) -> str:
        return f"[{self.host}]:{self.port} {self.host_key.get_name()} {self.host_key.get_base64()}"

    def start(self) -> SFTPTestServer:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, 0))
        sock.listen(5)
        sock.settimeout(0.5)
        self.port = sock.getsockname()[1]
        self._socket = sock
        _DirectoryBackedSFTP.root = self.root
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()
        return self

    def _serve(self) -> None:
        assert self._socket is not None
        while not self._stop.is_set():
            try:
                conn, _ = self._socket.accept()
            except TimeoutError:
                continue
            except OSError:
                break
            transport = Transport(conn)
            transport.add_server_key(self.host_key)
            transport.set_subsystem_handler("sftp", SFTPServer, _DirectoryBackedSFTP)
            try:
                transport.start_server(server=_AcceptAll())
            except (paramiko.SSHException, EOFError, OSError):
                transport.close()

    def stop(self) -> None:
        self._stop.set()
        if self._socket is not None:
            with contextlib.suppress(OSError):
                self._socket.close()
        if self._thread is not None:
            self._thread.join(timeout=5)

    def __enter__(self) -> SFTPTestServer:
        return self.start()

    def __exit__(self, *exc: object) -> None:
        self.stop()
