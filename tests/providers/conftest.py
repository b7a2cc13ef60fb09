"""Provider test fixtures: a moto S3 server and an in-process SFTP server."""

from __future__ import annotations

import shutil
import socket
import tempfile
import uuid
from typing import TYPE_CHECKING

import pytest

from remote_ops._retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from remote_ops._provider import StorageProvider
    from tests.providers.sftp_server import SFTPTestServer


def _free_port() -> int:
    with socket.socket() as s:
        s.bind(("", 0))
        return int(s.getsockname()[1])


@pytest.fixture(scope="session")
def moto_server() -> Iterator[str]:
    """Endpoint URL of a moto S3 server running for the whole session.

    Server mode keeps s3fs on a real HTTP connection instead of patching botocore.
    """
    pytest.importorskip("moto", reason="moto not installed")
    pytest.importorskip("s3fs", reason="s3fs not installed")
    from moto.moto_server.threaded_moto_server import ThreadedMotoServer

    port = _free_port()
    server = ThreadedMotoServer(port=port, verbose=False)
    server.start()
    yield f"http://127.0.0.1:{port}"
    server.stop()


@pytest.fixture(scope="session")
def sftp_server() -> Iterator[SFTPTestServer]:
    """An SFTP server over a temp directory, running for the whole session."""
    pytest.importorskip("paramiko", reason="paramiko not installed")
    from tests.providers.sftp_server import SFTPTestServer

    root = tempfile.mkdtemp(prefix="sftp_test_")
    with SFTPTestServer(root) as server:
        yield server
    shutil.rmtree(root, ignore_errors=True)


@pytest.fixture(params=["local", "s3", "sftp"])
def provider(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[StorageProvider]:
    """Each built-in provider over an empty root. Add new providers here."""
    retry = RetryPolicy(max_attempts=2, initial_delay=0.0, sleep=lambda _: None)
    if request.param == "local":
        from remote_ops.providers._local import LocalProvider

        yield LocalProvider(str(tmp_path / "root"), retry=retry)
    elif request.param == "s3":
        endpoint = request.getfixturevalue("moto_server")
        boto3 = pytest.importorskip("boto3", reason="boto3 not installed")
        from remote_ops.providers._s3 import S3Provider

        bucket = f"conformance-{uuid.uuid4().hex[:8]}"
        boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
            region_name="us-east-1",
        ).create_bucket(Bucket=bucket)
        s3 = S3Provider(
            bucket=bucket,
            key="testing",
            secret="testing",
            region_name="us-east-1",
            endpoint_url=endpoint,
            retry=retry,
        )
        yield s3
        s3.close()
    else:
        server = request.getfixturevalue("sftp_server")
        from remote_ops.providers._sftp import HostKeyPolicy, SFTPProvider

        sftp = SFTPProvider(
            "127.0.0.1",
            port=server.port,
            username="testuser",
            password="testpass",
            base_path=f"/conformance_{uuid.uuid4().hex[:8]}",
            host_key_policy=HostKeyPolicy.AUTO_ADD,
            connect_kwargs={"allow_agent": False, "look_for_keys": False},
            retry=retry,
        )
        sftp.mkdir("").unwrap()
        yield sftp
        sftp.close()
