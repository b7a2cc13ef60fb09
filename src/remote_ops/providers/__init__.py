"""Provider implementations."""

from remote_ops.providers._local import LocalProvider

__all__ = ["LocalProvider"]

try:
    from remote_ops.providers._s3 import S3Provider

    __all__ = [*__all__, "S3Provider"]
except ImportError:  # pragma: no cover
    pass

try:
    from remote_ops.providers._sftp import HostKeyPolicy, SFTPProvider

    __all__ = [*__all__, "HostKeyPolicy", "SFTPProvider"]
except ImportError:  # pragma: no cover
    pass
