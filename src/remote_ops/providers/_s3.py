"""S3-compatible object storage provider using s3fs."""

from __future__ import annotations

import dataclasses
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from remote_ops._capabilities import Capability, CapabilitySet
from remote_ops._errors import AlreadyExists, NotFound, RemoteOpsError
from remote_ops._mapping import S3Failure, map_os_failure, map_s3_failure, os_failure_from
from remote_ops._models import Entry, EntryType, ListPage
from remote_ops._path import as_directory, is_directory_path, normalize_path
from remote_ops._provider import StorageProvider, read_content
from remote_ops._result import OperationResult, OperationStatus, success
from remote_ops._retry import S3_RETRY_POLICY, is_transient_error
from remote_ops._strategy import is_recursive
from remote_ops._transfer import (
    copy_prefix,
    delete_in_batches,
    list_all_keys,
    report_progress,
    should_use_multipart_upload,
    upload_in_parts,
)
from remote_ops._types import DeleteOptions, ListOptions, ReadOptions, TransferOptions, WriteOptions

if TYPE_CHECKING:
    import logging
    from collections.abc import Iterator, Sequence
    from datetime import datetime

    from remote_ops._cancellation import CancellationToken
    from remote_ops._provider import SessionContext
    from remote_ops._retry import RetryPolicy
    from remote_ops._transfer import CompletedPart
    from remote_ops._types import Metadata, WritableContent

_S3_CAPABILITIES = CapabilitySet(
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
        Capability.METADATA,
        Capability.PRESIGNED_URLS,
        Capability.BATCH_DELETE,
        Capability.CONTAINERS,
    }
)

DIRECTORY_CONTENT_TYPE = "application/x-directory"


# region: error extraction
def s3_failure_from(exc: BaseException) -> S3Failure | None:
    """Find the S3 error response behind an exception.

    s3fs re-raises botocore errors as ``OSError`` subclasses and keeps the
    original as ``__cause__``; the chain is walked until a ``ClientError``
    turns up. Bare ``FileNotFoundError``/``PermissionError`` raised by s3fs
    itself are described by their HTTP equivalents.
    """
    from botocore.exceptions import ClientError

    current: BaseException | None = exc
    while current is not None:
        if isinstance(current, ClientError):
            error = current.response.get("Error", {})
            meta = current.response.get("ResponseMetadata", {})
            return S3Failure(
                code=error.get("Code"),
                http_status=meta.get("HTTPStatusCode"),
                message=error.get("Message") or str(current),
            )
        current = current.__cause__
    if isinstance(exc, FileNotFoundError):
        return S3Failure(code="NoSuchKey", http_status=404, message=str(exc))
    if isinstance(exc, PermissionError):
        return S3Failure(code="AccessDenied", http_status=403, message=str(exc))
    return None


def is_retryable_s3_error(exc: BaseException) -> bool:
    """Retry predicate for S3: throttling, timeouts and 5xx responses."""
    failure = s3_failure_from(exc)
    if failure is not None:
        return map_s3_failure(failure).retryable
    from botocore.exceptions import ConnectionError as BotoConnectionError

    return isinstance(exc, BotoConnectionError) or is_transient_error(exc)


def _s3_policy(policy: RetryPolicy) -> RetryPolicy:
    if policy.is_retryable is is_transient_error:
        return policy.with_predicate(is_retryable_s3_error)
    return policy


# endregion


class _S3MultipartClient:
    """Multipart session calls against one bucket."""

    def __init__(self, provider: S3Provider, bucket: str) -> None:
        self._provider = provider
        self._bucket = bucket

    def create_multipart_upload(
        self, key: str, *, content_type: str | None = None, metadata: Metadata | None = None
    ) -> str:
        kwargs: dict[str, Any] = {"Bucket": self._bucket, "Key": key}
        if content_type:
            kwargs["ContentType"] = content_type
        if metadata:
            kwargs["Metadata"] = dict(metadata)
        response = self._provider._call("create_multipart_upload", **kwargs)
        return str(response["UploadId"])

    def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        response = self._provider._fs.call_s3(
            "upload_part",
            Bucket=self._bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=data,
        )
        return str(response["ETag"])

    def complete_multipart_upload(self, key: str, upload_id: str, parts: Sequence[CompletedPart]) -> None:
        self._provider._fs.call_s3(
            "complete_multipart_upload",
            Bucket=self._bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": [{"PartNumber": p.part_number, "ETag": p.etag} for p in parts]},
        )

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        self._provider._fs.call_s3("abort_multipart_upload", Bucket=self._bucket, Key=key, UploadId=upload_id)


class _S3ServerSideTransfer:
    """Copy and move with ``CopyObject``; bytes never leave the service."""

    required_capability = Capability.SERVER_SIDE_COPY

    def __init__(self, provider: S3Provider) -> None:
        self._provider = provider

    def copy(self, src: str, dst: str, options: TransferOptions) -> None:
        self._transfer(src, dst, options, remove_source=False)

    def move(self, src: str, dst: str, options: TransferOptions) -> None:
        self._transfer(src, dst, options, remove_source=True)

    def _transfer(self, src: str, dst: str, options: TransferOptions, *, remove_source: bool) -> None:
        provider = self._provider
        bucket = provider._bucket()
        with provider._errors(src):
            if not is_recursive(src, options):
                if not options.overwrite and provider._head(bucket, dst) is not None:
                    raise AlreadyExists(f"Destination already exists: {dst}", path=dst, backend=provider.name)
                provider._copy_object(bucket, src, dst)
                if remove_source:
                    provider._call("delete_object", Bucket=bucket, Key=src)
                report_progress(options.on_progress, "Moving" if remove_source else "Copying", 1, 1, src)
                return

            src_prefix, dst_prefix = as_directory(src), as_directory(dst)
            keys = provider._all_keys(bucket, src_prefix, token=options.token)
            if not keys:
                raise NotFound(f"Source not found: {src}", path=src, backend=provider.name)
            copy_prefix(
                keys,
                src_prefix,
                dst_prefix,
                lambda s, d: provider._copy_object(bucket, s, d),
                on_progress=options.on_progress,
                token=options.token,
            )
            if remove_source:
                delete_in_batches(lambda batch: provider._delete_batch(bucket, batch), keys, token=options.token)


class S3Provider(StorageProvider):
    """S3-compatible object storage provider using s3fs.

    The bucket is session state: it can be given up front or chosen later
    with :meth:`set_container`.

    :param bucket: Initial bucket name.
    :param endpoint_url: Custom endpoint URL (e.g. for MinIO).
    :param key: AWS access key ID.
    :param secret: AWS secret access key.
    :param region_name: AWS region name.
    :param client_options: Additional options passed to s3fs.
    :param retry: Retry policy for single S3 calls. Defaults to :data:`S3_RETRY_POLICY`.
    :param logger: Logger for diagnostics.
    """

    def __init__(
        self,
        bucket: str | None = None,
        *,
        endpoint_url: str | None = None,
        key: str | None = None,
        secret: str | None = None,
        region_name: str | None = None,
        client_options: dict[str, Any] | None = None,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
        session: SessionContext | None = None,
    ) -> None:
        if bucket is not None and not bucket.strip():
            raise ValueError("bucket must be a non-empty string")
        self._endpoint_url = endpoint_url
        self._key = key
        self._secret = secret
        self._client_options = client_options or {}
        self._fs_instance: Any = None
        super().__init__(
            retry=_s3_policy(retry or S3_RETRY_POLICY),
            logger=logger,
            session=session,
            accelerated_transfer=_S3ServerSideTransfer(self),
        )
        if session is None:
            self._session = dataclasses.replace(self._session, container=bucket, region=region_name)

    @property
    def name(self) -> str:
        return "s3"

    @property
    def capabilities(self) -> CapabilitySet:
        return _S3_CAPABILITIES

    def clone(self) -> S3Provider:
        return S3Provider(
            endpoint_url=self._endpoint_url,
            key=self._key,
            secret=self._secret,
            client_options=self._client_options,
            retry=self._retry,
            logger=self._log,
            session=self._session,
        )

    # region: lazy filesystem
    @property
    def _fs(self) -> Any:
        if self._fs_instance is None:
            import s3fs  # type: ignore[import-untyped]

            opts: dict[str, Any] = dict(self._client_options)
            if self._endpoint_url is not None:
                opts["endpoint_url"] = self._endpoint_url
            if self._key is not None:
                opts["key"] = self._key
            if self._secret is not None:
                opts["secret"] = self._secret
            if self._session.region is not None:
                client_kwargs: dict[str, Any] = opts.setdefault("client_kwargs", {})
                client_kwargs["region_name"] = self._session.region
            opts.setdefault("anon", False)
            self._fs_instance = s3fs.S3FileSystem(**opts)
        return self._fs_instance

    def _call(self, method: str, **kwargs: Any) -> Any:
        """One S3 API call, retried on transient failures."""
        return self._retry.call(self._fs.call_s3, method, **kwargs)

    # endregion

    # region: helpers
    def _bucket(self) -> str:
        bucket = self._session.container
        if not bucket:
            raise RemoteOpsError("No bucket selected", backend=self.name, code="BUCKET_NOT_CONFIGURED")
        return bucket

    @contextmanager
    def _errors(self, path: str = "") -> Iterator[None]:
        """Map s3fs/botocore exceptions to remote_ops errors."""
        try:
            yield
        except RemoteOpsError:
            raise
        except Exception as exc:
            failure = s3_failure_from(exc)
            if failure is not None:
                raise map_s3_failure(failure).to_exception(path=path, backend=self.name) from exc
            if isinstance(exc, OSError):
                raise map_os_failure(os_failure_from(exc)).to_exception(path=path, backend=self.name) from exc
            from botocore.exceptions import BotoCoreError

            if isinstance(exc, BotoCoreError):
                retryable = is_retryable_s3_error(exc)
                raise RemoteOpsError(
                    str(exc),
                    path=path,
                    backend=self.name,
                    code=type(exc).__name__,
                    retryable=retryable,
                ) from exc
            raise

    def _head(self, bucket: str, key: str) -> dict[str, Any] | None:
        try:
            return self._call("head_object", Bucket=bucket, Key=key)  # type: ignore[no-any-return]
        except Exception as exc:
            failure = s3_failure_from(exc)
            if failure is not None and (failure.http_status == 404 or failure.code in ("NoSuchKey", "NotFound")):
                return None
            raise

    def _entry(self, key: str, *, size: int | None, modified: datetime | None, **metadata: Any) -> Entry:
        return Entry.from_path(
            key,
            size=None if key.endswith("/") else size,
            modified=modified,
            metadata={k: v for k, v in metadata.items() if v is not None},
        )

    def _fetch_page(
        self,
        bucket: str,
        prefix: str,
        *,
        delimiter: str | None,
        continuation: str | None,
        max_keys: int | None = None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if continuation:
            kwargs["ContinuationToken"] = continuation
        if max_keys:
            kwargs["MaxKeys"] = max_keys
        return self._call("list_objects_v2", **kwargs)  # type: ignore[no-any-return]

    def _all_keys(self, bucket: str, prefix: str, *, token: CancellationToken | None = None) -> list[str]:
        def fetch(continuation: str | None) -> tuple[list[str], str | None]:
            page = self._fetch_page(bucket, prefix, delimiter=None, continuation=continuation)
            keys = [obj["Key"] for obj in page.get("Contents", [])]
            return keys, page.get("NextContinuationToken") if page.get("IsTruncated") else None

        return list_all_keys(fetch, token=token)

    def _delete_batch(self, bucket: str, keys: Sequence[str]) -> None:
        response = self._call(
            "delete_objects",
            Bucket=bucket,
            Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
        )
        errors = response.get("Errors") or []
        if errors:
            first = errors[0]
            mapped = map_s3_failure(S3Failure(code=first.get("Code"), message=first.get("Message", "")))
            raise mapped.to_exception(path=first.get("Key"), backend=self.name)

    def _copy_object(self, bucket: str, src: str, dst: str, **extra: Any) -> None:
        self._call("copy_object", Bucket=bucket, Key=dst, CopySource={"Bucket": bucket, "Key": src}, **extra)

    # endregion

    # region: listing and metadata
    def list(self, path: str = "", options: ListOptions | None = None) -> OperationResult[ListPage]:
        options = options or ListOptions()
        return self._run("list", lambda: self._list(path, options), path=path)

    def _list(self, path: str, options: ListOptions) -> ListPage:
        bucket = self._bucket()
        prefix = as_directory(normalize_path(path))
        with self._errors(path):
            page = self._fetch_page(
                bucket,
                prefix,
                delimiter=None if options.recursive else "/",
                continuation=options.continuation_token,
                max_keys=options.max_results,
            )
        entries: list[Entry] = []
        for common in page.get("CommonPrefixes", []):
            entries.append(self._entry(common["Prefix"], size=None, modified=None))
        for obj in page.get("Contents", []):
            key = obj["Key"]
            if key == prefix:
                continue
            entries.append(
                self._entry(
                    key,
                    size=obj.get("Size"),
                    modified=obj.get("LastModified"),
                    etag=obj.get("ETag"),
                    storage_class=obj.get("StorageClass"),
                )
            )
        if not options.include_hidden:
            entries = [e for e in entries if not e.name.startswith(".")]
        truncated = bool(page.get("IsTruncated"))
        return ListPage(
            entries=tuple(entries),
            has_more=truncated,
            continuation_token=page.get("NextContinuationToken") if truncated else None,
        )

    def get_metadata(self, path: str) -> OperationResult[Entry]:
        return self._run("get_metadata", lambda: self._metadata(path), path=path)

    def _metadata(self, path: str) -> Entry:
        bucket = self._bucket()
        key = normalize_path(path)
        with self._errors(path):
            if is_directory_path(key):
                page = self._fetch_page(bucket, key, delimiter="/", continuation=None, max_keys=1)
                if not page.get("Contents") and not page.get("CommonPrefixes"):
                    raise NotFound(f"Directory not found: {path}", path=path, backend=self.name)
                return self._entry(key, size=None, modified=None)
            head = self._head(bucket, key)
        if head is None:
            raise NotFound(f"File not found: {path}", path=path, backend=self.name)
        return self._entry(
            key,
            size=head.get("ContentLength"),
            modified=head.get("LastModified"),
            etag=head.get("ETag"),
            content_type=head.get("ContentType"),
            storage_class=head.get("StorageClass"),
            user_metadata=head.get("Metadata") or None,
        )

    def exists(self, path: str) -> OperationResult[bool]:
        result = self.get_metadata(path)
        if result.is_success:
            return success(True)
        if result.status is OperationStatus.NOT_FOUND:
            return success(False)
        return OperationResult(status=result.status, error=result.error)

    # endregion

    # region: read and write
    def read(self, path: str, options: ReadOptions | None = None) -> OperationResult[bytes]:
        options = options or ReadOptions()

        def read() -> bytes:
            bucket = self._bucket()
            with self._errors(path):
                data = self._retry.call(
                    self._fs.cat_file, f"{bucket}/{normalize_path(path)}", start=options.start, end=options.end
                )
            return bytes(data)

        return self._run("read", read, path=path)

    def write(
        self, path: str, content: WritableContent, options: WriteOptions | None = None
    ) -> OperationResult[None]:
        options = options or WriteOptions()
        return self._run("write", lambda: self._write(path, content, options), path=path)

    def _write(self, path: str, content: WritableContent, options: WriteOptions) -> None:
        bucket = self._bucket()
        key = normalize_path(path)
        data = read_content(content)
        total = len(data)
        with self._errors(path):
            if not options.overwrite and self._head(bucket, key) is not None:
                raise AlreadyExists(f"File already exists: {path}", path=path, backend=self.name)
            if should_use_multipart_upload(total):
                upload_in_parts(
                    _S3MultipartClient(self, bucket),
                    key,
                    data,
                    content_type=options.content_type,
                    metadata=options.metadata,
                    on_progress=options.on_progress,
                    retry=self._retry,
                    token=options.token,
                )
                return
            report_progress(options.on_progress, "Uploading file", 0, total, key)
            kwargs: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": data}
            if options.content_type:
                kwargs["ContentType"] = options.content_type
            if options.metadata:
                kwargs["Metadata"] = dict(options.metadata)
            self._call("put_object", **kwargs)
            report_progress(options.on_progress, "Uploading file", total, total, key)

    def mkdir(self, path: str) -> OperationResult[None]:
        def mkdir() -> None:
            bucket = self._bucket()
            marker = as_directory(normalize_path(path))
            with self._errors(path):
                self._call("put_object", Bucket=bucket, Key=marker, Body=b"", ContentType=DIRECTORY_CONTENT_TYPE)

        return self._run("mkdir", mkdir, path=path)

    # endregion

    # region: delete
    def delete(self, path: str, options: DeleteOptions | None = None) -> OperationResult[None]:
        options = options or DeleteOptions()
        return self._run("delete", lambda: self._delete(path, options), path=path)

    def _delete(self, path: str, options: DeleteOptions) -> None:
        bucket = self._bucket()
        key = normalize_path(path)
        with self._errors(path):
            if is_directory_path(key) or options.recursive:
                prefix = as_directory(key)
                keys = self._all_keys(bucket, prefix, token=options.token)
                if not keys:
                    if options.missing_ok:
                        return
                    raise NotFound(f"Directory not found: {path}", path=path, backend=self.name)
                if not options.recursive and keys != [prefix]:
                    raise RemoteOpsError(f"Directory not empty: {path}", path=path, backend=self.name, code="NOT_EMPTY")
                delete_in_batches(
                    lambda batch: self._delete_batch(bucket, batch),
                    keys,
                    on_progress=options.on_progress,
                    token=options.token,
                )
                return
            if not options.missing_ok and self._head(bucket, key) is None:
                raise NotFound(f"File not found: {path}", path=path, backend=self.name)
            self._call("delete_object", Bucket=bucket, Key=key)
            report_progress(options.on_progress, "Deleting", 1, 1, key)

    # endregion

    # region: optional operations
    def list_containers(self) -> OperationResult[list[Entry]]:
        def buckets() -> list[Entry]:
            with self._errors():
                response = self._call("list_buckets")
            return [
                Entry.from_path(
                    as_directory(b["Name"]),
                    type=EntryType.BUCKET,
                    modified=b.get("CreationDate"),
                )
                for b in response.get("Buckets", [])
            ]

        return self._run("list_containers", buckets)

    def set_region(self, region: str) -> OperationResult[None]:
        """Switch region; the next call builds a new client."""
        result = super().set_region(region)
        if result.is_success:
            self._fs_instance = None
        return result

    def set_metadata(self, path: str, metadata: Metadata) -> OperationResult[None]:
        def replace() -> None:
            bucket = self._bucket()
            key = normalize_path(path)
            with self._errors(path):
                head = self._head(bucket, key)
                if head is None:
                    raise NotFound(f"File not found: {path}", path=path, backend=self.name)
                extra: dict[str, Any] = {"Metadata": dict(metadata), "MetadataDirective": "REPLACE"}
                if head.get("ContentType"):
                    extra["ContentType"] = head["ContentType"]
                self._copy_object(bucket, key, key, **extra)

        return self._gated(Capability.METADATA, "set_metadata", replace, path=path)

    def get_presigned_url(self, path: str, *, expires_in: int = 3600, method: str = "get") -> OperationResult[str]:
        client_method = {"get": "get_object", "put": "put_object"}.get(method.lower())
        if client_method is None:
            raise ValueError(f"Unsupported presign method: {method!r}")

        def presign() -> str:
            bucket = self._bucket()
            with self._errors(path):
                return str(
                    self._fs.url(f"{bucket}/{normalize_path(path)}", expires=expires_in, client_method=client_method)
                )

        return self._gated(Capability.PRESIGNED_URLS, "get_presigned_url", presign, path=path)

    # endregion

    # region: lifecycle
    def close(self) -> None:
        self._fs_instance = None

    # endregion

