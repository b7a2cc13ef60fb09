"""Error handling: statuses, typed exceptions and user-facing messages.

Demonstrates:
- Inspecting OperationResult.status and .error
- unwrap() raising the matching RemoteOpsError subclass
- to_user_error() and summarize_results() for display
- Capability gating for operations a provider does not support
"""

from __future__ import annotations

import tempfile

from remote_ops import (
    AlreadyExists,
    DeleteOptions,
    InvalidPath,
    NotFound,
    RemoteOpsError,
    WriteOptions,
    summarize_results,
    to_user_error,
)
from remote_ops.providers import LocalProvider

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        provider = LocalProvider(tmp)

        # --- NotFound ---
        result = provider.read("nonexistent.txt")
        print(f"status={result.status.value} code={result.error.code if result.error else None}")
        try:
            result.unwrap()
        except NotFound as exc:
            print(f"NotFound: {exc}")
            print(f"  path={exc.path}, backend={exc.backend}")

        # --- AlreadyExists ---
        provider.write("existing.txt", b"data").unwrap()
        try:
            provider.write("existing.txt", b"new data", WriteOptions(overwrite=False)).unwrap()
        except AlreadyExists as exc:
            print(f"\nAlreadyExists: {exc}")

        # --- InvalidPath (path traversal attempt) ---
        try:
            provider.read("../../etc/passwd").unwrap()
        except InvalidPath as exc:
            print(f"\nInvalidPath: {exc}")

        # --- Catch anything with the base class ---
        for path in ["missing.txt", "../../escape"]:
            try:
                provider.read(path).unwrap()
            except RemoteOpsError as exc:
                print(f"\nRemoteOpsError ({type(exc).__name__}): {exc}")

        # --- Unsupported operation ---
        unsupported = provider.set_metadata("existing.txt", {"owner": "me"})
        user_error = to_user_error(unsupported)
        if user_error is not None:
            print(f"\n{user_error.title}: {user_error.message} (unsupported={user_error.is_unsupported})")

        # --- delete with missing_ok ---
        results = [
            provider.delete("nonexistent.txt", DeleteOptions(missing_ok=True)),
            provider.delete("nonexistent.txt"),
            provider.read("existing.txt"),
        ]
        print(f"\nSummary: {summarize_results(results)}")

    print("\nDone!")
