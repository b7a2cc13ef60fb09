"""Plan and execute: diff two listings and apply the changes.

Demonstrates:
- Snapshotting a directory as entries with stable ids
- Editing the snapshot (rename, duplicate, delete, create)
- detect_changes() and build_operation_plan()
- Running the plan with OperationExecutor and watching progress
"""

from __future__ import annotations

import tempfile

from remote_ops import (
    Entry,
    ExecutionProgress,
    ListOptions,
    OperationExecutor,
    build_operation_plan,
    detect_changes,
)
from remote_ops.providers import LocalProvider


def show_progress(progress: ExecutionProgress) -> None:
    print(f"[{progress.overall_progress:3}%] {progress.description}")


if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        provider = LocalProvider(tmp)
        for name in ("draft.txt", "notes.txt", "old.log"):
            provider.write(name, f"contents of {name}".encode()).unwrap()

        original = list(provider.list("", ListOptions(recursive=True)).unwrap().entries)
        by_path = {e.path: e for e in original}

        # The user renames, duplicates, deletes and adds entries
        edited = [
            by_path["draft.txt"].with_path("final.txt"),
            by_path["notes.txt"],
            Entry.from_path("notes.txt"),
            Entry.from_path("archive/"),
        ]

        changes = detect_changes(original, edited)
        plan = build_operation_plan(changes, taken_paths=by_path.keys())
        print(f"Plan: {plan.summary}")
        for problem in plan.validate():
            print(f"Conflict: {problem}")

        result = OperationExecutor(provider).execute(plan, on_progress=show_progress)
        print(f"{result.success_count} succeeded, {result.failure_count} failed")

        after = provider.list("", ListOptions(recursive=True)).unwrap()
        print("Now:", [e.path for e in after.entries])
