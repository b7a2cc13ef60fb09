"""Tests for generic and accelerated move/copy strategies."""

from __future__ import annotations

import pytest

from remote_ops._cancellation import CancellationTokenSource
from remote_ops._capabilities import Capability
from remote_ops._errors import AlreadyExists, Cancelled, InvalidPath
from remote_ops._models import Entry, ListPage
from remote_ops._result import OperationResult, OperationStatus, success
from remote_ops._strategy import GenericTransferStrategy, select_transfer_strategy
from remote_ops._types import ListOptions, TransferOptions
from tests.memory_provider import BASIC_CAPABILITIES, MemoryProvider, RecordingNativeTransfer


@pytest.fixture()
def provider() -> MemoryProvider:
    return MemoryProvider(
        {
            "docs/a.txt": b"alpha",
            "docs/sub/b.txt": b"beta",
            "other.txt": b"other",
        }
    )


def generic(provider: MemoryProvider) -> GenericTransferStrategy:
    return provider._generic_transfer


class TestGenericCopy:
    def test_single_file(self, provider: MemoryProvider) -> None:
        generic(provider).copy("other.txt", "copy.txt", TransferOptions())
        assert provider.files["copy.txt"] == b"other"
        assert provider.files["other.txt"] == b"other"
        assert provider.calls == [("read", "other.txt"), ("write", "copy.txt")]

    def test_recursive(self, provider: MemoryProvider) -> None:
        generic(provider).copy("docs/", "backup/", TransferOptions())
        assert provider.files["backup/a.txt"] == b"alpha"
        assert provider.files["backup/sub/b.txt"] == b"beta"
        assert "docs/a.txt" in provider.files

    def test_recursive_flag_without_trailing_slash(self, provider: MemoryProvider) -> None:
        generic(provider).copy("docs", "backup", TransferOptions(recursive=True))
        assert "backup/sub/b.txt" in provider.files

    def test_empty_directories_are_not_recreated(self, provider: MemoryProvider) -> None:
        provider.dirs.add("docs/empty/")
        generic(provider).copy("docs/", "backup/", TransferOptions())
        assert "backup/empty/" not in provider.dirs

    def test_no_overwrite_raises(self, provider: MemoryProvider) -> None:
        with pytest.raises(AlreadyExists):
            generic(provider).copy("other.txt", "docs/a.txt", TransferOptions(overwrite=False))
        assert provider.files["docs/a.txt"] == b"alpha"

    def test_progress_per_file(self, provider: MemoryProvider) -> None:
        events: list[int] = []
        options = TransferOptions(on_progress=lambda e: events.append(e.percentage))
        generic(provider).copy("docs/", "backup/", options)
        assert events == [50, 100]

    def test_cancelled_before_first_file(self, provider: MemoryProvider) -> None:
        options = TransferOptions(token=CancellationTokenSource.cancelled().token)
        with pytest.raises(Cancelled):
            generic(provider).copy("docs/", "backup/", options)
        assert not any(key.startswith("backup/") for key in provider.files)


class TestGenericMove:
    def test_single_file(self, provider: MemoryProvider) -> None:
        generic(provider).move("other.txt", "moved.txt", TransferOptions())
        assert provider.files["moved.txt"] == b"other"
        assert "other.txt" not in provider.files
        assert provider.calls == [("read", "other.txt"), ("write", "moved.txt"), ("delete", "other.txt")]

    def test_recursive_removes_source_tree(self, provider: MemoryProvider) -> None:
        provider.dirs.add("docs/")
        generic(provider).move("docs/", "archive/", TransferOptions())
        assert provider.files["archive/a.txt"] == b"alpha"
        assert provider.files["archive/sub/b.txt"] == b"beta"
        assert not any(key.startswith("docs/") for key in provider.files)
        assert "docs/" not in provider.dirs
        assert provider.calls[-1] == ("delete", "docs/")


class TestDestinationGuard:
    @pytest.mark.parametrize("dst", ["docs/sub/", "docs/", "docs/new/deeper/"])
    def test_move_into_own_subtree_rejected(self, provider: MemoryProvider, dst: str) -> None:
        with pytest.raises(InvalidPath) as excinfo:
            generic(provider).move("docs/", dst, TransferOptions())
        assert excinfo.value.code == "INVALID_DESTINATION"
        assert provider.files["docs/a.txt"] == b"alpha"
        assert provider.calls == []

    def test_copy_into_own_subtree_rejected(self, provider: MemoryProvider) -> None:
        with pytest.raises(InvalidPath):
            generic(provider).copy("docs", "docs/copy", TransferOptions(recursive=True))
        assert sorted(provider.files) == ["docs/a.txt", "docs/sub/b.txt", "other.txt"]

    def test_file_onto_itself_rejected(self, provider: MemoryProvider) -> None:
        with pytest.raises(InvalidPath):
            generic(provider).move("other.txt", "./other.txt", TransferOptions())
        assert provider.files["other.txt"] == b"other"

    def test_sibling_with_shared_prefix_allowed(self, provider: MemoryProvider) -> None:
        generic(provider).copy("docs/", "docs2/", TransferOptions())
        assert provider.files["docs2/a.txt"] == b"alpha"

    def test_provider_reports_error_result(self) -> None:
        provider = MemoryProvider({"d/x.txt": b"x"})
        result = provider.move("d/", "d/sub/")
        assert result.status is OperationStatus.ERROR
        assert result.error is not None
        assert result.error.code == "INVALID_DESTINATION"
        assert provider.files == {"d/x.txt": b"x"}

    def test_native_strategy_is_guarded_too(self) -> None:
        provider = MemoryProvider(
            {"d/x.txt": b"x"},
            capabilities=BASIC_CAPABILITIES.union(Capability.SERVER_SIDE_COPY),
            accelerated_transfer=RecordingNativeTransfer(),
        )
        assert not provider.copy("d/", "d/inner/").is_success
        native = provider.transfer_strategy
        assert isinstance(native, RecordingNativeTransfer)
        assert native.calls == []

class TestDescendantFiles:
    def test_follows_pages(self) -> None:
        pages = {
            None: ListPage((Entry.from_path("d/a"), Entry.from_path("d/s/")), True, "2"),
            "2": ListPage((Entry.from_path("d/s/b"),), False, None),
        }
        seen: list[str | None] = []

        def list_fn(path: str, options: ListOptions) -> OperationResult[ListPage]:
            assert options.recursive
            seen.append(options.continuation_token)
            return success(pages[options.continuation_token])

        strategy = GenericTransferStrategy(
            read=lambda p: success(b""),
            write=lambda p, d, o: success(),
            delete=lambda p, o: success(),
            list=list_fn,
        )
        assert strategy.descendant_files("d/") == ["d/a", "d/s/b"]
        assert seen == [None, "2"]


class TestSelection:
    def test_no_accelerated_strategy(self, provider: MemoryProvider) -> None:
        assert select_transfer_strategy(BASIC_CAPABILITIES, generic(provider)) is generic(provider)

    def test_accelerated_needs_its_capability(self, provider: MemoryProvider) -> None:
        native = RecordingNativeTransfer()
        assert select_transfer_strategy(BASIC_CAPABILITIES, generic(provider), native) is generic(provider)
        caps = BASIC_CAPABILITIES.union(Capability.SERVER_SIDE_COPY)
        assert select_transfer_strategy(caps, generic(provider), native) is native

    def test_provider_uses_native_copy_when_declared(self) -> None:
        native = RecordingNativeTransfer()
        provider = MemoryProvider(
            {"a.txt": b"a"},
            capabilities=BASIC_CAPABILITIES.union(Capability.SERVER_SIDE_COPY),
            accelerated_transfer=native,
        )
        native.provider = provider
        assert provider.copy("a.txt", "b.txt").is_success
        assert native.calls == [("copy", "a.txt", "b.txt")]
        assert ("read", "a.txt") not in provider.calls
        assert provider.files["b.txt"] == b"a"

    def test_provider_falls_back_without_capability(self) -> None:
        native = RecordingNativeTransfer()
        provider = MemoryProvider({"a.txt": b"a"}, accelerated_transfer=native)
        assert provider.move("a.txt", "b.txt").is_success
        assert native.calls == []
        assert ("read", "a.txt") in provider.calls
        assert provider.files == {"b.txt": b"a"}

    def test_generic_and_native_agree(self) -> None:
        files = {"d/a": b"1", "d/e/f": b"2", "z": b"3"}
        plain = MemoryProvider(files)
        native = RecordingNativeTransfer()
        fast = MemoryProvider(
            files,
            capabilities=BASIC_CAPABILITIES.union(Capability.SERVER_SIDE_COPY),
            accelerated_transfer=native,
        )
        native.provider = fast
        for p in (plain, fast):
            assert p.move("d/", "m/").is_success
        assert plain.files == fast.files


class TestProviderTransferResults:
    def test_missing_source_is_not_found(self, provider: MemoryProvider) -> None:
        result = provider.copy("missing.txt", "x.txt")
        assert result.status is OperationStatus.NOT_FOUND

    def test_move_without_delete_is_unimplemented(self) -> None:
        provider = MemoryProvider({"a": b"a"}, capabilities=BASIC_CAPABILITIES.without(Capability.DELETE))
        assert provider.move("a", "b").status is OperationStatus.UNIMPLEMENTED
        assert provider.copy("a", "b").is_success

    def test_recursive_copy_without_list_is_unimplemented(self) -> None:
        provider = MemoryProvider({"d/a": b"a"}, capabilities=BASIC_CAPABILITIES.without(Capability.LIST))
        assert provider.copy("d/", "e/").status is OperationStatus.UNIMPLEMENTED
