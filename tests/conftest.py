"""Shared test fixtures and marker registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from remote_ops.providers._local import LocalProvider

if TYPE_CHECKING:
    from pathlib import Path


def pytest_configure(config: object) -> None:
    """Register custom markers."""
    if isinstance(config, pytest.Config):
        config.addinivalue_line("markers", "integration: requires external services")


@pytest.fixture()
def local(tmp_path: Path) -> LocalProvider:
    """A local provider rooted at a fresh temp directory."""
    return LocalProvider(str(tmp_path / "root"))
