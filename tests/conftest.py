# tests/conftest.py

"""Shared pytest fixtures for all aggregator tests."""

from collections.abc import Generator
from unittest.mock import patch

import pytest

from src.config.settings import Settings


@pytest.fixture(autouse=True)
def no_retry_delay() -> Generator[None, None, None]:
    """Zero the retry back-off so adapter retry loops run instantly."""
    with patch.object(Settings, "RETRY_DELAY", 0):
        yield


@pytest.fixture(autouse=True)
def isolated_data_dir(
    tmp_path_factory: pytest.TempPathFactory,
) -> Generator[None, None, None]:
    """Keep JSON stores written during tests out of the real data/ dir."""
    with patch.object(
        Settings, "DATA_DIR", tmp_path_factory.mktemp("data")
    ):
        yield
