"""CLI test fixtures."""

from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def keep_test_logging():
    """Stop CLI commands from re-pointing loguru at CliRunner's streams."""
    with patch("journal_mirror.utils.logging.init_logger") as mock_init:
        yield mock_init


@pytest.fixture
def cli_config(write_config, inventory_file):
    return write_config(inventory={"path": str(inventory_file)})
