"""
Shared pytest fixtures and configuration for all tests.
"""

import tempfile
from pathlib import Path

import pytest
import toml

from tests.fixtures.fakes import FakeFleet, FakeRemoteHost

# Environment variables that override configuration values
CONFIG_ENV_VARS = [
    "SSH_USER",
    "SSH_PORT",
    "SSH_KEY",
    "BASTION_HOST",
    "BASTION_PORT",
    "BASTION_USER",
    "BASTION_SSH_KEY",
    "LOCAL_JOURNAL_DIR",
    "REMOTE_CURSOR_FILE",
    "MAX_CONCURRENT_ATTEMPTS",
    "INVENTORY_FILE",
    "LABEL_SELECTOR",
]


@pytest.fixture(autouse=True)
def clean_config_environment(monkeypatch):
    """Keep the developer's environment out of configuration tests."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


INVENTORY = """\
[[hosts]]
namespace = "prod"
name = "web-1"
address = "10.0.0.5"
labels = { role = "web" }

[[hosts]]
namespace = "prod"
name = "db-1"
address = "10.0.0.6"
port = 2222
labels = { role = "db" }
"""


# --- Filesystem Fixtures ---


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def journal_dir(temp_dir):
    path = temp_dir / "journals"
    path.mkdir()
    return path


@pytest.fixture
def key_file(temp_dir):
    """A placeholder private key file; never used for real authentication."""
    path = temp_dir / "id_test"
    path.write_text("not a real key\n")
    return path


@pytest.fixture
def inventory_file(temp_dir):
    path = temp_dir / "inventory.toml"
    path.write_text(INVENTORY)
    return path


@pytest.fixture
def write_config(temp_dir, key_file, journal_dir):
    """Factory writing a valid configuration file, with section overrides."""

    def _write(**sections):
        data = {
            "ssh": {"user": "monitor", "private_key": str(key_file), "keepalive_interval": 0},
            "journal": {"local_directory": str(journal_dir)},
        }
        for section, values in sections.items():
            data.setdefault(section, {}).update(values)
        path = temp_dir / "config.toml"
        path.write_text(toml.dumps(data))
        return path

    return _write


@pytest.fixture
def config_file(write_config):
    return write_config()


# --- Remote Host Fixtures ---


@pytest.fixture
def fake_host():
    """A remote host whose journal holds two entries and no cursor file."""
    return FakeRemoteHost(entries=[b"A\n", b"B\n"])


@pytest.fixture
def fake_fleet():
    return FakeFleet(
        {
            "10.0.0.5": FakeRemoteHost(entries=[b"web A\n", b"web B\n"]),
            "10.0.0.6": FakeRemoteHost(entries=[b"db A\n"]),
        }
    )
