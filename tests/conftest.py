"""Shared test fixtures and utilities."""

import pytest

from tgstore.catalog import CatalogStore
from tgstore.store import ChannelObjectStore
from tgstore.transport import MemoryChannel


_ENV_VARS = (
    "TGSTORE_BOT_TOKEN",
    "TGSTORE_CHAT_ID",
    "TGSTORE_LOOKBACK_WINDOW",
    "RCLONE_TELEGRAM_BOT_TOKEN",
    "RCLONE_TELEGRAM_CHAT_ID",
    "DEBUG",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep real credentials and config files out of tests."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("TGSTORE_CONFIG", str(tmp_path / "no-config.yaml"))
    return tmp_path


@pytest.fixture
def channel():
    """Fresh in-memory channel."""
    return MemoryChannel()


@pytest.fixture
def catalog_store(channel):
    """Catalog store over the in-memory channel."""
    return CatalogStore(channel, lookback_window=50)


@pytest.fixture
def store(channel, catalog_store):
    """Object store over the in-memory channel."""
    return ChannelObjectStore(channel, catalog_store)


@pytest.fixture
def publish_raw(channel):
    """Factory fixture to drop a raw catalog payload onto the channel."""
    def _publish(payload: bytes, name: str = "filelist.json"):
        return channel.upload_blob(name, payload)
    return _publish
