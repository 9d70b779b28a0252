"""Test catalog resolution and conflict-checked publishing."""

import logging
from unittest.mock import patch

import pytest

from tgstore.catalog import CatalogStore
from tgstore.constants import CATALOG_NAME
from tgstore.errors import (
    CatalogWindowExhaustedError,
    ConflictError,
    CorruptCatalogError,
    NotFoundError,
)
from tgstore.storage_models import Catalog, same_message
from tgstore.transport import MemoryChannel


class InterleavingChannel(MemoryChannel):
    """Channel where a rival writer publishes right before each of our catalog uploads."""

    def __init__(self, rivals: int, rival_name: str = None):
        super().__init__()
        self.rivals = rivals
        self.rival_name = rival_name
        self._injecting = False

    def upload_blob(self, name, data, ctx=None):
        if name == CATALOG_NAME and self.rivals > 0 and not self._injecting:
            self._injecting = True
            try:
                self.rivals -= 1
                CatalogStore(self).append(self.rival_name or f"rival-{self.rivals}")
            finally:
                self._injecting = False
        return super().upload_blob(name, data, ctx)


def _raw(names):
    return Catalog.from_names(names).encode()


class TestLoadLatest:
    """Test resolving the latest catalog from channel history."""

    def test_empty_channel(self, catalog_store):
        """No catalog at all is a valid, empty state."""
        snapshot = catalog_store.load_latest()
        assert snapshot.catalog.names == []
        assert snapshot.version is None
        assert snapshot.is_empty
        assert not snapshot.window_exhausted

    def test_only_objects_no_catalog(self, channel, catalog_store):
        """Object documents alone do not make a catalog."""
        channel.upload_blob("a.txt", b"a")
        channel.upload_blob("b.txt", b"b")
        assert catalog_store.load_latest().version is None

    def test_picks_most_recent_catalog(self, channel, catalog_store, publish_raw):
        """The newest catalog message is the latest version."""
        publish_raw(_raw(["a"]))
        channel.upload_blob("b", b"b")
        newest = publish_raw(_raw(["a", "b"]))

        snapshot = catalog_store.load_latest()
        assert snapshot.catalog.names == ["a", "b"]
        assert same_message(snapshot.version, newest)

    def test_newest_catalog_wins(self, catalog_store, publish_raw):
        """Readers take the most recent catalog message, whatever it holds."""
        publish_raw(_raw(["a"]))
        publish_raw(_raw(["a", "b"]))
        newest = publish_raw(_raw(["a", "c"]))

        snapshot = catalog_store.load_latest()
        assert snapshot.catalog.names == ["a", "c"]
        assert same_message(snapshot.version, newest)

    def test_unconfirmed_catalog_at_window_start(self, channel, publish_raw):
        """A losing catalog left at the window start does not hide newer ones."""
        publish_raw(_raw(["a"]))
        publish_raw(_raw(["a", "b"]))
        publish_raw(_raw(["a", "c"]))
        newest = publish_raw(_raw(["a", "b", "d"]))

        store = CatalogStore(channel, lookback_window=2)
        snapshot = store.load_latest()
        assert snapshot.catalog.names == ["a", "b", "d"]
        assert same_message(snapshot.version, newest)
        assert same_message(store.head().version, newest)

        store.append("e")
        assert store.load_latest().catalog.names == ["a", "b", "d", "e"]

    def test_only_newest_catalog_is_downloaded(self, channel, catalog_store, publish_raw):
        publish_raw(_raw(["a"]))
        publish_raw(_raw(["a", "b"]))
        newest = publish_raw(_raw(["a", "b", "c"]))

        with patch.object(channel, "download_blob", wraps=channel.download_blob) as download:
            catalog_store.load_latest()
        assert [c.args[0] for c in download.call_args_list] == [newest.ref]

    def test_expired_superseded_catalog_is_ignored(self, channel, catalog_store, publish_raw):
        old = publish_raw(_raw(["a"]))
        publish_raw(_raw(["a", "b"]))
        channel.expire(old.ref)

        assert catalog_store.load_latest().catalog.names == ["a", "b"]
        catalog_store.append("c")
        assert catalog_store.load_latest().catalog.names == ["a", "b", "c"]

    def test_corrupt_superseded_catalog_is_ignored(self, catalog_store, publish_raw):
        publish_raw(b"{old format")
        publish_raw(_raw(["a"]))

        assert catalog_store.load_latest().catalog.names == ["a"]
        catalog_store.append("b")
        assert catalog_store.load_latest().catalog.names == ["a", "b"]

    def test_corrupt_catalog_raises(self, catalog_store, publish_raw):
        """Undecodable catalog is an error, never an empty listing."""
        publish_raw(_raw(["a"]))
        publish_raw(b"{not json")

        with pytest.raises(CorruptCatalogError) as exc:
            catalog_store.load_latest()
        assert "corrupt" in str(exc.value)

    def test_wrong_shape_is_corrupt(self, catalog_store, publish_raw):
        publish_raw(b'{"files": ["a"]}')
        with pytest.raises(CorruptCatalogError):
            catalog_store.load_latest()

    def test_expired_catalog_blob(self, channel, catalog_store, publish_raw):
        """A catalog that cannot be downloaded fails the call."""
        descriptor = publish_raw(_raw(["a"]))
        channel.expire(descriptor.ref)
        with pytest.raises(NotFoundError):
            catalog_store.load_latest()

    def test_window_exhausted_raises_by_default(self, channel, publish_raw):
        """A full window with no catalog is not conflated with an empty channel."""
        publish_raw(_raw(["old"]))
        for i in range(3):
            channel.upload_blob(f"file{i}", b"x")

        store = CatalogStore(channel, lookback_window=3)
        with pytest.raises(CatalogWindowExhaustedError) as exc:
            store.load_latest()
        assert exc.value.window == 3

    def test_window_exhausted_warns_when_configured(self, channel, caplog):
        for i in range(3):
            channel.upload_blob(f"file{i}", b"x")

        store = CatalogStore(channel, lookback_window=3, on_window_exhausted="warn")
        with caplog.at_level(logging.WARNING, logger="tgstore.catalog"):
            snapshot = store.load_latest()

        assert snapshot.version is None
        assert snapshot.window_exhausted
        assert "lookback window" in caplog.text

    def test_partial_window_is_plain_empty(self, channel):
        """Fewer messages than the window means the channel really has no catalog."""
        channel.upload_blob("file", b"x")
        snapshot = CatalogStore(channel, lookback_window=3).load_latest()
        assert snapshot.version is None
        assert not snapshot.window_exhausted

    def test_catalog_inside_window_found(self, channel, publish_raw):
        publish_raw(_raw(["a"]))
        channel.upload_blob("f1", b"x")
        channel.upload_blob("f2", b"x")
        snapshot = CatalogStore(channel, lookback_window=3).load_latest()
        assert snapshot.catalog.names == ["a"]

    def test_invalid_settings(self, channel):
        with pytest.raises(ValueError):
            CatalogStore(channel, lookback_window=0)
        with pytest.raises(ValueError):
            CatalogStore(channel, max_conflict_retries=0)


class TestPublish:
    """Test conflict-checked publishing."""

    def test_first_publish(self, catalog_store):
        version = catalog_store.publish(None, Catalog.from_names(["a"]))

        snapshot = catalog_store.load_latest()
        assert snapshot.catalog.names == ["a"]
        assert same_message(snapshot.version, version)

    def test_publish_on_current_version(self, catalog_store):
        v1 = catalog_store.publish(None, Catalog.from_names(["a"]))
        v2 = catalog_store.publish(v1, Catalog.from_names(["a", "b"]))

        assert not same_message(v1, v2)
        assert catalog_store.load_latest().catalog.names == ["a", "b"]

    def test_conflict_without_rebase(self, catalog_store):
        """A moved catalog is never blindly overwritten."""
        base = catalog_store.load_latest()
        catalog_store.append("other")

        with pytest.raises(ConflictError) as exc:
            catalog_store.publish(base.version, base.catalog.append("mine"))

        assert exc.value.attempts == 1
        assert exc.value.expected is None
        assert catalog_store.load_latest().catalog.names == ["other"]

    def test_conflict_rebases_delta(self, catalog_store):
        """Caller's change is re-applied on top of the newer catalog."""
        base = catalog_store.load_latest()
        catalog_store.append("other")

        catalog_store.publish(
            base.version,
            base.catalog.append("mine"),
            rebase=lambda c: c.append("mine"),
        )
        assert catalog_store.load_latest().catalog.names == ["other", "mine"]

    def test_writer_slipping_in_during_upload(self):
        """A rival that publishes between our check and our upload is detected."""
        channel = InterleavingChannel(rivals=1)
        store = CatalogStore(channel)

        version = store.append("mine")

        snapshot = store.load_latest()
        assert snapshot.catalog.names == ["rival-0", "mine"]
        assert same_message(snapshot.version, version)

    def test_several_rivals(self):
        channel = InterleavingChannel(rivals=2)
        store = CatalogStore(channel, max_conflict_retries=5)

        store.append("mine")
        assert store.load_latest().catalog.names == ["rival-1", "rival-0", "mine"]

    def test_conflict_retries_are_bounded(self):
        """Endless contention ends in ConflictError after max attempts."""
        channel = InterleavingChannel(rivals=100)
        store = CatalogStore(channel, max_conflict_retries=3)

        with pytest.raises(ConflictError) as exc:
            store.append("mine")

        assert exc.value.attempts == 3

        # The next writer builds on the confirmed chain, not on the failed attempt
        channel.rivals = 0
        CatalogStore(channel).append("later")
        assert store.load_latest().catalog.names == ["rival-99", "rival-98", "rival-97", "later"]

    def test_same_name_from_same_base_keeps_both(self):
        """Two writers appending one name concurrently produce two records."""
        channel = InterleavingChannel(rivals=1, rival_name="x")
        store = CatalogStore(channel)

        store.append("x")
        assert store.load_latest().catalog.names == ["x", "x"]

    def test_head_skips_catalog_from_stale_base(self, catalog_store, publish_raw):
        """Writers never build on a catalog that lost a race."""
        publish_raw(_raw(["a"]))
        winner = publish_raw(_raw(["a", "b"]))
        publish_raw(_raw(["a", "c"]))  # Built from ["a"], not yet re-published

        head = catalog_store.head()
        assert head.catalog.names == ["a", "b"]
        assert same_message(head.version, winner)

        catalog_store.append("d")
        assert catalog_store.load_latest().catalog.names == ["a", "b", "d"]

    def test_append_keeps_order(self, catalog_store):
        for name in ["a", "b", "c"]:
            catalog_store.append(name)
        assert catalog_store.load_latest().catalog.names == ["a", "b", "c"]

    def test_superseded_snapshots_stay_on_channel(self, channel, catalog_store):
        """The channel is append-only: every publish adds a new catalog message."""
        catalog_store.append("a")
        catalog_store.append("b")
        catalogs = [m for m in channel.messages if m.name == CATALOG_NAME]
        assert len(catalogs) == 2
