"""Test concurrent writers against a shared channel.

Writers share nothing but the channel: each has its own CatalogStore, the
way separate processes on separate machines would.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from tgstore.catalog import CatalogStore
from tgstore.constants import CATALOG_NAME
from tgstore.store import ChannelObjectStore
from tgstore.transport import MemoryChannel


def _writer(channel: MemoryChannel, retries: int = 20) -> ChannelObjectStore:
    return ChannelObjectStore(
        channel,
        CatalogStore(channel, lookback_window=1000, max_conflict_retries=retries),
    )


class ReorderingChannel(MemoryChannel):
    """Channel that parks catalog uploads until every writer has read its base.

    Forces the worst case: all writers resolve the same catalog version, then
    all publish.
    """

    def __init__(self, writers: int):
        super().__init__()
        self._barrier = threading.Barrier(writers)
        self._first_round = threading.local()

    def upload_blob(self, name, data, ctx=None):
        if name == CATALOG_NAME and not getattr(self._first_round, "done", False):
            self._first_round.done = True
            self._barrier.wait(timeout=10)
        return super().upload_blob(name, data, ctx)


class TestConcurrentPuts:
    """Test that no confirmed put is lost under contention."""

    @pytest.mark.parametrize("writers", [2, 8])
    def test_all_puts_listed(self, writers):
        channel = MemoryChannel()
        names = [f"obj-{i}.bin" for i in range(writers)]

        with ThreadPoolExecutor(max_workers=writers) as pool:
            futures = [pool.submit(_writer(channel).put, name, b"data") for name in names]
            handles = [f.result(timeout=30) for f in futures]

        listed = [r.name for r in _writer(channel).list("")]
        assert sorted(listed) == sorted(names)
        assert len(listed) == writers
        assert {h.name for h in handles} == set(names)

    def test_simultaneous_base_version(self):
        """Writers that all read the same base still all end up listed."""
        writers = 4
        channel = ReorderingChannel(writers)
        names = [f"file-{i}" for i in range(writers)]

        with ThreadPoolExecutor(max_workers=writers) as pool:
            futures = [pool.submit(_writer(channel).put, name, b"x") for name in names]
            for f in futures:
                f.result(timeout=30)

        listed = [r.name for r in _writer(channel).list("")]
        assert sorted(listed) == sorted(names)

    def test_existing_entries_survive(self):
        """Entries confirmed before a burst of writers are never dropped."""
        channel = MemoryChannel()
        seed = _writer(channel)
        seed.put("first", b"1")
        seed.put("second", b"2")

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(_writer(channel).put, f"burst-{i}", b"x") for i in range(4)]
            for f in futures:
                f.result(timeout=30)

        listed = [r.name for r in _writer(channel).list("")]
        assert listed[:2] == ["first", "second"]
        assert len(listed) == 6

    def test_confirmed_version_contains_entry(self):
        """The catalog version a put reports already lists that put."""
        channel = MemoryChannel()

        with ThreadPoolExecutor(max_workers=3) as pool:
            futures = [pool.submit(_writer(channel).put, f"n{i}", b"x") for i in range(3)]
            handles = [f.result(timeout=30) for f in futures]

        for handle in handles:
            data = channel.download_blob(handle.catalog_version.ref)
            assert handle.name.encode() in data

    def test_same_name_from_every_writer(self):
        """Concurrent puts of one name each leave their own record."""
        writers = 4
        channel = ReorderingChannel(writers)

        with ThreadPoolExecutor(max_workers=writers) as pool:
            futures = [pool.submit(_writer(channel).put, "report.csv", b"x") for _ in range(writers)]
            for f in futures:
                f.result(timeout=30)

        assert [r.name for r in _writer(channel).list("")] == ["report.csv"] * writers
