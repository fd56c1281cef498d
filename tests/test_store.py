"""Tests for the Retry State Store."""

import pytest

from groupthink.models.retry import RetryEntry
from groupthink.state.store import RetryStateStore


class TestRetryStateStore:
    def setup_method(self):
        self.store = RetryStateStore(db_path=":memory:")

    def teardown_method(self):
        self.store.close()

    def test_start_chain(self):
        entry = self.store.start_chain("grp_1", 1000)
        assert isinstance(entry, RetryEntry)
        assert entry.attempt_count == 0
        assert entry.last_trigger == 1000
        assert self.store.get("grp_1") == entry

    def test_start_chain_overwrites_and_resets(self):
        first = self.store.start_chain("grp_1", 1000)
        self.store.increment("grp_1")
        self.store.increment("grp_1")

        second = self.store.start_chain("grp_1", 2000)
        assert second.attempt_count == 0
        assert second.generation > first.generation
        assert self.store.count() == 1

    def test_increment(self):
        self.store.start_chain("grp_1", 1000)
        assert self.store.increment("grp_1").attempt_count == 1
        assert self.store.increment("grp_1").attempt_count == 2

    def test_increment_missing_entry(self):
        assert self.store.increment("missing") is None
        assert self.store.count() == 0

    def test_clear(self):
        self.store.start_chain("grp_1", 1000)
        assert self.store.clear("grp_1") is True
        assert self.store.get("grp_1") is None
        assert self.store.clear("grp_1") is False

    def test_generation_survives_clear(self):
        first = self.store.start_chain("grp_1", 1000)
        self.store.clear("grp_1")
        second = self.store.start_chain("grp_1", 1000)
        assert second.generation == first.generation + 1

    def test_generations_are_per_device(self):
        a = self.store.start_chain("grp_a", 1000)
        b = self.store.start_chain("grp_b", 1000)
        assert a.generation == 1
        assert b.generation == 1

    def test_all_ordered_by_trigger(self):
        self.store.start_chain("grp_late", 3000)
        self.store.start_chain("grp_early", 1000)
        assert [e.device_id for e in self.store.all()] == ["grp_early", "grp_late"]


def test_entries_persist_in_file_database(tmp_path):
    db_path = str(tmp_path / "retries.db")
    store = RetryStateStore(db_path=db_path)
    first = store.start_chain("grp_1", 1000)
    store.increment("grp_1")
    store.close()

    reopened = RetryStateStore(db_path=db_path)
    entry = reopened.get("grp_1")
    assert entry.attempt_count == 1
    assert reopened.start_chain("grp_1", 2000).generation == first.generation + 1
    reopened.close()
