"""Unit tests for LRU eviction policy."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from osscache.cache.eviction import EvictionPolicy
from osscache.cache.index import CacheIndex
from osscache.cache.models import CacheState
from osscache.cache.paths import CacheDirectory

MB = 1024 * 1024
HOUR = 3600


def populate(index: CacheIndex, directory: CacheDirectory, items) -> None:
    """Insert (key, size, time) items and create placeholder files."""
    for key, size, now in items:
        directory.resolve_path(key).write_bytes(b"x")
        index.record_insert(key, size, now)


class TestEvictionPolicyValidation:
    """Test constructor validation."""

    def test_rejects_non_positive_size(self) -> None:
        with pytest.raises(ValueError, match="max_size_bytes"):
            EvictionPolicy(max_size_bytes=0, cleanup_interval_seconds=HOUR)

    def test_rejects_bad_target_ratio(self) -> None:
        with pytest.raises(ValueError, match="target_ratio"):
            EvictionPolicy(max_size_bytes=MB, cleanup_interval_seconds=HOUR, target_ratio=1.5)

    def test_target_is_eighty_percent_by_default(self) -> None:
        policy = EvictionPolicy(max_size_bytes=10 * MB, cleanup_interval_seconds=HOUR)

        assert policy.target_size_bytes == 8 * MB


class TestShouldRun:
    """Test the eviction trigger condition."""

    def test_runs_when_over_limit(self) -> None:
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        state = CacheState(total_size_bytes=11, entry_count=1, last_cleanup_at=100.0)

        assert policy.should_run(state, now=101.0) is True

    def test_runs_when_interval_elapsed(self) -> None:
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        state = CacheState(total_size_bytes=1, entry_count=1, last_cleanup_at=100.0)

        assert policy.should_run(state, now=100.0 + HOUR + 1) is True

    def test_idle_when_under_limit_and_recent(self) -> None:
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        state = CacheState(total_size_bytes=10, entry_count=1, last_cleanup_at=100.0)

        assert policy.should_run(state, now=100.0 + HOUR) is False


class TestEvictionRun:
    """Test eviction ordering and bounds."""

    def test_scenario_evicts_oldest_until_under_target(self, tmp_path) -> None:
        """
        Max 10MB: A(6MB), B(3MB), C(4MB) inserted in that order.
        Total 13MB > 10MB, evicting A leaves 7MB <= 8MB, so B and C stay.
        """
        index = CacheIndex()
        directory = CacheDirectory(tmp_path)
        policy = EvictionPolicy(max_size_bytes=10 * MB, cleanup_interval_seconds=HOUR)
        populate(index, directory, [("A", 6 * MB, 1.0), ("B", 3 * MB, 2.0), ("C", 4 * MB, 3.0)])

        assert policy.should_run(index.state, now=3.0)
        evicted = policy.run(index, directory, now=3.0)

        assert [e.key for e in evicted] == ["A"]
        assert sorted(index.keys()) == ["B", "C"]
        assert index.state.total_size_bytes == 7 * MB
        assert not directory.resolve_path("A").exists()
        assert directory.resolve_path("B").exists()

    def test_eviction_follows_last_access_not_insert_order(self, tmp_path) -> None:
        """Test that a recently read entry survives over newer but idle ones."""
        index = CacheIndex()
        directory = CacheDirectory(tmp_path)
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        populate(index, directory, [("a", 4, 1.0), ("b", 4, 2.0), ("c", 4, 3.0)])
        index.record_access("a", now=10.0)

        evicted = policy.run(index, directory, now=10.0)

        assert [e.key for e in evicted] == ["b", "c"]
        assert list(index.keys()) == ["a"]

    def test_never_leaves_total_above_max(self, tmp_path) -> None:
        """Test the size bound after a cleanup cycle with many entries."""
        index = CacheIndex()
        directory = CacheDirectory(tmp_path)
        policy = EvictionPolicy(max_size_bytes=100, cleanup_interval_seconds=HOUR)
        populate(index, directory, [(f"k{i}", 7 + i % 5, float(i)) for i in range(50)])

        evicted = policy.run(index, directory, now=100.0)

        assert index.state.total_size_bytes <= 80
        accessed = [e.last_accessed_at for e in evicted]
        assert accessed == sorted(accessed)
        assert all(e.last_accessed_at <= min(r.last_accessed_at for r in index.entries_by_recency()) for e in evicted)

    def test_oversized_single_entry_is_evicted(self, tmp_path) -> None:
        """Test eviction empties the index when one entry exceeds the limit."""
        index = CacheIndex()
        directory = CacheDirectory(tmp_path)
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        populate(index, directory, [("huge", 50, 1.0)])

        policy.run(index, directory, now=2.0)

        assert len(index) == 0
        assert index.state.total_size_bytes == 0

    def test_updates_last_cleanup_even_without_evictions(self, tmp_path) -> None:
        index = CacheIndex()
        directory = CacheDirectory(tmp_path)
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        populate(index, directory, [("a", 1, 1.0)])

        assert policy.run(index, directory, now=500.0) == []
        assert index.state.last_cleanup_at == 500.0
        assert "a" in index

    def test_delete_failure_still_drops_entry(self, tmp_path) -> None:
        """Test that an unremovable file does not stay in the index."""
        index = CacheIndex()
        directory = CacheDirectory(tmp_path)
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        populate(index, directory, [("a", 8, 1.0), ("b", 8, 2.0)])

        with patch.object(CacheDirectory, "remove", return_value=False):
            evicted = policy.run(index, directory, now=3.0)

        assert [e.key for e in evicted] == ["a"]
        assert "a" not in index
        assert index.state.total_size_bytes == 8
        assert index.state.last_cleanup_at == 3.0


class TestSelectAndCommit:
    """Test the two-step eviction used when deletes run off the event loop."""

    def test_select_victims_does_not_touch_index(self, tmp_path) -> None:
        index = CacheIndex()
        directory = CacheDirectory(tmp_path)
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        populate(index, directory, [("a", 6, 1.0), ("b", 6, 2.0)])

        victims = policy.select_victims(index)

        assert [e.key for e in victims] == ["a"]
        assert len(index) == 2
        assert index.state.total_size_bytes == 12

    def test_commit_skips_entry_replaced_during_delete(self, tmp_path) -> None:
        """Test that a re-populated key is not unindexed by a stale eviction."""
        index = CacheIndex()
        directory = CacheDirectory(tmp_path)
        policy = EvictionPolicy(max_size_bytes=10, cleanup_interval_seconds=HOUR)
        populate(index, directory, [("a", 6, 1.0), ("b", 6, 2.0)])

        victims = policy.select_victims(index)
        index.record_insert("a", 3, 5.0)
        evicted = policy.commit(index, victims, [True], now=6.0)

        assert evicted == []
        assert "a" in index
        assert index.state.total_size_bytes == 9
        assert index.state.last_cleanup_at == 6.0
