"""Unit tests for the per-zoom caching decorator."""
from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from mapcluster.algo.distance_based import NonHierarchicalDistanceBasedAlgorithm
from mapcluster.algo.precaching import PreCachingAlgorithmDecorator
from mapcluster.errors import ClusteringCancelled


class CountingAlgorithm(NonHierarchicalDistanceBasedAlgorithm):
    """Distance algorithm that records every zoom it is asked for."""

    def __init__(self):
        super().__init__()
        self.zooms = []

    def get_clusters(self, zoom, cancel_event=None):
        self.zooms.append(zoom)
        return super().get_clusters(zoom, cancel_event=cancel_event)


@pytest.fixture
def counting():
    return CountingAlgorithm()


@pytest.fixture
def decorator(counting, make_item):
    counting.add_items([make_item(0.0, 0.0), make_item(0.0, 0.0001), make_item(10.0, 10.0)])
    cached = PreCachingAlgorithmDecorator(counting, max_entries=3, precache=False)
    yield cached
    cached.close()


# ==============================================================================
# Hits, misses and quantization
# ==============================================================================

@pytest.mark.unit
def test_second_request_is_a_hit(decorator, counting):
    first = decorator.get_clusters(10)
    second = decorator.get_clusters(10)

    assert first == second
    assert counting.zooms == [10]
    stats = decorator.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == pytest.approx(0.5)


@pytest.mark.unit
def test_fractional_zoom_shares_bucket(decorator, counting):
    decorator.get_clusters(10.2)
    decorator.get_clusters(10.9)

    assert counting.zooms == [10]
    assert decorator.is_cached(10.5)
    assert not decorator.is_cached(11.0)


@pytest.mark.unit
@pytest.mark.parametrize("zoom, bucket", [(0.0, 0), (0.99, 0), (3.5, 3), (-0.5, -1)])
def test_quantize_is_floor(zoom, bucket):
    assert PreCachingAlgorithmDecorator.quantize(zoom) == bucket


@pytest.mark.unit
def test_cached_result_matches_direct_computation(decorator, counting):
    cached = decorator.get_clusters(10.7)
    direct = counting.get_clusters(10)

    assert sorted(c.size for c in cached) == sorted(c.size for c in direct)


# ==============================================================================
# Invalidation
# ==============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("mutation", ["add_item", "add_items", "remove_item", "clear_items"])
def test_every_mutation_clears_cache(decorator, counting, make_item, mutation):
    decorator.get_clusters(10)
    decorator.get_clusters(12)
    existing = counting.get_items()[0]

    if mutation == "add_item":
        decorator.add_item(make_item(5.0, 5.0))
    elif mutation == "add_items":
        decorator.add_items([make_item(5.0, 5.0)])
    elif mutation == "remove_item":
        decorator.remove_item(existing)
    else:
        decorator.clear_items()

    assert decorator.get_cached_zooms() == []
    assert decorator.get_stats()["invalidations"] == 1


@pytest.mark.unit
def test_result_reflects_mutation(decorator, make_item):
    assert len(decorator.get_clusters(20)) == 3

    decorator.add_item(make_item(-30.0, 60.0))

    assert len(decorator.get_clusters(20)) == 4


@pytest.mark.unit
def test_invalidate_returns_removed_count(decorator):
    decorator.get_clusters(1)
    decorator.get_clusters(2)

    assert decorator.invalidate() == 2
    assert decorator.invalidate() == 0


@pytest.mark.unit
def test_get_items_forwards(decorator, counting):
    assert decorator.get_items() == counting.get_items()
    assert decorator.algorithm is counting


# ==============================================================================
# LRU bound
# ==============================================================================

@pytest.mark.unit
def test_least_recently_used_bucket_is_evicted(decorator):
    decorator.get_clusters(1)
    decorator.get_clusters(2)
    decorator.get_clusters(3)
    decorator.get_clusters(1)  # touch
    decorator.get_clusters(4)

    assert decorator.get_cached_zooms() == [3, 1, 4]
    stats = decorator.get_stats()
    assert stats["evictions"] == 1
    assert stats["entries"] == 3


@pytest.mark.unit
def test_invalid_construction():
    with pytest.raises(ValueError):
        PreCachingAlgorithmDecorator(None)
    with pytest.raises(ValueError):
        PreCachingAlgorithmDecorator(NonHierarchicalDistanceBasedAlgorithm(), max_entries=0)


# ==============================================================================
# Staleness and cancellation
# ==============================================================================

@pytest.mark.unit
def test_result_computed_before_invalidation_is_not_stored(make_item):
    started = threading.Event()
    proceed = threading.Event()

    class SlowAlgorithm(NonHierarchicalDistanceBasedAlgorithm):
        def get_clusters(self, zoom, cancel_event=None):
            result = super().get_clusters(zoom, cancel_event=cancel_event)
            started.set()
            proceed.wait(5)
            return result

    slow = SlowAlgorithm()
    slow.add_item(make_item(0.0, 0.0))
    decorator = PreCachingAlgorithmDecorator(slow, precache=False)
    results = []
    worker = threading.Thread(target=lambda: results.append(decorator.get_clusters(8)))
    worker.start()
    assert started.wait(5)

    decorator.add_item(make_item(20.0, 20.0))
    proceed.set()
    worker.join(5)

    # the caller still gets its (old) answer, but it is not cached
    assert len(results[0]) == 1
    assert not decorator.is_cached(8)
    assert decorator.get_stats()["stale_drops"] == 1
    assert len(decorator.get_clusters(8)) == 2


@pytest.mark.unit
def test_cancelled_computation_stores_nothing(decorator):
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(ClusteringCancelled):
        decorator.get_clusters(10, cancel_event=cancel_event)

    assert decorator.get_cached_zooms() == []


# ==============================================================================
# Precaching
# ==============================================================================

@pytest.mark.integration
def test_precache_fills_neighbouring_buckets(counting, make_item):
    counting.add_items([make_item(0.0, 0.0), make_item(1.0, 1.0)])
    decorator = PreCachingAlgorithmDecorator(counting, precache=True, precache_delay=0.0)
    try:
        decorator.get_clusters(7.5)
        assert decorator.wait_for_precache(timeout=5)

        assert set(decorator.get_cached_zooms()) == {6, 7, 8}
        assert decorator.get_stats()["precomputed"] == 2

        decorator.get_clusters(8)
        assert decorator.get_stats()["hits"] == 1
    finally:
        decorator.wait_for_precache(timeout=5)
        decorator.close()


@pytest.mark.integration
def test_precache_never_goes_below_zero(counting, make_item):
    counting.add_item(make_item(0.0, 0.0))
    decorator = PreCachingAlgorithmDecorator(counting, precache=True, precache_delay=0.0)
    try:
        decorator.get_clusters(0.3)
        assert decorator.wait_for_precache(timeout=5)

        assert set(decorator.get_cached_zooms()) == {0, 1}
        assert -1 not in counting.zooms
    finally:
        decorator.wait_for_precache(timeout=5)
        decorator.close()


@pytest.mark.unit
def test_closed_decorator_schedules_no_precache(counting, make_item):
    counting.add_item(make_item(0.0, 0.0))
    decorator = PreCachingAlgorithmDecorator(counting, precache=True, precache_delay=0.0)
    decorator.close()

    decorator.get_clusters(5)

    assert decorator.wait_for_precache(timeout=1)
    assert decorator.get_cached_zooms() == [5]


@pytest.mark.unit
def test_precache_failure_is_logged_not_raised(counting, make_item, caplog):
    counting.add_item(make_item(0.0, 0.0))
    decorator = PreCachingAlgorithmDecorator(counting, precache=True, precache_delay=0.0)
    try:
        with patch.object(decorator, "_get_clusters_internal", side_effect=RuntimeError("boom")):
            decorator._run_precache(3)

        assert "Failed to precache clusters for zoom 3" in caplog.text
        assert decorator.wait_for_precache(timeout=1)
    finally:
        decorator.close()
