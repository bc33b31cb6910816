"""Per-zoom result cache wrapped around any clustering algorithm.

Zoom changes during a gesture keep asking for the same few integer zoom
levels, so results are cached per ``floor(zoom)``. Any mutation can change
clustering at every zoom, so mutations drop the whole cache.

After serving a zoom the neighbouring levels are computed in the background
so the next zoom step is usually a cache hit.
"""
from __future__ import annotations

import logging
import math
import random
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from mapcluster.algo.base import Algorithm, require_zoom
from mapcluster.cluster import Cluster
from mapcluster.config import DEFAULT_CACHE_SIZE, DEFAULT_PRECACHE, DEFAULT_PRECACHE_DELAY_MS
from mapcluster.items import ClusterItem

logger = logging.getLogger(__name__)


@dataclass
class CachedClusters:
    """Clusters computed for one discrete zoom."""

    zoom: int
    clusters: Tuple[Cluster, ...]
    computed_at: float
    computation_ms: float
    generation: int


class PreCachingAlgorithmDecorator(Algorithm):
    """LRU cache of cluster results keyed by discrete zoom.

    Holds a reference to the wrapped algorithm and exposes the same
    operations. Thread-safe: the manager's worker and the precache threads
    both read through it.
    """

    def __init__(
        self,
        algorithm: Algorithm,
        max_entries: int = DEFAULT_CACHE_SIZE,
        precache: bool = DEFAULT_PRECACHE,
        precache_delay: float = DEFAULT_PRECACHE_DELAY_MS / 1000.0,
    ):
        if algorithm is None:
            raise ValueError("algorithm must not be None")
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._algorithm = algorithm
        self._max_entries = max_entries
        self._precache = precache
        self._precache_delay = max(0.0, precache_delay)

        self._cache: "OrderedDict[int, CachedClusters]" = OrderedDict()
        self._cache_lock = threading.RLock()
        # one computation at a time, so concurrent misses on a bucket compute once
        self._compute_lock = threading.Lock()
        # bumped on every invalidation; results from older generations are dropped
        self._generation = 0

        self._closed = threading.Event()
        self._pending_precache: Set[int] = set()
        self._precache_threads: Dict[int, threading.Thread] = {}

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._invalidations = 0
        self._stale_drops = 0
        self._precomputed = 0

    @property
    def algorithm(self) -> Algorithm:
        return self._algorithm

    @staticmethod
    def quantize(zoom: float) -> int:
        """Cache key for ``zoom``."""
        return int(math.floor(zoom))

    # ------------------------------------------------------------------
    # Mutations: forward, then drop everything
    # ------------------------------------------------------------------

    def add_item(self, item: ClusterItem) -> None:
        self._algorithm.add_item(item)
        self.invalidate()

    def add_items(self, items: Iterable[ClusterItem]) -> None:
        self._algorithm.add_items(items)
        self.invalidate()

    def remove_item(self, item: ClusterItem) -> None:
        self._algorithm.remove_item(item)
        self.invalidate()

    def clear_items(self) -> None:
        self._algorithm.clear_items()
        self.invalidate()

    def get_items(self) -> List[ClusterItem]:
        return self._algorithm.get_items()

    def invalidate(self) -> int:
        """Drop every cached zoom. Returns the number of entries removed."""
        with self._cache_lock:
            count = len(self._cache)
            self._cache.clear()
            self._generation += 1
            self._invalidations += 1
        if count:
            logger.debug("Cluster cache invalidated (%d entries)", count)
        return count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_clusters(
        self,
        zoom: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[Cluster, ...]:
        discrete_zoom = self.quantize(require_zoom(zoom))
        results = self._get_clusters_internal(discrete_zoom, cancel_event)

        if self._precache:
            self._schedule_precache(discrete_zoom + 1)
            if discrete_zoom > 0:
                self._schedule_precache(discrete_zoom - 1)
        return results

    def is_cached(self, zoom: float) -> bool:
        with self._cache_lock:
            return self.quantize(zoom) in self._cache

    def _lookup(self, discrete_zoom: int) -> Optional[CachedClusters]:
        with self._cache_lock:
            entry = self._cache.get(discrete_zoom)
            if entry is not None:
                self._cache.move_to_end(discrete_zoom)
            return entry

    def _get_clusters_internal(
        self,
        discrete_zoom: int,
        cancel_event: Optional[threading.Event] = None,
        precaching: bool = False,
    ) -> Tuple[Cluster, ...]:
        entry = self._lookup(discrete_zoom)
        if entry is None:
            with self._compute_lock:
                entry = self._lookup(discrete_zoom)
                if entry is None:
                    return self._compute_and_store(discrete_zoom, cancel_event, precaching)

        if not precaching:
            with self._cache_lock:
                self._hits += 1
            logger.debug("Cluster cache HIT zoom=%d (%d clusters)", discrete_zoom, len(entry.clusters))
        return entry.clusters

    def _compute_and_store(
        self,
        discrete_zoom: int,
        cancel_event: Optional[threading.Event],
        precaching: bool,
    ) -> Tuple[Cluster, ...]:
        # caller holds self._compute_lock
        with self._cache_lock:
            generation = self._generation
            if precaching:
                self._precomputed += 1
            else:
                self._misses += 1

        start = time.perf_counter()
        clusters = tuple(self._algorithm.get_clusters(discrete_zoom, cancel_event=cancel_event))
        elapsed_ms = (time.perf_counter() - start) * 1000

        self._store(
            CachedClusters(
                zoom=discrete_zoom,
                clusters=clusters,
                computed_at=time.time(),
                computation_ms=elapsed_ms,
                generation=generation,
            )
        )
        logger.debug(
            "Cluster cache %s zoom=%d clusters=%d computed=%.1fms",
            "PRECACHE" if precaching else "MISS",
            discrete_zoom,
            len(clusters),
            elapsed_ms,
        )
        return clusters

    def _store(self, entry: CachedClusters) -> bool:
        with self._cache_lock:
            if entry.generation != self._generation:
                self._stale_drops += 1
                logger.debug(
                    "Dropping zoom=%d result from generation %d (current %d)",
                    entry.zoom, entry.generation, self._generation,
                )
                return False

            while len(self._cache) >= self._max_entries and entry.zoom not in self._cache:
                evicted_zoom, _ = self._cache.popitem(last=False)
                self._evictions += 1
                logger.debug("Cluster cache EVICT zoom=%d", evicted_zoom)

            self._cache[entry.zoom] = entry
            self._cache.move_to_end(entry.zoom)
            return True

    # ------------------------------------------------------------------
    # Background precaching
    # ------------------------------------------------------------------

    def _schedule_precache(self, discrete_zoom: int) -> bool:
        if self._closed.is_set():
            return False
        with self._cache_lock:
            if discrete_zoom in self._cache or discrete_zoom in self._pending_precache:
                return False
            self._pending_precache.add(discrete_zoom)

            thread = threading.Thread(
                target=self._run_precache,
                args=(discrete_zoom,),
                name=f"cluster-precache-{discrete_zoom}",
                daemon=True,
            )
            self._precache_threads[discrete_zoom] = thread
        thread.start()
        return True

    def _run_precache(self, discrete_zoom: int) -> None:
        try:
            # stagger so the foreground computation gets the algorithm first
            delay = random.uniform(self._precache_delay, 2 * self._precache_delay)
            if self._closed.wait(delay):
                return
            self._get_clusters_internal(discrete_zoom, precaching=True)
        except Exception as e:
            logger.warning("Failed to precache clusters for zoom %d: %s", discrete_zoom, e)
        finally:
            with self._cache_lock:
                self._pending_precache.discard(discrete_zoom)
                self._precache_threads.pop(discrete_zoom, None)

    def wait_for_precache(self, timeout: Optional[float] = None) -> bool:
        """Join outstanding precache threads. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._cache_lock:
                threads = list(self._precache_threads.values())
            if not threads:
                return True
            for thread in threads:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                thread.join(remaining)
                if thread.is_alive():
                    return False

    def close(self) -> None:
        """Stop scheduling precache work; threads still in their delay exit without computing."""
        self._closed.set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_cached_zooms(self) -> List[int]:
        with self._cache_lock:
            return list(self._cache.keys())

    def get_stats(self) -> Dict:
        """Get cache statistics."""
        with self._cache_lock:
            total_requests = self._hits + self._misses
            hit_rate = self._hits / total_requests if total_requests > 0 else 0

            return {
                "entries": len(self._cache),
                "max_entries": self._max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": hit_rate,
                "evictions": self._evictions,
                "invalidations": self._invalidations,
                "stale_drops": self._stale_drops,
                "precomputed": self._precomputed,
                "generation": self._generation,
            }
