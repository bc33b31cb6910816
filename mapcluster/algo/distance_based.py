"""Greedy single-pass distance clustering.

Items are projected into a unit Web Mercator square. At zoom ``z`` a screen
distance of ``max_distance_px`` covers ``max_distance_px / 2**z / 256`` world
units (256px tiles). Walking the items in insertion order, every item not yet
visited seeds a cluster and claims everything inside the square of that span
around it. An item already claimed by an earlier seed moves only when the new
seed is at least as close.

The result is a partition, but not a unique one: it depends on insertion
order. Cluster positions are the centroid of their members.
"""
from __future__ import annotations

import logging
import math
import threading
from typing import List, Optional, Tuple

import numpy as np

from mapcluster.algo.base import (
    CANCEL_POLL_INTERVAL,
    ItemSetAlgorithm,
    check_cancelled,
    require_zoom,
)
from mapcluster.algo.spatial_index import PointIndex
from mapcluster.cluster import StaticCluster
from mapcluster.config import DEFAULT_MAX_DISTANCE_PX
from mapcluster.geometry import SphericalMercatorProjection
from mapcluster.performance_profiler import profile_operation, profile_phase

logger = logging.getLogger(__name__)

TILE_SIZE_PX = 256


class NonHierarchicalDistanceBasedAlgorithm(ItemSetAlgorithm):
    """Distance-based clustering backed by a KD-tree window search."""

    PROJECTION = SphericalMercatorProjection(1)

    def __init__(self, max_distance_px: int = DEFAULT_MAX_DISTANCE_PX):
        super().__init__()
        if max_distance_px <= 0:
            raise ValueError(f"max_distance_px must be positive, got {max_distance_px}")
        self.max_distance_px = max_distance_px
        self._index: Optional[PointIndex] = None

    def _on_items_changed(self) -> None:
        self._index = None

    def _ensure_index(self) -> PointIndex:
        # caller holds self._lock
        if self._index is None:
            points = [self.PROJECTION.to_point(item.position) for item in self._items]
            self._index = PointIndex(points)
        return self._index

    def zoom_specific_span(self, zoom: float) -> float:
        """Side of the clustering window, in world units, at ``zoom``."""
        discrete_zoom = math.floor(require_zoom(zoom))
        return self.max_distance_px / math.pow(2, discrete_zoom) / TILE_SIZE_PX

    def get_clusters(
        self,
        zoom: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[StaticCluster, ...]:
        zoom = require_zoom(zoom)
        span = self.zoom_specific_span(zoom)

        with profile_operation("distance_clustering", {"zoom": zoom}) as report:
            with self._lock:
                items = list(self._items)
                with profile_phase("build_index", report):
                    index = self._ensure_index()
            if report is not None:
                report.metadata["items"] = len(items)
            if not items:
                return ()

            check_cancelled(cancel_event, "index built")

            with profile_phase("greedy_pass", report):
                groups = self._greedy_pass(index, span, cancel_event)

            check_cancelled(cancel_event, "before assembly")

            with profile_phase("assemble", report):
                clusters = tuple(
                    StaticCluster.of([items[i] for i in members])
                    for members in groups
                    if members
                )

        logger.debug(
            "Distance clustering zoom=%.2f items=%d clusters=%d",
            zoom, len(items), len(clusters),
        )
        return clusters

    @staticmethod
    def _greedy_pass(
        index: PointIndex,
        span: float,
        cancel_event: Optional[threading.Event],
    ) -> List[List[int]]:
        """Return member indices per cluster, in seed order."""
        n = len(index)
        coords = index.coords
        visited = np.zeros(n, dtype=bool)
        owner = np.full(n, -1, dtype=np.int64)
        distance_to_cluster = np.full(n, np.inf)
        next_cluster = 0

        for candidate in range(n):
            if candidate % CANCEL_POLL_INTERVAL == 0:
                check_cancelled(cancel_event, "greedy pass")
            if visited[candidate]:
                continue

            hits = np.asarray(index.search_around(candidate, span), dtype=np.int64)
            cluster_id = next_cluster
            next_cluster += 1

            if len(hits) == 1:
                owner[candidate] = cluster_id
                distance_to_cluster[candidate] = 0.0
                visited[candidate] = True
                continue

            delta = coords[hits] - coords[candidate]
            distances = np.einsum("ij,ij->i", delta, delta)
            # stay with an earlier seed only if it is strictly closer
            take = ~(distance_to_cluster[hits] < distances)
            owner[hits[take]] = cluster_id
            distance_to_cluster[hits[take]] = distances[take]
            visited[hits] = True

        groups: List[List[int]] = [[] for _ in range(next_cluster)]
        for idx, cluster_id in enumerate(owner.tolist()):
            groups[cluster_id].append(idx)
        return groups
