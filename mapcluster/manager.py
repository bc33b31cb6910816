"""Groups many items on a map based on zoom level.

``ClusterManager`` owns the clustering algorithm (always behind a
``PreCachingAlgorithmDecorator``) and a single background worker:

- mutations take the write side of a reader/writer lock, computations the
  read side, so a computation never sees a half-applied mutation;
- ``cluster()`` cancels whatever is in flight and submits a new computation
  tagged with a fresh generation id;
- a finished computation reaches the renderer only if its generation is
  still the newest one. Superseded results are dropped silently.

Hook it up to a camera source (``on_camera_change``) and forward marker
clicks from the host toolkit (``on_marker_click``, ``on_info_window_click``).
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent import futures
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional, Sequence

from mapcluster.algo.base import Algorithm
from mapcluster.algo.distance_based import NonHierarchicalDistanceBasedAlgorithm
from mapcluster.algo.precaching import PreCachingAlgorithmDecorator
from mapcluster.cluster import Cluster
from mapcluster.config import ClusterSettings, get_cluster_settings
from mapcluster.errors import ClusteringCancelled
from mapcluster.items import ClusterItem
from mapcluster.map_view import CameraPosition, MapView
from mapcluster.markers import Collection, Marker, MarkerManager
from mapcluster.renderer import (
    ClusterClickListener,
    ClusterInfoWindowClickListener,
    ClusterItemClickListener,
    ClusterItemInfoWindowClickListener,
    ClusterRenderer,
    DefaultClusterRenderer,
)
from mapcluster.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

Dispatcher = Callable[[Callable[[], None]], None]


def dispatch_immediately(callback: Callable[[], None]) -> None:
    """Default dispatcher: deliver on the worker thread that computed the result."""
    callback()


class ClusterManager:
    """Cluster coordinator between the item set, the camera and the renderer."""

    def __init__(
        self,
        map_view: MapView,
        renderer: Optional[ClusterRenderer] = None,
        algorithm: Optional[Algorithm] = None,
        marker_manager: Optional[MarkerManager] = None,
        settings: Optional[ClusterSettings] = None,
        dispatcher: Optional[Dispatcher] = None,
    ):
        """
        Args:
            map_view: Synchronous camera source the zoom is read from
            renderer: Receives results; defaults to DefaultClusterRenderer
            algorithm: Clustering algorithm; defaults to the distance-based one
            marker_manager: Click router; a private one is created if omitted
            settings: Tuning knobs; resolved from the environment if omitted
            dispatcher: Runs result delivery on the context the renderer needs
        """
        self._settings = settings if settings is not None else get_cluster_settings()
        self._map_view = map_view
        self._marker_manager = marker_manager if marker_manager is not None else MarkerManager()
        self._cluster_markers = self._marker_manager.new_collection()
        self._markers = self._marker_manager.new_collection()
        self._dispatch = dispatcher if dispatcher is not None else dispatch_immediately

        self._algorithm_lock = ReadWriteLock()
        self._algorithm = self._wrap(
            algorithm
            if algorithm is not None
            else NonHierarchicalDistanceBasedAlgorithm(self._settings.max_distance_px)
        )

        # guards generation, the in-flight task and delivery
        self._task_lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cluster-task")
        self._generation = 0
        self._delivered_generation = 0
        self._future: Optional[futures.Future] = None
        self._cancel_event: Optional[threading.Event] = None
        self._previous_zoom: Optional[float] = None
        self._closed = False

        self._on_cluster_click_listener: Optional[ClusterClickListener] = None
        self._on_cluster_info_window_click_listener: Optional[ClusterInfoWindowClickListener] = None
        self._on_cluster_item_click_listener: Optional[ClusterItemClickListener] = None
        self._on_cluster_item_info_window_click_listener: Optional[ClusterItemInfoWindowClickListener] = None

        if renderer is None:
            renderer = DefaultClusterRenderer(
                self._marker_manager, self, min_cluster_size=self._settings.min_cluster_size
            )
        self._renderer = renderer
        self._renderer.on_add()

    def _wrap(self, algorithm: Algorithm) -> PreCachingAlgorithmDecorator:
        return PreCachingAlgorithmDecorator(
            algorithm,
            max_entries=self._settings.cache_size,
            precache=self._settings.precache,
            precache_delay=self._settings.precache_delay_seconds,
        )

    # ------------------------------------------------------------------
    # Item set
    # ------------------------------------------------------------------

    def add_item(self, item: ClusterItem) -> None:
        with self._algorithm_lock.write_locked():
            self._algorithm.add_item(item)

    def add_items(self, items: Iterable[ClusterItem]) -> None:
        with self._algorithm_lock.write_locked():
            self._algorithm.add_items(items)

    def remove_item(self, item: ClusterItem) -> None:
        with self._algorithm_lock.write_locked():
            self._algorithm.remove_item(item)

    def clear_items(self) -> None:
        with self._algorithm_lock.write_locked():
            self._algorithm.clear_items()

    def set_algorithm(self, algorithm: Algorithm) -> None:
        """Swap in a new algorithm, carrying every current item over, then re-cluster."""
        if algorithm is None:
            raise ValueError("algorithm must not be None")
        with self._algorithm_lock.write_locked():
            previous = self._algorithm
            if previous is not None:
                algorithm.add_items(previous.get_items())
            self._algorithm = self._wrap(algorithm)
        previous.close()
        logger.info("Switched clustering algorithm to %s", type(algorithm).__name__)
        self.cluster()

    # ------------------------------------------------------------------
    # Recompute scheduling
    # ------------------------------------------------------------------

    def cluster(self) -> None:
        """Force a re-cluster at the current zoom. Call this after adding items."""
        with self._task_lock:
            if self._closed:
                raise RuntimeError("ClusterManager is closed")
            # Attempt to cancel the in-flight request.
            if self._cancel_event is not None:
                self._cancel_event.set()
            if self._future is not None:
                self._future.cancel()

            self._generation += 1
            generation = self._generation
            zoom = self._map_view.get_camera_position().zoom
            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            self._future = self._executor.submit(
                self._run_cluster_task, generation, zoom, cancel_event
            )
        logger.debug("Scheduled cluster task %d at zoom %.2f", generation, zoom)

    def _run_cluster_task(
        self,
        generation: int,
        zoom: float,
        cancel_event: threading.Event,
    ) -> Optional[Sequence[Cluster]]:
        if cancel_event.is_set():
            logger.debug("Cluster task %d cancelled before start", generation)
            return None
        try:
            with self._algorithm_lock.read_locked():
                clusters = self._algorithm.get_clusters(zoom, cancel_event=cancel_event)
        except ClusteringCancelled:
            logger.debug("Cluster task %d cancelled while computing", generation)
            return None
        except Exception:
            logger.exception("Cluster task %d failed at zoom %.2f", generation, zoom)
            raise

        self._dispatch(lambda: self._deliver(generation, clusters))
        return clusters

    def _deliver(self, generation: int, clusters: Sequence[Cluster]) -> bool:
        with self._task_lock:
            if generation != self._generation or generation <= self._delivered_generation:
                logger.debug(
                    "Discarding clusters from stale task %d (current %d)",
                    generation, self._generation,
                )
                return False
            self._delivered_generation = generation
            self._renderer.on_clusters_changed(clusters)
        logger.debug("Delivered %d clusters from task %d", len(clusters), generation)
        return True

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the newest scheduled computation has finished.

        With an asynchronous dispatcher the result may still be queued for
        delivery. Returns False on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._task_lock:
                future = self._future
            if future is None:
                return True
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            done, _ = futures.wait([future], timeout=remaining)
            if not done:
                return False
            with self._task_lock:
                if self._future is future:
                    return True

    # ------------------------------------------------------------------
    # Camera and click events from the host
    # ------------------------------------------------------------------

    def on_camera_change(self, position: CameraPosition) -> None:
        """Might re-cluster."""
        renderer_hook = getattr(self._renderer, "on_camera_change", None)
        if callable(renderer_hook):
            renderer_hook(position)

        # Don't re-compute clusters if the map has just been panned/tilted/rotated.
        zoom = self._map_view.get_camera_position().zoom
        with self._task_lock:
            if self._previous_zoom is not None and self._previous_zoom == zoom:
                return
            self._previous_zoom = zoom

        self.cluster()

    def on_camera_change_finish(self, position: CameraPosition) -> None:
        renderer_hook = getattr(self._renderer, "on_camera_change_finish", None)
        if callable(renderer_hook):
            renderer_hook(position)

    def on_marker_click(self, marker: Marker) -> bool:
        return self._marker_manager.on_marker_click(marker)

    def on_info_window_click(self, marker: Marker) -> None:
        self._marker_manager.on_info_window_click(marker)

    # ------------------------------------------------------------------
    # Renderer and listeners
    # ------------------------------------------------------------------

    def set_renderer(self, renderer: ClusterRenderer) -> None:
        if renderer is None:
            raise ValueError("renderer must not be None")
        with self._task_lock:
            previous = self._renderer
            previous.set_on_cluster_click_listener(None)
            previous.set_on_cluster_info_window_click_listener(None)
            previous.set_on_cluster_item_click_listener(None)
            previous.set_on_cluster_item_info_window_click_listener(None)
            self._cluster_markers.clear()
            self._markers.clear()
            previous.on_remove()

            self._renderer = renderer
            renderer.on_add()
            renderer.set_on_cluster_click_listener(self._on_cluster_click_listener)
            renderer.set_on_cluster_info_window_click_listener(self._on_cluster_info_window_click_listener)
            renderer.set_on_cluster_item_click_listener(self._on_cluster_item_click_listener)
            renderer.set_on_cluster_item_info_window_click_listener(
                self._on_cluster_item_info_window_click_listener
            )
        self.cluster()

    def get_renderer(self) -> ClusterRenderer:
        return self._renderer

    def set_on_cluster_click_listener(self, listener: Optional[ClusterClickListener]) -> None:
        """Invoked when a cluster marker is tapped; route map clicks to ``on_marker_click``."""
        self._on_cluster_click_listener = listener
        self._renderer.set_on_cluster_click_listener(listener)

    def set_on_cluster_info_window_click_listener(
        self, listener: Optional[ClusterInfoWindowClickListener]
    ) -> None:
        """Invoked when a cluster's info window is tapped; route to ``on_info_window_click``."""
        self._on_cluster_info_window_click_listener = listener
        self._renderer.set_on_cluster_info_window_click_listener(listener)

    def set_on_cluster_item_click_listener(self, listener: Optional[ClusterItemClickListener]) -> None:
        """Invoked when an individual item marker is tapped."""
        self._on_cluster_item_click_listener = listener
        self._renderer.set_on_cluster_item_click_listener(listener)

    def set_on_cluster_item_info_window_click_listener(
        self, listener: Optional[ClusterItemInfoWindowClickListener]
    ) -> None:
        """Invoked when an individual item's info window is tapped."""
        self._on_cluster_item_info_window_click_listener = listener
        self._renderer.set_on_cluster_item_info_window_click_listener(listener)

    def get_marker_manager(self) -> MarkerManager:
        return self._marker_manager

    def get_marker_collection(self) -> Collection:
        return self._markers

    def get_cluster_marker_collection(self) -> Collection:
        return self._cluster_markers

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_cache_stats(self) -> dict:
        with self._algorithm_lock.read_locked():
            return self._algorithm.get_stats()

    def close(self, wait: bool = True) -> None:
        """Cancel the in-flight computation and stop the worker."""
        with self._task_lock:
            if self._closed:
                return
            self._closed = True
            if self._cancel_event is not None:
                self._cancel_event.set()
            if self._future is not None:
                self._future.cancel()
        self._executor.shutdown(wait=wait)
        self._algorithm.close()
        logger.debug("ClusterManager closed")

    def __enter__(self) -> "ClusterManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
