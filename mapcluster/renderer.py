"""Renderer collaborator: turns cluster results into markers.

Drawing itself belongs to the host toolkit. ``DefaultClusterRenderer`` keeps
the marker bookkeeping (which marker stands for which cluster or item) so
clicks can be routed back to the registered listeners.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Dict, Optional, Sequence, Tuple

from mapcluster.cluster import Cluster
from mapcluster.config import DEFAULT_MIN_CLUSTER_SIZE
from mapcluster.items import ClusterItem
from mapcluster.markers import Marker, MarkerManager

if TYPE_CHECKING:
    from mapcluster.manager import ClusterManager

logger = logging.getLogger(__name__)

ClusterClickListener = Callable[[Cluster], bool]
ClusterInfoWindowClickListener = Callable[[Cluster], None]
ClusterItemClickListener = Callable[[ClusterItem], bool]
ClusterItemInfoWindowClickListener = Callable[[ClusterItem], None]


class ClusterRenderer(ABC):
    """Receives the latest uncancelled cluster result.

    ``on_clusters_changed`` is called on the manager's dispatch context, by
    default its worker thread.
    """

    def __init__(self):
        self.on_cluster_click_listener: Optional[ClusterClickListener] = None
        self.on_cluster_info_window_click_listener: Optional[ClusterInfoWindowClickListener] = None
        self.on_cluster_item_click_listener: Optional[ClusterItemClickListener] = None
        self.on_cluster_item_info_window_click_listener: Optional[ClusterItemInfoWindowClickListener] = None

    @abstractmethod
    def on_clusters_changed(self, clusters: Sequence[Cluster]) -> None:
        ...

    def on_add(self) -> None:
        """Called when the renderer is attached to a manager."""

    def on_remove(self) -> None:
        """Called when the renderer is detached from a manager."""

    def set_on_cluster_click_listener(self, listener: Optional[ClusterClickListener]) -> None:
        self.on_cluster_click_listener = listener

    def set_on_cluster_info_window_click_listener(
        self, listener: Optional[ClusterInfoWindowClickListener]
    ) -> None:
        self.on_cluster_info_window_click_listener = listener

    def set_on_cluster_item_click_listener(self, listener: Optional[ClusterItemClickListener]) -> None:
        self.on_cluster_item_click_listener = listener

    def set_on_cluster_item_info_window_click_listener(
        self, listener: Optional[ClusterItemInfoWindowClickListener]
    ) -> None:
        self.on_cluster_item_info_window_click_listener = listener


class DefaultClusterRenderer(ClusterRenderer):
    """One marker per cluster of ``min_cluster_size`` or more items, one per item otherwise."""

    def __init__(
        self,
        marker_manager: MarkerManager,
        cluster_manager: Optional["ClusterManager"] = None,
        min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
    ):
        super().__init__()
        self._marker_manager = marker_manager
        self._cluster_manager = cluster_manager
        self.min_cluster_size = min_cluster_size
        self._lock = threading.RLock()
        self._clusters: Tuple[Cluster, ...] = ()
        self._marker_to_cluster: Dict[Marker, Cluster] = {}
        self._marker_to_item: Dict[Marker, ClusterItem] = {}

        if cluster_manager is not None:
            self._cluster_collection = cluster_manager.get_cluster_marker_collection()
            self._item_collection = cluster_manager.get_marker_collection()
        else:
            self._cluster_collection = marker_manager.new_collection()
            self._item_collection = marker_manager.new_collection()

    def on_add(self) -> None:
        self._cluster_collection.set_on_marker_click_listener(self._on_cluster_marker_click)
        self._cluster_collection.set_on_info_window_click_listener(self._on_cluster_info_window_click)
        self._item_collection.set_on_marker_click_listener(self._on_item_marker_click)
        self._item_collection.set_on_info_window_click_listener(self._on_item_info_window_click)

    def on_remove(self) -> None:
        for collection in (self._cluster_collection, self._item_collection):
            collection.set_on_marker_click_listener(None)
            collection.set_on_info_window_click_listener(None)
        with self._lock:
            self._clear_markers()
            self._clusters = ()

    def should_render_as_cluster(self, cluster: Cluster) -> bool:
        return cluster.size >= self.min_cluster_size

    def on_clusters_changed(self, clusters: Sequence[Cluster]) -> None:
        with self._lock:
            self._clear_markers()
            for cluster in clusters:
                if self.should_render_as_cluster(cluster):
                    marker = self._cluster_collection.add_marker(
                        cluster.position, title=str(cluster.size), tag=cluster
                    )
                    self._marker_to_cluster[marker] = cluster
                else:
                    for item in cluster.items:
                        marker = self._item_collection.add_marker(
                            item.position,
                            title=getattr(item, "title", None),
                            snippet=getattr(item, "snippet", None),
                            tag=item,
                        )
                        self._marker_to_item[marker] = item
            self._clusters = tuple(clusters)
            logger.debug(
                "Rendered %d clusters as %d cluster markers and %d item markers",
                len(clusters), len(self._marker_to_cluster), len(self._marker_to_item),
            )

    def _clear_markers(self) -> None:
        self._cluster_collection.clear()
        self._item_collection.clear()
        self._marker_to_cluster.clear()
        self._marker_to_item.clear()

    def get_clusters(self) -> Tuple[Cluster, ...]:
        """Latest result delivered to this renderer."""
        with self._lock:
            return self._clusters

    def get_cluster(self, marker: Marker) -> Optional[Cluster]:
        with self._lock:
            return self._marker_to_cluster.get(marker)

    def get_cluster_item(self, marker: Marker) -> Optional[ClusterItem]:
        with self._lock:
            return self._marker_to_item.get(marker)

    def get_marker(self, target) -> Optional[Marker]:
        """Marker currently standing for a cluster or an item."""
        with self._lock:
            for marker, cluster in self._marker_to_cluster.items():
                if cluster is target:
                    return marker
            for marker, item in self._marker_to_item.items():
                if item is target:
                    return marker
        return None

    def _on_cluster_marker_click(self, marker: Marker) -> bool:
        cluster = self.get_cluster(marker)
        listener = self.on_cluster_click_listener
        return cluster is not None and listener is not None and bool(listener(cluster))

    def _on_cluster_info_window_click(self, marker: Marker) -> None:
        cluster = self.get_cluster(marker)
        listener = self.on_cluster_info_window_click_listener
        if cluster is not None and listener is not None:
            listener(cluster)

    def _on_item_marker_click(self, marker: Marker) -> bool:
        item = self.get_cluster_item(marker)
        listener = self.on_cluster_item_click_listener
        return item is not None and listener is not None and bool(listener(item))

    def _on_item_info_window_click(self, marker: Marker) -> None:
        item = self.get_cluster_item(marker)
        listener = self.on_cluster_item_info_window_click_listener
        if item is not None and listener is not None:
            listener(item)
