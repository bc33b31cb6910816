"""Marker bookkeeping and click routing.

Markers are grouped into named collections; a click on a marker is handed to
the listener of the collection that owns it. The cluster manager only routes
host-toolkit clicks here.
"""
from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from mapcluster.geometry import LatLng

logger = logging.getLogger(__name__)

MarkerClickListener = Callable[["Marker"], bool]
InfoWindowClickListener = Callable[["Marker"], None]


class Marker:
    """Handle for a drawn marker; hashed by identity."""

    def __init__(
        self,
        position: LatLng,
        title: Optional[str] = None,
        snippet: Optional[str] = None,
        tag: Any = None,
    ):
        self.position = position
        self.title = title
        self.snippet = snippet
        self.tag = tag

    def __repr__(self) -> str:
        return f"Marker(position={self.position}, title={self.title!r})"


class Collection:
    """Markers sharing click listeners."""

    def __init__(self, manager: "MarkerManager", collection_id: str):
        self._manager = manager
        self.collection_id = collection_id
        self._markers: List[Marker] = []
        self.marker_click_listener: Optional[MarkerClickListener] = None
        self.info_window_click_listener: Optional[InfoWindowClickListener] = None

    def add_marker(
        self,
        position: LatLng,
        title: Optional[str] = None,
        snippet: Optional[str] = None,
        tag: Any = None,
    ) -> Marker:
        marker = Marker(position, title=title, snippet=snippet, tag=tag)
        with self._manager._lock:
            self._markers.append(marker)
            self._manager._register(marker, self)
        return marker

    def remove(self, marker: Marker) -> bool:
        with self._manager._lock:
            if marker not in self._markers:
                return False
            self._markers.remove(marker)
            self._manager._unregister(marker)
            return True

    def clear(self) -> None:
        with self._manager._lock:
            for marker in self._markers:
                self._manager._unregister(marker)
            self._markers.clear()

    def get_markers(self) -> List[Marker]:
        with self._manager._lock:
            return list(self._markers)

    def __len__(self) -> int:
        with self._manager._lock:
            return len(self._markers)

    def set_on_marker_click_listener(self, listener: Optional[MarkerClickListener]) -> None:
        self.marker_click_listener = listener

    def set_on_info_window_click_listener(self, listener: Optional[InfoWindowClickListener]) -> None:
        self.info_window_click_listener = listener


class MarkerManager:
    """Owns marker collections and dispatches clicks to the owning collection."""

    _ids = itertools.count()

    def __init__(self):
        self._lock = threading.RLock()
        self._collections: Dict[str, Collection] = {}
        self._owners: Dict[Marker, Collection] = {}

    def new_collection(self, collection_id: Optional[str] = None) -> Collection:
        with self._lock:
            if collection_id is None:
                collection_id = f"collection-{next(self._ids)}"
            if collection_id in self._collections:
                raise ValueError(f"collection id {collection_id!r} already in use")
            collection = Collection(self, collection_id)
            self._collections[collection_id] = collection
            return collection

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        with self._lock:
            return self._collections.get(collection_id)

    def _register(self, marker: Marker, collection: Collection) -> None:
        with self._lock:
            self._owners[marker] = collection

    def _unregister(self, marker: Marker) -> None:
        with self._lock:
            self._owners.pop(marker, None)

    def remove(self, marker: Marker) -> bool:
        with self._lock:
            collection = self._owners.get(marker)
        return collection is not None and collection.remove(marker)

    def on_marker_click(self, marker: Marker) -> bool:
        """Returns True when a listener consumed the click."""
        with self._lock:
            collection = self._owners.get(marker)
        if collection is None or collection.marker_click_listener is None:
            logger.debug("Unrouted marker click: %r", marker)
            return False
        return bool(collection.marker_click_listener(marker))

    def on_info_window_click(self, marker: Marker) -> None:
        with self._lock:
            collection = self._owners.get(marker)
        if collection is not None and collection.info_window_click_listener is not None:
            collection.info_window_click_listener(marker)
