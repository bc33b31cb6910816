"""Algorithm contract and the item-set behaviour shared by implementations."""
from __future__ import annotations

import logging
import math
import threading
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from mapcluster.cluster import Cluster
from mapcluster.errors import ClusteringCancelled, InvalidItemError, InvalidZoomError
from mapcluster.items import ClusterItem

logger = logging.getLogger(__name__)

# Candidates processed between two cancellation polls.
CANCEL_POLL_INTERVAL = 256

# Zoom range the algorithms accept. Outside it 2**zoom leaves float range;
# at MAX_ZOOM every distinct position is already a singleton.
MIN_ZOOM = -64.0
MAX_ZOOM = 64.0


class Algorithm(ABC):
    """Logic for computing clusters from a live item set."""

    @abstractmethod
    def add_item(self, item: ClusterItem) -> None:
        ...

    @abstractmethod
    def add_items(self, items: Iterable[ClusterItem]) -> None:
        ...

    @abstractmethod
    def remove_item(self, item: ClusterItem) -> None:
        ...

    @abstractmethod
    def clear_items(self) -> None:
        ...

    @abstractmethod
    def get_items(self) -> List[ClusterItem]:
        """Snapshot of the live item set; later mutations do not show up in it."""

    @abstractmethod
    def get_clusters(
        self,
        zoom: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[Cluster, ...]:
        """Partition the live item set for ``zoom``.

        Raises ClusteringCancelled if ``cancel_event`` is set while computing.
        """


def require_item(item: ClusterItem) -> ClusterItem:
    """Reject ``None`` and objects without a position."""
    if item is None:
        raise InvalidItemError("cluster item must not be None")
    if getattr(item, "position", None) is None:
        raise InvalidItemError(f"cluster item {item!r} has no position")
    return item


def require_zoom(zoom: float) -> float:
    """Reject NaN and infinite zooms; clamp the rest into [MIN_ZOOM, MAX_ZOOM]."""
    zoom = float(zoom)
    if math.isnan(zoom) or math.isinf(zoom):
        raise InvalidZoomError(f"zoom must be finite, got {zoom}")
    return min(max(zoom, MIN_ZOOM), MAX_ZOOM)


def check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.debug("Clustering cancelled at %s", stage)
        raise ClusteringCancelled(stage)


class ItemSetAlgorithm(Algorithm):
    """Base for algorithms holding their items in a locked list.

    The list is a multiset: duplicates are kept and ``remove_item`` drops the
    first equal entry. Subclasses get ``_on_items_changed`` after every
    effective mutation, called with ``self._lock`` held.
    """

    def __init__(self):
        self._items: List[ClusterItem] = []
        self._lock = threading.RLock()

    def add_item(self, item: ClusterItem) -> None:
        require_item(item)
        with self._lock:
            self._items.append(item)
            self._on_items_changed()

    def add_items(self, items: Iterable[ClusterItem]) -> None:
        batch = [require_item(item) for item in items]
        if not batch:
            return
        with self._lock:
            self._items.extend(batch)
            self._on_items_changed()

    def remove_item(self, item: ClusterItem) -> None:
        require_item(item)
        with self._lock:
            try:
                self._items.remove(item)
            except ValueError:
                return
            self._on_items_changed()

    def clear_items(self) -> None:
        with self._lock:
            if not self._items:
                return
            self._items.clear()
            self._on_items_changed()

    def get_items(self) -> List[ClusterItem]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _on_items_changed(self) -> None:
        """Hook for derived state (indexes) that depends on the item list."""
