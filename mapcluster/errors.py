"""Exception types raised by the clustering engine."""
from __future__ import annotations


class MapClusterError(Exception):
    """Base class for clustering engine errors."""


class InvalidItemError(MapClusterError, ValueError):
    """Raised when a mutation receives ``None`` or an item without a position."""


class InvalidZoomError(MapClusterError, ValueError):
    """Raised when a zoom level is NaN or infinite."""


class ClusteringCancelled(MapClusterError):
    """Raised inside a computation whose cancel event was set.

    Never surfaced to the renderer; the coordinator drops the computation.
    """
