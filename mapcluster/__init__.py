"""Zoom-dependent clustering of map markers."""

from .algo import (
    Algorithm,
    GridBasedAlgorithm,
    NonHierarchicalDistanceBasedAlgorithm,
    PreCachingAlgorithmDecorator,
    get_algorithm,
)
from .cluster import Cluster, StaticCluster
from .errors import ClusteringCancelled, InvalidItemError, InvalidZoomError, MapClusterError
from .geometry import LatLng, Point, SphericalMercatorProjection
from .items import ClusterItem, MarkerItem
from .manager import ClusterManager
from .map_view import CameraPosition, SimpleMapView
from .markers import Marker, MarkerManager
from .renderer import ClusterRenderer, DefaultClusterRenderer

__all__ = [
    "Algorithm",
    "GridBasedAlgorithm",
    "NonHierarchicalDistanceBasedAlgorithm",
    "PreCachingAlgorithmDecorator",
    "get_algorithm",
    "Cluster",
    "StaticCluster",
    "ClusteringCancelled",
    "InvalidItemError",
    "InvalidZoomError",
    "MapClusterError",
    "LatLng",
    "Point",
    "SphericalMercatorProjection",
    "ClusterItem",
    "MarkerItem",
    "ClusterManager",
    "CameraPosition",
    "SimpleMapView",
    "Marker",
    "MarkerManager",
    "ClusterRenderer",
    "DefaultClusterRenderer",
]
