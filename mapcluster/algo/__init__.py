"""Clustering algorithms and the per-zoom caching decorator."""

from .base import Algorithm, ItemSetAlgorithm
from .distance_based import NonHierarchicalDistanceBasedAlgorithm
from .grid_based import GridBasedAlgorithm
from .precaching import PreCachingAlgorithmDecorator
from .spatial_index import PointIndex

AVAILABLE_ALGORITHMS = {
    "distance": NonHierarchicalDistanceBasedAlgorithm,
    "grid": GridBasedAlgorithm,
}


def get_algorithm(name: str, **kwargs) -> Algorithm:
    """Build a clustering algorithm by name."""
    if name not in AVAILABLE_ALGORITHMS:
        raise ValueError(f"Unknown clustering algorithm: {name}. Available: {list(AVAILABLE_ALGORITHMS)}")
    return AVAILABLE_ALGORITHMS[name](**kwargs)


__all__ = [
    "Algorithm",
    "ItemSetAlgorithm",
    "NonHierarchicalDistanceBasedAlgorithm",
    "GridBasedAlgorithm",
    "PreCachingAlgorithmDecorator",
    "PointIndex",
    "AVAILABLE_ALGORITHMS",
    "get_algorithm",
]
