"""Cluster result types."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, Tuple, runtime_checkable

import numpy as np

from mapcluster.geometry import LatLng
from mapcluster.items import ClusterItem


@runtime_checkable
class Cluster(Protocol):
    """A group of items drawn as one unit."""

    @property
    def position(self) -> LatLng:
        ...

    @property
    def items(self) -> Tuple[ClusterItem, ...]:
        ...

    @property
    def size(self) -> int:
        ...


@dataclass(frozen=True)
class StaticCluster:
    """Immutable cluster produced by a single clustering pass."""

    position: LatLng
    items: Tuple[ClusterItem, ...]

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("a cluster needs at least one item")
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))

    @property
    def size(self) -> int:
        return len(self.items)

    @classmethod
    def of(cls, items: Sequence[ClusterItem]) -> "StaticCluster":
        """Build a cluster positioned at the centroid of ``items``."""
        return cls(position=centroid(items), items=tuple(items))


def centroid(items: Sequence[ClusterItem]) -> LatLng:
    """Mean latitude/longitude of ``items``."""
    if not items:
        raise ValueError("cannot take the centroid of no items")
    if len(items) == 1:
        return items[0].position
    coords = np.array(
        [(item.position.latitude, item.position.longitude) for item in items],
        dtype=np.float64,
    )
    lat, lng = coords.mean(axis=0)
    return LatLng(float(lat), float(lng))
