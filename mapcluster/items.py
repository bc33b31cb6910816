"""Positioned items eligible for clustering."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from mapcluster.geometry import LatLng


@runtime_checkable
class ClusterItem(Protocol):
    """Anything exposing a ``position``.

    The engine never mutates items and compares them with the caller's own
    equality when removing.
    """

    @property
    def position(self) -> LatLng:
        ...


@dataclass(frozen=True)
class MarkerItem:
    """Ready-made item carrying a position plus optional marker text."""

    position: LatLng
    title: Optional[str] = None
    snippet: Optional[str] = None

    @classmethod
    def at(cls, latitude: float, longitude: float, title: Optional[str] = None) -> "MarkerItem":
        return cls(LatLng(latitude, longitude), title=title)
