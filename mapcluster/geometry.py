"""Geographic and projected-plane primitives.

Items are positioned in WGS84 latitude/longitude. Clustering happens in a
square Web Mercator plane whose side is ``world_width`` units, so a fixed
screen distance maps to a zoom-dependent span in that plane.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

# Latitude at which Web Mercator maps to a square world.
MAX_MERCATOR_LATITUDE = 85.05112878


@dataclass(frozen=True)
class LatLng:
    """A WGS84 position in degrees.

    Latitude is clamped to [-90, 90] and longitude wrapped into [-180, 180).
    """

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat = float(self.latitude)
        lng = float(self.longitude)
        if math.isnan(lat) or math.isnan(lng):
            raise ValueError(f"LatLng coordinates must be numbers, got ({lat}, {lng})")
        lat = max(-90.0, min(90.0, lat))
        if -180.0 <= lng < 180.0:
            wrapped = lng
        else:
            wrapped = ((lng - 180.0) % 360.0 + 360.0) % 360.0 - 180.0
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", wrapped)


@dataclass(frozen=True)
class Point:
    """A position in a projected plane."""

    x: float
    y: float


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned box, inclusive on every edge."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @classmethod
    def from_span(cls, point: Point, span: float) -> "Bounds":
        """Square of side ``span`` centred on ``point``."""
        half = span / 2.0
        return cls(point.x - half, point.x + half, point.y - half, point.y + half)

    @property
    def mid_x(self) -> float:
        return (self.min_x + self.max_x) / 2.0

    @property
    def mid_y(self) -> float:
        return (self.min_y + self.max_y) / 2.0

    def contains(self, point: Point) -> bool:
        return self.min_x <= point.x <= self.max_x and self.min_y <= point.y <= self.max_y

    def intersects(self, other: "Bounds") -> bool:
        return (
            self.min_x <= other.max_x
            and other.min_x <= self.max_x
            and self.min_y <= other.max_y
            and other.min_y <= self.max_y
        )


class SphericalMercatorProjection:
    """Web Mercator projection onto a square of side ``world_width``.

    x grows eastward from the antimeridian, y grows southward from the top edge.
    """

    def __init__(self, world_width: float):
        if world_width <= 0:
            raise ValueError(f"world_width must be positive, got {world_width}")
        self.world_width = float(world_width)

    def to_point(self, latlng: LatLng) -> Point:
        x = latlng.longitude / 360.0 + 0.5
        lat = max(-MAX_MERCATOR_LATITUDE, min(MAX_MERCATOR_LATITUDE, latlng.latitude))
        siny = math.sin(math.radians(lat))
        y = 0.5 * math.log((1 + siny) / (1 - siny)) / -(2 * math.pi) + 0.5
        return Point(x * self.world_width, y * self.world_width)

    def to_latlng(self, point: Point) -> LatLng:
        x = point.x / self.world_width - 0.5
        lng = x * 360.0
        y = 0.5 - point.y / self.world_width
        lat = 90.0 - math.degrees(math.atan(math.exp(-y * 2 * math.pi)) * 2)
        return LatLng(lat, lng)

    def __repr__(self) -> str:
        return f"SphericalMercatorProjection(world_width={self.world_width})"
