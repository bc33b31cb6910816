"""Square-window point search over projected item positions."""
from __future__ import annotations

from typing import List, Sequence

import numpy as np
from scipy.spatial import KDTree

from mapcluster.geometry import Bounds, Point


class PointIndex:
    """Static index over a fixed sequence of projected points.

    Built once per item-set version. Queries return positions in the original
    sequence, so callers map results back to their own item list.
    """

    def __init__(self, points: Sequence[Point]):
        self._coords = np.array([(p.x, p.y) for p in points], dtype=np.float64).reshape(-1, 2)
        self._tree = KDTree(self._coords) if len(self._coords) else None

    def __len__(self) -> int:
        return len(self._coords)

    @property
    def coords(self) -> np.ndarray:
        return self._coords

    def search(self, bounds: Bounds) -> List[int]:
        """Indices of points inside ``bounds`` (edges included).

        Only squares are searched efficiently; that is all the clustering
        algorithms need.
        """
        if self._tree is None:
            return []
        half_x = (bounds.max_x - bounds.min_x) / 2.0
        half_y = (bounds.max_y - bounds.min_y) / 2.0
        radius = max(half_x, half_y)
        center = (bounds.mid_x, bounds.mid_y)
        # Chebyshev ball == axis-aligned square of side 2 * radius
        hits = self._tree.query_ball_point(center, r=radius, p=np.inf)
        if half_x != half_y:
            xs = self._coords[hits, 0]
            ys = self._coords[hits, 1]
            keep = (
                (xs >= bounds.min_x) & (xs <= bounds.max_x)
                & (ys >= bounds.min_y) & (ys <= bounds.max_y)
            )
            hits = [h for h, k in zip(hits, keep) if k]
        return sorted(hits)

    def search_around(self, index: int, span: float) -> List[int]:
        """Indices inside the square of side ``span`` centred on point ``index``."""
        x, y = self._coords[index]
        return self.search(Bounds.from_span(Point(float(x), float(y)), span))
