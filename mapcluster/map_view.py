"""Camera source the cluster manager reads the zoom from."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Protocol, runtime_checkable

from mapcluster.geometry import LatLng

logger = logging.getLogger(__name__)

CameraListener = Callable[["CameraPosition"], None]


@dataclass(frozen=True)
class CameraPosition:
    """Where the map is looking."""

    target: LatLng
    zoom: float
    tilt: float = 0.0
    bearing: float = 0.0


@runtime_checkable
class MapView(Protocol):
    """Synchronous camera source."""

    def get_camera_position(self) -> CameraPosition:
        ...


class SimpleMapView:
    """In-process camera source for scripts, tests and headless hosts.

    ``move_camera`` notifies listeners on the calling thread, the way a map
    widget delivers camera events on its UI thread.
    """

    def __init__(self, position: CameraPosition):
        self._position = position
        self._lock = threading.Lock()
        self._listeners: List[CameraListener] = []

    def get_camera_position(self) -> CameraPosition:
        with self._lock:
            return self._position

    def add_camera_change_listener(self, listener: CameraListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_camera_change_listener(self, listener: CameraListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def move_camera(self, position: CameraPosition) -> None:
        with self._lock:
            self._position = position
            listeners = list(self._listeners)
        logger.debug("Camera moved to zoom=%.2f target=%s", position.zoom, position.target)
        for listener in listeners:
            listener(position)

    def set_zoom(self, zoom: float) -> None:
        current = self.get_camera_position()
        self.move_camera(CameraPosition(current.target, zoom, current.tilt, current.bearing))
