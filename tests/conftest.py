"""Shared pytest configuration and fixtures for the test suite.

This module centralizes:
- Path setup (eliminates sys.path hacks in individual test files)
- Pytest markers for test categorization (unit, integration, property)
- Item, map view and settings fixtures used across modules
"""
from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import List, Optional, Sequence

import pytest


# ==============================================================================
# Path Setup - Ensures the package and scripts/ are importable
# ==============================================================================

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mapcluster.algo.base import ItemSetAlgorithm, check_cancelled  # noqa: E402
from mapcluster.cluster import StaticCluster  # noqa: E402
from mapcluster.config import ClusterSettings  # noqa: E402
from mapcluster.geometry import LatLng  # noqa: E402
from mapcluster.items import MarkerItem  # noqa: E402
from mapcluster.map_view import CameraPosition, SimpleMapView  # noqa: E402
from mapcluster.performance_profiler import get_profiler  # noqa: E402
from mapcluster.renderer import ClusterRenderer  # noqa: E402


# ==============================================================================
# Pytest Configuration
# ==============================================================================

def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "unit: Fast tests with no I/O",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests exercising threads, files or the CLI end to end",
    )
    config.addinivalue_line(
        "markers",
        "property: Hypothesis property-based tests",
    )


# ==============================================================================
# Test Doubles
# ==============================================================================

class RecordingRenderer(ClusterRenderer):
    """Renderer that remembers every delivery."""

    def __init__(self):
        super().__init__()
        self.deliveries: List[Sequence[StaticCluster]] = []
        self.added = 0
        self.removed = 0
        self.delivered = threading.Event()

    def on_clusters_changed(self, clusters):
        self.deliveries.append(tuple(clusters))
        self.delivered.set()

    def on_add(self):
        self.added += 1

    def on_remove(self):
        self.removed += 1


class GatedAlgorithm(ItemSetAlgorithm):
    """One cluster per item, but each computation blocks until released.

    Lets tests hold a computation in flight, then cancel or supersede it.
    With ``tag_zoom`` every result carries one extra cluster whose single
    item is titled ``zoom-<zoom>``.
    """

    def __init__(self, tag_zoom: bool = False):
        super().__init__()
        self.tag_zoom = tag_zoom
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls: List[float] = []
        self.cancelled = 0

    def get_clusters(self, zoom, cancel_event: Optional[threading.Event] = None):
        items = self.get_items()
        self.calls.append(zoom)
        self.started.set()
        while not self.release.wait(0.01):
            if cancel_event is not None and cancel_event.is_set():
                self.cancelled += 1
                check_cancelled(cancel_event, "gated")
        clusters = tuple(StaticCluster.of([item]) for item in items)
        if self.tag_zoom:
            tag = MarkerItem.at(0.0, 0.0, title=f"zoom-{zoom}")
            clusters += (StaticCluster.of([tag]),)
        return clusters


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def make_item():
    """Factory for marker items at a lat/lng."""

    def _make(lat: float, lng: float, title: Optional[str] = None) -> MarkerItem:
        return MarkerItem.at(lat, lng, title=title)

    return _make


@pytest.fixture
def map_view():
    return SimpleMapView(CameraPosition(LatLng(0.0, 0.0), zoom=10.0))


@pytest.fixture
def quiet_settings():
    """Settings with background precaching off so tests stay deterministic."""
    return ClusterSettings(precache=False)


@pytest.fixture
def recording_renderer():
    return RecordingRenderer()


@pytest.fixture
def gated_algorithm():
    algorithm = GatedAlgorithm()
    yield algorithm
    algorithm.release.set()


@pytest.fixture
def zoom_tagging_algorithm():
    algorithm = GatedAlgorithm(tag_zoom=True)
    yield algorithm
    algorithm.release.set()


@pytest.fixture(autouse=True)
def _reset_profiler():
    profiler = get_profiler()
    profiler.enable()
    profiler.clear_reports()
    yield
    profiler.enable()
    profiler.clear_reports()
