"""Phase timing for clustering passes.

Clustering runs on the manager's worker thread and on precache threads at
the same time, so reports are built per call and only the shared history is
locked.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

MAX_REPORTS = 500


@dataclass
class TimingMetric:
    """Container for a single timing measurement."""

    name: str
    duration_ms: float
    timestamp: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        meta_str = ", ".join(f"{k}={v}" for k, v in self.metadata.items()) if self.metadata else ""
        return f"{self.name}: {self.duration_ms:.2f}ms" + (f" ({meta_str})" if meta_str else "")


@dataclass
class PerformanceReport:
    """Timings for one clustering pass, broken down by phase."""

    operation: str
    total_duration_ms: float = 0.0
    phases: List[TimingMetric] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_phase(self, phase: TimingMetric) -> None:
        self.phases.append(phase)

    def get_phase_breakdown(self) -> Dict[str, float]:
        """Percentage of the total spent in each phase."""
        if self.total_duration_ms == 0:
            return {}
        return {
            phase.name: (phase.duration_ms / self.total_duration_ms) * 100
            for phase in self.phases
        }

    def format_report(self) -> str:
        meta = " ".join(f"{k}={v}" for k, v in self.metadata.items())
        breakdown = self.get_phase_breakdown()
        phases = ", ".join(
            f"{phase.name}={phase.duration_ms:.2f}ms ({breakdown.get(phase.name, 0):.0f}%)"
            for phase in self.phases
        )
        return f"{self.operation} {meta} total={self.total_duration_ms:.2f}ms [{phases}]"


class PerformanceProfiler:
    """Bounded, thread-safe history of finished reports."""

    def __init__(self, max_reports: int = MAX_REPORTS):
        self._enabled = True
        self._lock = threading.Lock()
        self._reports: Deque[PerformanceReport] = deque(maxlen=max_reports)

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled

    def record(self, report: PerformanceReport) -> None:
        with self._lock:
            self._reports.append(report)

    def get_all_reports(self) -> List[PerformanceReport]:
        with self._lock:
            return list(self._reports)

    def clear_reports(self) -> None:
        with self._lock:
            self._reports.clear()

    def get_summary(self) -> Dict[str, Dict[str, float]]:
        """Count/total/avg/min/max duration per operation."""
        with self._lock:
            reports = list(self._reports)

        by_operation = defaultdict(list)
        for report in reports:
            by_operation[report.operation].append(report.total_duration_ms)

        return {
            operation: {
                "count": len(durations),
                "total_ms": sum(durations),
                "avg_ms": sum(durations) / len(durations),
                "min_ms": min(durations),
                "max_ms": max(durations),
            }
            for operation, durations in by_operation.items()
        }


_profiler = PerformanceProfiler()


def get_profiler() -> PerformanceProfiler:
    """Get the global profiler instance."""
    return _profiler


@contextmanager
def profile_operation(
    operation: str,
    metadata: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
) -> Iterator[Optional[PerformanceReport]]:
    """Time a whole operation; yields the report phases attach to.

    Usage:
        with profile_operation("distance_clustering", {"items": 1000}) as report:
            with profile_phase("build_index", report):
                ...
    """
    if not _profiler.is_enabled():
        yield None
        return

    report = PerformanceReport(operation=operation, metadata=dict(metadata or {}))
    start_time = time.perf_counter()
    try:
        yield report
    except BaseException as exc:
        # aborted passes would skew the per-operation averages
        logger.debug(
            "%s aborted after %.2fms (%s); not recorded",
            operation, (time.perf_counter() - start_time) * 1000, type(exc).__name__,
        )
        raise
    report.total_duration_ms = (time.perf_counter() - start_time) * 1000
    _profiler.record(report)
    if verbose:
        logger.info(report.format_report())
    else:
        logger.debug(report.format_report())


@contextmanager
def profile_phase(
    phase_name: str,
    report: Optional[PerformanceReport] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Iterator[None]:
    """Time one phase and attach it to ``report`` when profiling is on."""
    if report is None:
        yield
        return

    start_time = time.perf_counter()
    try:
        yield
    finally:
        report.add_phase(
            TimingMetric(
                name=phase_name,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                timestamp=time.time(),
                metadata=dict(metadata or {}),
            )
        )
