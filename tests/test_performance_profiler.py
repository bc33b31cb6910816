"""Unit tests for phase timing."""
from __future__ import annotations

import threading

import pytest

from mapcluster.performance_profiler import (
    PerformanceProfiler,
    PerformanceReport,
    TimingMetric,
    get_profiler,
    profile_operation,
    profile_phase,
)


@pytest.mark.unit
def test_profile_operation_records_phases():
    with profile_operation("clustering", {"items": 3}) as report:
        with profile_phase("build_index", report):
            pass
        with profile_phase("assemble", report, {"clusters": 2}):
            pass

    (recorded,) = [r for r in get_profiler().get_all_reports() if r.operation == "clustering"]
    assert recorded is report
    assert [phase.name for phase in recorded.phases] == ["build_index", "assemble"]
    assert recorded.phases[1].metadata == {"clusters": 2}
    assert recorded.total_duration_ms >= sum(p.duration_ms for p in recorded.phases)


@pytest.mark.unit
def test_disabled_profiler_yields_none():
    profiler = get_profiler()
    profiler.disable()

    with profile_operation("clustering") as report:
        with profile_phase("phase", report):
            pass

    assert report is None
    assert [r for r in profiler.get_all_reports() if r.operation == "clustering"] == []


@pytest.mark.unit
def test_failed_operation_is_not_recorded():
    with pytest.raises(KeyError):
        with profile_operation("clustering"):
            raise KeyError("boom")

    assert [r for r in get_profiler().get_all_reports() if r.operation == "clustering"] == []


@pytest.mark.unit
def test_phase_breakdown_percentages():
    report = PerformanceReport(operation="op", total_duration_ms=200.0)
    report.add_phase(TimingMetric("a", 50.0, 0.0))
    report.add_phase(TimingMetric("b", 150.0, 0.0))

    assert report.get_phase_breakdown() == {"a": 25.0, "b": 75.0}
    assert "a=50.00ms (25%)" in report.format_report()
    assert PerformanceReport(operation="empty").get_phase_breakdown() == {}


@pytest.mark.unit
def test_summary_groups_by_operation():
    profiler = PerformanceProfiler()
    for duration in (10.0, 30.0):
        profiler.record(PerformanceReport(operation="grid", total_duration_ms=duration))
    profiler.record(PerformanceReport(operation="distance", total_duration_ms=5.0))

    summary = profiler.get_summary()

    assert summary["grid"] == {
        "count": 2,
        "total_ms": 40.0,
        "avg_ms": 20.0,
        "min_ms": 10.0,
        "max_ms": 30.0,
    }
    assert summary["distance"]["count"] == 1


@pytest.mark.unit
def test_history_is_bounded():
    profiler = PerformanceProfiler(max_reports=3)
    for i in range(5):
        profiler.record(PerformanceReport(operation=f"op{i}"))

    assert [r.operation for r in profiler.get_all_reports()] == ["op2", "op3", "op4"]


@pytest.mark.unit
def test_concurrent_recording():
    profiler = PerformanceProfiler()

    def record_many():
        for _ in range(200):
            profiler.record(PerformanceReport(operation="op", total_duration_ms=1.0))

    threads = [threading.Thread(target=record_many) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert profiler.get_summary()["op"]["count"] == 500
