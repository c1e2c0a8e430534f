"""Unit tests for the performance monitor."""

import pytest

from ai_orchestration.orchestrator.performance_monitor import PerformanceMonitor


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ManualMemory:
    def __init__(self):
        self.rss = 100 * 1024 * 1024

    def __call__(self):
        return self.rss


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def memory():
    return ManualMemory()


@pytest.fixture
def monitor(clock, memory):
    return PerformanceMonitor(clock=clock, memory_probe=memory)


def run_operation(monitor, clock, operation_id, seconds, metadata=None):
    monitor.start(operation_id, metadata)
    clock.now += seconds
    return monitor.end(operation_id)


class TestPerformanceMonitor:
    """Test suite for measurements and reports."""

    def test_unknown_operation(self, monitor):
        """Test ending an unknown operation returns None."""
        assert monitor.end("missing") is None

    def test_report_without_bottlenecks(self, monitor, clock):
        """Test a fast operation reports duration and no bottlenecks."""
        report = run_operation(monitor, clock, "generate_text-1", 0.25)

        assert report.duration == pytest.approx(250)
        assert report.memory_used == 0
        assert report.throughput == 0
        assert report.bottlenecks == []

    def test_slow_operation(self, monitor, clock):
        """Test durations over five seconds are flagged."""
        report = run_operation(monitor, clock, "generate_text-1", 6)

        assert "Slow operation detected" in report.bottlenecks
        assert report.recommendations

    def test_high_memory(self, monitor, clock, memory):
        """Test memory growth over 50MB is flagged."""
        monitor.start("op")
        memory.rss += 60 * 1024 * 1024
        report = monitor.end("op")

        assert report.memory_used == 60 * 1024 * 1024
        assert "High memory usage" in report.bottlenecks

    def test_throughput(self, monitor, clock):
        """Test throughput is computed from token metadata and low rates are flagged."""
        fast = run_operation(monitor, clock, "fast", 1, {"tokens": 500})
        slow = run_operation(monitor, clock, "slow", 1, {"tokens": 50})

        assert fast.throughput == pytest.approx(500)
        assert "Low throughput" not in fast.bottlenecks
        assert slow.throughput == pytest.approx(50)
        assert "Low throughput" in slow.bottlenecks

    def test_history_trimming(self, monitor, clock):
        """Test the 1001st report trims history to the newest 500."""
        for i in range(1001):
            run_operation(monitor, clock, f"op-{i}", 0.001)

        history = monitor.history
        assert len(history) == 500
        assert history[0].operation_id == "op-501"
        assert history[-1].operation_id == "op-1000"

    def test_average_metrics_filter(self, monitor, clock):
        """Test averages can be restricted to matching operation ids."""
        run_operation(monitor, clock, "generate_text-a", 1)
        run_operation(monitor, clock, "generate_text-b", 3)
        run_operation(monitor, clock, "generate_stream-a", 10)

        text = monitor.average_metrics("generate_text")
        assert text.avg_duration == pytest.approx(2000)
        assert text.samples == 2
        assert monitor.average_metrics().samples == 3
        assert monitor.average_metrics("nothing").avg_duration == 0

    def test_measure_context(self, monitor, clock):
        """Test the measure block records a report even when it raises."""
        with pytest.raises(RuntimeError):
            with monitor.measure("failing"):
                clock.now += 0.5
                raise RuntimeError("boom")

        assert monitor.history[-1].operation_id == "failing"
        assert monitor.history[-1].duration == pytest.approx(500)


class TestPerformanceTrend:
    """Test suite for trend analysis."""

    def test_insufficient_data(self, monitor, clock):
        """Test fewer than two windows of data is reported as stable."""
        for i in range(5):
            run_operation(monitor, clock, f"op-{i}", 1)

        trend = monitor.trend(window_size=3)
        assert trend.trend == "stable"
        assert "Insufficient" in trend.details

    @pytest.mark.parametrize(
        "previous,recent,expected",
        [(1.0, 0.5, "improving"), (1.0, 2.0, "degrading"), (1.0, 1.05, "stable")],
    )
    def test_trend_direction(self, monitor, clock, previous, recent, expected):
        """Test mean duration changes beyond ten percent set the trend."""
        for i in range(4):
            run_operation(monitor, clock, f"old-{i}", previous)
        for i in range(4):
            run_operation(monitor, clock, f"new-{i}", recent)

        assert monitor.trend(window_size=4).trend == expected

    @pytest.mark.parametrize("window_size", [0, -1])
    def test_invalid_window(self, monitor, window_size):
        """Test a window smaller than one is rejected."""
        with pytest.raises(ValueError, match="window_size must be >= 1"):
            monitor.trend(window_size=window_size)
