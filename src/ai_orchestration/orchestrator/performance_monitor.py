"""Operation timing, memory tracking and trend analysis."""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import psutil
import structlog

logger = structlog.get_logger(__name__)

SLOW_OPERATION_MS = 5000
HIGH_MEMORY_BYTES = 50 * 1024 * 1024
LOW_THROUGHPUT_TPS = 100


def process_memory() -> int:
    """Resident set size of the current process in bytes."""
    return psutil.Process().memory_info().rss


@dataclass
class PerformanceSample:
    """An operation being measured."""

    operation_id: str
    start_time: float
    memory_start: int
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PerformanceReport:
    """Finished measurement with detected bottlenecks."""

    operation_id: str
    duration: float
    memory_used: int
    throughput: float
    bottlenecks: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class AverageMetrics:
    avg_duration: float = 0.0
    avg_memory: float = 0.0
    avg_throughput: float = 0.0
    samples: int = 0


@dataclass
class TrendReport:
    trend: str
    details: str


class PerformanceMonitor:
    """Measures operations and keeps a bounded history of reports."""

    def __init__(
        self,
        clock: Callable[[], float] = time.perf_counter,
        memory_probe: Callable[[], int] = process_memory,
        max_history: int = 1000,
        trim_to: int = 500,
    ):
        self._clock = clock
        self._memory_probe = memory_probe
        self.max_history = max_history
        self.trim_to = trim_to
        self._active: Dict[str, PerformanceSample] = {}
        self._history: List[PerformanceReport] = []

    def start(self, operation_id: str, metadata: Optional[Dict[str, Any]] = None):
        self._active[operation_id] = PerformanceSample(
            operation_id=operation_id,
            start_time=self._clock(),
            memory_start=self._memory_probe(),
            metadata=dict(metadata or {}),
        )

    def end(self, operation_id: str) -> Optional[PerformanceReport]:
        """Close a measurement; unknown ids yield ``None``."""
        sample = self._active.pop(operation_id, None)
        if sample is None:
            return None

        duration = (self._clock() - sample.start_time) * 1000
        memory_used = self._memory_probe() - sample.memory_start
        tokens = sample.metadata.get("tokens")
        throughput = tokens / duration * 1000 if tokens and duration > 0 else 0.0

        report = PerformanceReport(
            operation_id=operation_id,
            duration=duration,
            memory_used=memory_used,
            throughput=throughput,
        )

        if duration > SLOW_OPERATION_MS:
            report.bottlenecks.append("Slow operation detected")
            report.recommendations.append("Consider using streaming or breaking into smaller operations")
        if memory_used > HIGH_MEMORY_BYTES:
            report.bottlenecks.append("High memory usage")
            report.recommendations.append("Optimize data structures or process in chunks")
        if tokens and throughput < LOW_THROUGHPUT_TPS:
            report.bottlenecks.append("Low throughput")
            report.recommendations.append("Check network latency or consider using a faster model")

        if report.bottlenecks:
            logger.info(
                "Performance bottleneck detected",
                operation_id=operation_id,
                duration_ms=round(duration, 2),
                bottlenecks=report.bottlenecks,
            )

        self._history.append(report)
        if len(self._history) > self.max_history:
            self._history = self._history[-self.trim_to :]

        return report

    @contextmanager
    def measure(self, operation_id: str, metadata: Optional[Dict[str, Any]] = None) -> Iterator[None]:
        """Measure the enclosed block, also when it raises."""
        self.start(operation_id, metadata)
        try:
            yield
        finally:
            self.end(operation_id)

    @property
    def history(self) -> List[PerformanceReport]:
        return list(self._history)

    def average_metrics(self, filter_substring: Optional[str] = None) -> AverageMetrics:
        """Averages over reports whose operation id contains ``filter_substring``."""
        reports = [
            r for r in self._history if filter_substring is None or filter_substring in r.operation_id
        ]
        if not reports:
            return AverageMetrics()

        count = len(reports)
        return AverageMetrics(
            avg_duration=sum(r.duration for r in reports) / count,
            avg_memory=sum(r.memory_used for r in reports) / count,
            avg_throughput=sum(r.throughput for r in reports) / count,
            samples=count,
        )

    def trend(self, window_size: int = 50) -> TrendReport:
        """Compare mean duration of the last window against the one before it."""
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        if len(self._history) < window_size * 2:
            return TrendReport(trend="stable", details="Insufficient data for trend analysis")

        recent = self._history[-window_size:]
        previous = self._history[-window_size * 2 : -window_size]
        recent_avg = sum(r.duration for r in recent) / window_size
        previous_avg = sum(r.duration for r in previous) / window_size

        if previous_avg == 0:
            return TrendReport(trend="stable", details="Performance is stable")

        change = (recent_avg - previous_avg) / previous_avg * 100
        if change < -10:
            return TrendReport(trend="improving", details=f"Performance improved by {abs(change):.1f}%")
        if change > 10:
            return TrendReport(trend="degrading", details=f"Performance degraded by {change:.1f}%")
        return TrendReport(trend="stable", details="Performance is stable")
