"""Metrics collection and reporting with Prometheus integration."""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class MetricsCollector:
    """Prometheus metrics for queue, pool, retry and provider activity.

    Each collector owns its registry so that several orchestration contexts
    can live in one process.
    """

    def __init__(
        self,
        namespace: str = "ai_orchestration",
        registry: CollectorRegistry | None = None,
    ):
        """Initialize metrics collector."""
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        self._histograms: dict[str, Histogram] = {}

        self._init_default_metrics()

    def _init_default_metrics(self):
        """Initialize default orchestration metrics."""
        # Queue metrics
        self._gauges["queue_depth"] = Gauge(
            f"{self.namespace}_queue_depth",
            "Tasks waiting for dispatch",
            registry=self.registry,
        )

        self._gauges["queue_active"] = Gauge(
            f"{self.namespace}_queue_active_tasks",
            "Tasks currently dispatched",
            registry=self.registry,
        )

        # Provider request metrics
        self._counters["provider_requests"] = Counter(
            f"{self.namespace}_provider_requests_total",
            "Total provider requests",
            ["provider", "model", "operation", "status"],
            registry=self.registry,
        )

        self._histograms["provider_latency"] = Histogram(
            f"{self.namespace}_provider_latency_seconds",
            "Provider operation latency",
            ["provider", "operation"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self.registry,
        )

        # Retry metrics
        self._counters["retries"] = Counter(
            f"{self.namespace}_retries_total",
            "Retries scheduled after a failed attempt",
            ["provider"],
            registry=self.registry,
        )

        # Error metrics
        self._counters["errors"] = Counter(
            f"{self.namespace}_errors_total",
            "Classified errors",
            ["category", "provider"],
            registry=self.registry,
        )

        # Pool metrics
        self._gauges["pool_connections"] = Gauge(
            f"{self.namespace}_pool_connections",
            "Pooled connections per provider",
            ["provider", "state"],
            registry=self.registry,
        )

        self._counters["pool_evictions"] = Counter(
            f"{self.namespace}_pool_evictions_total",
            "Connections removed from the pool",
            ["provider", "reason"],
            registry=self.registry,
        )

    def increment_counter(
        self,
        name: str,
        value: float = 1.0,
        labels: dict[str, str] | None = None,
    ):
        """Increment a counter metric."""
        if name not in self._counters:
            return
        if labels:
            self._counters[name].labels(**labels).inc(value)
        else:
            self._counters[name].inc(value)

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ):
        """Set a gauge metric."""
        if name not in self._gauges:
            return
        if labels:
            self._gauges[name].labels(**labels).set(value)
        else:
            self._gauges[name].set(value)

    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ):
        """Observe a histogram value."""
        if name not in self._histograms:
            return
        if labels:
            self._histograms[name].labels(**labels).observe(value)
        else:
            self._histograms[name].observe(value)

    def record_queue(self, depth: int, active: int):
        """Record queue depth and active task count."""
        self.set_gauge("queue_depth", depth)
        self.set_gauge("queue_active", active)

    def record_provider_request(
        self,
        provider: str,
        model: str,
        operation: str,
        success: bool,
        latency: float | None = None,
    ):
        """Record a finished provider operation."""
        status = "success" if success else "failure"
        self.increment_counter(
            "provider_requests",
            labels={"provider": provider, "model": model, "operation": operation, "status": status},
        )
        if latency is not None:
            self.observe_histogram(
                "provider_latency",
                latency,
                labels={"provider": provider, "operation": operation},
            )

    def record_retry(self, provider: str):
        self.increment_counter("retries", labels={"provider": provider})

    def record_error(self, category: str, provider: str):
        """Record error metrics."""
        self.increment_counter("errors", labels={"category": category, "provider": provider})

    def record_pool(self, provider: str, in_use: int, available: int):
        self.set_gauge("pool_connections", in_use, labels={"provider": provider, "state": "in_use"})
        self.set_gauge("pool_connections", available, labels={"provider": provider, "state": "available"})

    def record_eviction(self, provider: str, reason: str):
        self.increment_counter("pool_evictions", labels={"provider": provider, "reason": reason})

    def get_sample(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Read the current value of a sample from this collector's registry."""
        return self.registry.get_sample_value(name, labels or {})

    def export_prometheus(self) -> bytes:
        """Export metrics in Prometheus format."""
        return generate_latest(self.registry)
