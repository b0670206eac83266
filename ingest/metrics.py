"""
Prometheus metrics for the telemetry ingest service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the ingest service.
    """

    def __init__(self, service_name: str = "telemetry-ingest", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics
        self.events_accepted_total = Counter(
            "ingest_events_accepted_total",
            "Total events persisted",
            ["endpoint"],
            registry=self.registry,
        )

        self.events_rejected_total = Counter(
            "ingest_events_rejected_total",
            "Total requests rejected, by error code",
            ["code"],
            registry=self.registry,
        )

        self.batch_size = Histogram(
            "ingest_batch_size",
            "Number of events per accepted batch",
            buckets=(1, 5, 10, 50, 100, 250, 500, 1000),
            registry=self.registry,
        )

        # System Metrics
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self.update_system_metrics()

    def update_system_metrics(self):
        """Update process metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())
            self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)
            # num_fds() is not available on all platforms
            if hasattr(process, "num_fds"):
                self.process_open_fds.labels(service=self.service_name).set(process.num_fds())
        except psutil.Error:
            pass

    def record_accepted(self, endpoint: str, count: int = 1):
        """Record persisted events."""
        self.events_accepted_total.labels(endpoint=endpoint).inc(count)
        if endpoint == "batch":
            self.batch_size.observe(count)

    def record_rejected(self, code: str):
        """Record a rejected request."""
        self.events_rejected_total.labels(code=code).inc()
