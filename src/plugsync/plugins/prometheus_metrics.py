"""Plugin for Prometheus metrics instrumentation."""

import time

from prometheus_client import Counter, Gauge, Histogram

from .base import SyncContext, SyncHook, SyncPlugin


class PrometheusMetricsPlugin(SyncPlugin):
    """
    Exposes Prometheus metrics for check-in sync monitoring.

    This plugin tracks:
    - Events accepted, skipped (by verdict) and failed per direction
    - Run duration and the time of the last finished run
    - Requests made to the chargepoint registry

    Metrics are exposed via the standard prometheus_client registry.
    Use prometheus_client.start_http_server() or generate_latest() to expose /metrics.
    """

    # Class-level metrics (shared across all plugin instances)

    plugsync_up = Gauge(
        "plugsync_up",
        "1 while a sync run is in progress, 0 otherwise",
    )

    plugsync_run_seconds = Histogram(
        "plugsync_run_seconds",
        "Duration of a sync run in seconds",
        labelnames=["direction"],
    )

    plugsync_last_run_ts = Gauge(
        "plugsync_last_run_ts",
        "Unix timestamp of the last finished sync run",
        labelnames=["direction"],
    )

    plugsync_events_accepted_total = Counter(
        "plugsync_events_accepted_total",
        "Total number of accepted events",
        labelnames=["direction"],
    )

    plugsync_events_skipped_total = Counter(
        "plugsync_events_skipped_total",
        "Total number of events skipped by reconciliation",
        labelnames=["direction", "verdict"],
    )

    plugsync_events_failed_total = Counter(
        "plugsync_events_failed_total",
        "Total number of events that could not be processed",
        labelnames=["direction", "error_type"],
    )

    plugsync_registry_requests = Gauge(
        "plugsync_registry_requests",
        "Requests made to the chargepoint registry by the current manager",
    )

    def __init__(self):
        """Initialize the Prometheus metrics plugin."""
        super().__init__()
        self._run_start_times: dict[str, float] = {}

    def hooks(self) -> dict[SyncHook, str]:
        return {
            SyncHook.BEFORE_RUN: "before_run",
            SyncHook.AFTER_RUN: "after_run",
            SyncHook.AFTER_EVENT_ACCEPTED: "after_event_accepted",
            SyncHook.AFTER_EVENT_SKIPPED: "after_event_skipped",
            SyncHook.AFTER_EVENT_FAILED: "after_event_failed",
        }

    async def before_run(self, context: SyncContext):
        """Record run start time for duration tracking."""
        self._run_start_times[context.direction] = time.time()
        self.plugsync_up.set(1)

    async def after_run(self, context: SyncContext):
        """Record run duration and registry usage."""
        start = self._run_start_times.pop(context.direction, None)
        if start is not None:
            self.plugsync_run_seconds.labels(direction=context.direction).observe(
                time.time() - start
            )
        self.plugsync_last_run_ts.labels(direction=context.direction).set(time.time())
        self.plugsync_registry_requests.set(context.manager.registry.request_count)
        self.plugsync_up.set(0)

    async def after_event_accepted(self, context: SyncContext):
        # Uploads report one hook per posted batch
        count = context.data.get("count", 1)
        if count:
            self.plugsync_events_accepted_total.labels(direction=context.direction).inc(count)

    async def after_event_skipped(self, context: SyncContext):
        self.plugsync_events_skipped_total.labels(
            direction=context.direction,
            verdict=context.data.get("verdict", "unknown"),
        ).inc()

    async def after_event_failed(self, context: SyncContext):
        self.plugsync_events_failed_total.labels(
            direction=context.direction,
            error_type=context.data.get("error", "unknown"),
        ).inc()
