"""Plugin framework for extending CheckInsSyncManager behavior."""

from .base import SyncContext, SyncHook, SyncPlugin
from .fluentd_audit import FluentdAuditPlugin
from .prometheus_metrics import PrometheusMetricsPlugin

__all__ = [
    "FluentdAuditPlugin",
    "PrometheusMetricsPlugin",
    "SyncContext",
    "SyncHook",
    "SyncPlugin",
]
