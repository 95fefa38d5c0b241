"""Tests for the sync plugins."""

from unittest.mock import MagicMock, patch

import pytest

from plugsync.models import UserRecord
from plugsync.plugins import (
    FluentdAuditPlugin,
    PrometheusMetricsPlugin,
    SyncContext,
    SyncHook,
)
from plugsync.sync import SyncSummary


def get_metric_value(metric, labels, suffix=""):
    """Helper to get current value of a metric with specific labels."""
    for sample in metric.collect()[0].samples:
        if sample.labels == labels and sample.name.endswith(suffix):
            return sample.value
    return None


def make_context(direction="download", data=None, records=None, result=None, dry_run=False):
    manager = MagicMock()
    manager.options.dry_run = dry_run
    manager.registry.request_count = 7
    return SyncContext(
        manager=manager,
        direction=direction,
        data=data or {},
        records=records,
        result=result,
    )


@pytest.mark.unit
class TestPrometheusMetricsPlugin:
    """Test the Prometheus metrics plugin."""

    def test_hooks(self):
        assert set(PrometheusMetricsPlugin().hooks()) == set(SyncHook)

    async def test_counts_outcomes(self):
        plugin = PrometheusMetricsPlugin()
        accepted = plugin.plugsync_events_accepted_total
        skipped = plugin.plugsync_events_skipped_total
        failed = plugin.plugsync_events_failed_total
        accepted_before = get_metric_value(accepted, {"direction": "download"}, "_total") or 0
        skipped_before = (
            get_metric_value(skipped, {"direction": "download", "verdict": "stale"}, "_total") or 0
        )
        failed_before = (
            get_metric_value(
                failed, {"direction": "download", "error_type": "MalformedEvent"}, "_total"
            )
            or 0
        )

        await plugin.after_event_accepted(make_context())
        await plugin.after_event_skipped(make_context(data={"verdict": "stale"}))
        await plugin.after_event_failed(make_context(data={"error": "MalformedEvent"}))

        assert get_metric_value(accepted, {"direction": "download"}, "_total") == accepted_before + 1
        assert (
            get_metric_value(skipped, {"direction": "download", "verdict": "stale"}, "_total")
            == skipped_before + 1
        )
        assert (
            get_metric_value(
                failed, {"direction": "download", "error_type": "MalformedEvent"}, "_total"
            )
            == failed_before + 1
        )

    async def test_upload_batches_count_each_event(self):
        plugin = PrometheusMetricsPlugin()
        metric = plugin.plugsync_events_accepted_total
        before = get_metric_value(metric, {"direction": "upload"}, "_total") or 0

        await plugin.after_event_accepted(make_context("upload", data={"count": 3}))

        assert get_metric_value(metric, {"direction": "upload"}, "_total") == before + 3

    async def test_run_duration(self):
        plugin = PrometheusMetricsPlugin()
        histogram = plugin.plugsync_run_seconds
        before = get_metric_value(histogram, {"direction": "download"}, "_count") or 0

        await plugin.before_run(make_context())
        assert get_metric_value(plugin.plugsync_up, {}) == 1.0
        await plugin.after_run(make_context())

        assert get_metric_value(histogram, {"direction": "download"}, "_count") == before + 1
        assert get_metric_value(plugin.plugsync_up, {}) == 0.0
        assert get_metric_value(plugin.plugsync_registry_requests, {}) == 7
        assert get_metric_value(plugin.plugsync_last_run_ts, {"direction": "download"}) > 0


@pytest.mark.unit
class TestFluentdAuditPlugin:
    """Test the Fluentd audit plugin."""

    async def test_initialize_creates_sender(self):
        with patch("fluent.sender.FluentSender") as sender_class:
            plugin = FluentdAuditPlugin(tag_prefix="sync", host="fluentd", port=24225)
            await plugin.initialize(MagicMock())

        sender_class.assert_called_once()
        args, kwargs = sender_class.call_args
        assert args == ("sync",)
        assert kwargs["host"] == "fluentd"
        assert kwargs["port"] == 24225
        assert plugin.sender is sender_class.return_value

    async def test_accepted_event(self):
        plugin = FluentdAuditPlugin()
        plugin.sender = MagicMock()
        record = UserRecord(record_name="user-1")

        await plugin.log_accepted(
            make_context(data={"event_id": "e1"}, records=[record], dry_run=True)
        )

        tag, data = plugin.sender.emit.call_args.args
        assert tag == "accepted"
        assert data["type"] == "sync"
        assert data["dir"] == "download"
        assert data["dry_run"] is True
        assert data["data"] == {"event_id": "e1"}
        assert data["records"] == [{"record_name": "user-1"}]

    async def test_run_summary(self):
        plugin = FluentdAuditPlugin()
        plugin.sender = MagicMock()
        summary = SyncSummary(direction="upload", accepted=2)

        await plugin.log_run(make_context("upload", data=summary.to_dict(), result=summary))

        tag, data = plugin.sender.emit.call_args.args
        assert tag == "run"
        assert data["data"]["accepted"] == 2

    async def test_without_sender_nothing_is_sent(self):
        plugin = FluentdAuditPlugin()

        await plugin.log_failed(make_context(data={"error": "MalformedEvent"}))

    async def test_send_errors_are_logged(self):
        plugin = FluentdAuditPlugin()
        plugin.sender = MagicMock()
        plugin.sender.emit.side_effect = OSError("connection refused")

        await plugin.log_skipped(make_context(data={"verdict": "stale"}))

        plugin.sender.emit.assert_called_once()

    async def test_cleanup_closes_sender(self):
        plugin = FluentdAuditPlugin()
        plugin.sender = MagicMock()

        await plugin.cleanup(MagicMock())

        plugin.sender.close.assert_called_once()
