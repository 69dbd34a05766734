"""Tests for MetricsCollector and the resource samplers."""

from datetime import timedelta
from unittest.mock import patch

from daycycle.constants import OperationStatus, OperationType
from daycycle.monitoring import (
    MetricsCollector,
    PsutilResourceSampler,
    ResourceUsage,
    StaticResourceSampler,
)
from daycycle.utils.datetime import utc_now


class TestMetricsCollector:
    """Operation records and summaries."""

    def test_empty_summary(self):
        summary = MetricsCollector().get_metrics_summary()

        assert summary["total_operations"] == 0
        assert summary["success_rate"] == 1.0

    def test_summary_groups_by_type_and_environment(self):
        collector = MetricsCollector()
        collector.record_operation("SOD-1", OperationType.SOD, "PROD", OperationStatus.COMPLETED, 60.0, 4)
        collector.record_operation("SOD-2", OperationType.SOD, "UAT", OperationStatus.FAILED, 30.0, 2)
        collector.record_operation("EOD-1", OperationType.EOD, "PROD", "Completed", 90.0, 4)

        summary = collector.get_metrics_summary()

        assert summary["total_operations"] == 3
        assert summary["completed_operations"] == 2
        assert summary["failed_operations"] == 1
        assert summary["success_rate"] == 2 / 3
        assert summary["average_duration_seconds"] == 60.0
        assert summary["operations_by_type"] == {"SOD": 2, "EOD": 1}
        assert summary["operations_by_environment"] == {"PROD": 2, "UAT": 1}

    def test_record_stores_enum_values(self):
        record = MetricsCollector().record_operation(
            "SOD-1", OperationType.SOD, "PROD", OperationStatus.CANCELLED, 5.0
        )

        assert record.operation_type == "SOD"
        assert record.status == "Cancelled"
        assert record.to_dict()["operation_code"] == "SOD-1"

    def test_clear_old_records(self):
        collector = MetricsCollector()
        old = collector.record_operation("SOD-OLD", "SOD", "PROD", "Completed", 1.0)
        old.timestamp = utc_now() - timedelta(days=30)
        collector.record_operation("SOD-NEW", "SOD", "PROD", "Completed", 1.0)

        assert collector.clear_old_records(retention_days=7) == 1
        assert collector.clear_old_records(retention_days=7) == 0
        assert collector.get_metrics_summary(timedelta(days=365))["total_operations"] == 1

    def test_records_are_bounded(self):
        collector = MetricsCollector(max_records=2)
        for code in ("SOD-1", "SOD-2", "SOD-3"):
            collector.record_operation(code, "SOD", "PROD", "Completed", 1.0)

        summary = collector.get_metrics_summary()

        assert summary["total_operations"] == 2

    def test_step_and_rollback_recording_does_not_raise(self):
        collector = MetricsCollector(active_count_provider=lambda: 2)
        collector.record_step(OperationType.SOD, "Start", "Completed", 1.5, retry_count=1)
        collector.record_step(OperationType.SOD, None, "Skipped", None)
        collector.record_resource_usage(ResourceUsage(cpu_percent=95.0))

        assert collector.active_count_provider() == 2


class TestResourceSamplers:

    def test_static_sampler_returns_copies(self):
        sampler = StaticResourceSampler(ResourceUsage(cpu_percent=150.0))

        first = sampler.sample()
        first.memory_percent = 10.0

        assert first.cpu_percent == 100.0
        assert sampler.sample().memory_percent == 0.0

    def test_psutil_sampler_reads_host(self):
        sampler = PsutilResourceSampler(network_capacity_mbps=8.0)

        with patch("daycycle.monitoring.resources.psutil") as fake_psutil, \
                patch("daycycle.monitoring.resources.time.monotonic", side_effect=[100.0, 101.0]):
            fake_psutil.cpu_percent.return_value = 42.0
            fake_psutil.virtual_memory.return_value.percent = 63.0
            fake_psutil.disk_usage.return_value.percent = 71.5
            fake_psutil.net_io_counters.return_value.bytes_sent = 0
            fake_psutil.net_io_counters.return_value.bytes_recv = 0
            first = sampler.sample()
            fake_psutil.net_io_counters.return_value.bytes_recv = 500_000
            second = sampler.sample()

        assert first.cpu_percent == 42.0
        assert first.memory_percent == 63.0
        assert first.disk_percent == 71.5
        assert first.network_percent == 0.0
        # 500 kB in one second is 4 Mbit/s on an 8 Mbit/s link
        assert second.network_percent == 50.0
