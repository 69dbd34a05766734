"""Host resource samplers."""

import time
from typing import Optional, Tuple

import psutil

from daycycle.monitoring.types import ResourceUsage


class PsutilResourceSampler:
    """Reads host utilisation through psutil.

    CPU is measured since the previous call (the first call reports 0).
    Network utilisation is the byte rate since the previous call relative to
    ``network_capacity_mbps``.

    Attributes:
        disk_path: Mount point whose usage is reported
        network_capacity_mbps: Link capacity treated as 100%
    """

    def __init__(self, disk_path: str = "/", network_capacity_mbps: float = 1000.0):
        self.disk_path = disk_path
        self.network_capacity_mbps = network_capacity_mbps
        self._last_network: Optional[Tuple[float, int]] = None

    def sample(self) -> ResourceUsage:
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage(self.disk_path)
        return ResourceUsage(
            cpu_percent=psutil.cpu_percent(interval=None),
            memory_percent=memory.percent,
            disk_percent=disk.percent,
            network_percent=self._network_percent(),
        )

    def _network_percent(self) -> float:
        counters = psutil.net_io_counters()
        now = time.monotonic()
        total_bytes = counters.bytes_sent + counters.bytes_recv
        previous, self._last_network = self._last_network, (now, total_bytes)
        if previous is None or self.network_capacity_mbps <= 0:
            return 0.0

        elapsed = now - previous[0]
        if elapsed <= 0:
            return 0.0
        megabits_per_second = (total_bytes - previous[1]) * 8 / elapsed / 1_000_000
        return megabits_per_second / self.network_capacity_mbps * 100


class StaticResourceSampler:
    """Returns a fixed sample; used where no host metrics are available."""

    def __init__(self, usage: Optional[ResourceUsage] = None):
        self.usage = usage or ResourceUsage()

    def sample(self) -> ResourceUsage:
        return self.usage.model_copy()
