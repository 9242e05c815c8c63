"""Per-platform resource usage sampling and selection of the right sampler."""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime
from typing import Optional

import psutil

from .darwin_monitor import DarwinResourceMonitor
from .limits import InternalError, ResourceUsage

_MB = 1024 * 1024
_FILETIME_TICKS_PER_SECOND = 10_000_000.0


def file_time_to_seconds(high: int, low: int) -> float:
    """Convert a FILETIME split into high and low 32-bit words to seconds."""
    total = (high << 32) | low
    return total / _FILETIME_TICKS_PER_SECOND


class GenericResourceMonitor:
    """Fallback sampler that reports an all-zero usage snapshot."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def get_process_usage(self, pid: int) -> ResourceUsage:
        """Return a snapshot with the current time and no measurements."""
        usage = ResourceUsage(timestamp=datetime.now())
        self.logger.debug("Generic resource monitor - basic usage data for PID %d", pid)
        return usage

    def supports_real_time_monitoring(self) -> bool:
        """The generic sampler measures nothing, so it is not real time."""
        return False


class LinuxResourceMonitor:
    """Linux sampler; currently reports what the generic sampler reports."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def get_process_usage(self, pid: int) -> ResourceUsage:
        """Return a usage snapshot for ``pid``."""
        self.logger.debug(
            "Linux resource monitoring for PID %d - using generic implementation for now", pid
        )
        return GenericResourceMonitor(self.logger).get_process_usage(pid)

    def supports_real_time_monitoring(self) -> bool:
        """The /proc filesystem can be sampled at any time."""
        return True


class WindowsResourceMonitor:
    """Samples working set, pagefile usage, CPU time and handle count."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def get_process_usage(self, pid: int) -> ResourceUsage:
        """Collect a snapshot; raises InternalError if the process cannot be opened."""
        try:
            proc = psutil.Process(pid)
        except (psutil.Error, ValueError) as exc:
            raise InternalError(f"failed to open process {pid}", exc) from exc

        usage = ResourceUsage(timestamp=datetime.now())
        probes = (
            (self._read_memory, "memory usage"),
            (self._read_cpu, "CPU usage"),
            (self._read_handle_count, "handle count"),
            (self._read_io, "I/O usage"),
        )
        for probe, what in probes:
            try:
                probe(proc, usage)
            except (psutil.Error, OSError) as exc:
                self.logger.debug("Failed to get %s for PID %d: %s", what, pid, exc)

        self.logger.debug(
            "Windows resource usage for PID %d: Memory RSS: %dMB, CPU: %.1f%%, Handles: %d",
            pid,
            usage.memory_rss // _MB,
            usage.cpu_percent,
            usage.open_file_descriptors,
        )
        return usage

    def supports_real_time_monitoring(self) -> bool:
        """Process counters can be read at any time."""
        return True

    @staticmethod
    def _read_memory(proc: psutil.Process, usage: ResourceUsage) -> None:
        mem = proc.memory_info()
        usage.memory_rss = int(mem.rss)
        usage.memory_virtual = int(getattr(mem, "pagefile", mem.vms))
        usage.memory_percent = 0.0

    @staticmethod
    def _read_cpu(proc: psutil.Process, usage: ResourceUsage) -> None:
        times = proc.cpu_times()
        usage.cpu_time = times.user + times.system
        # A percentage needs two samples; see WindowsPerformanceMonitor.
        usage.cpu_percent = 0.0

    @staticmethod
    def _read_handle_count(proc: psutil.Process, usage: ResourceUsage) -> None:
        counter = getattr(proc, "num_handles", None) or getattr(proc, "num_fds")
        usage.open_file_descriptors = int(counter())

    @staticmethod
    def _read_io(proc: psutil.Process, usage: ResourceUsage) -> None:
        usage.io_read_bytes = 0
        usage.io_write_bytes = 0
        usage.io_read_ops = 0
        usage.io_write_ops = 0


class WindowsPerformanceMonitor(WindowsResourceMonitor):
    """Adds a CPU percentage computed from successive CPU time samples."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.last_cpu_time = 0.0
        self.last_measurement = time.monotonic()

    def get_process_usage(self, pid: int) -> ResourceUsage:
        """Collect a snapshot with CPU percentage clamped to 0..100."""
        usage = super().get_process_usage(pid)

        now = time.monotonic()
        elapsed = now - self.last_measurement
        if elapsed > 0:
            percent = (usage.cpu_time - self.last_cpu_time) / elapsed * 100
            usage.cpu_percent = min(max(percent, 0.0), 100.0)

        self.last_cpu_time = usage.cpu_time
        self.last_measurement = now
        return usage


def new_platform_resource_monitor(logger: Optional[logging.Logger] = None):
    """Return the sampler best suited to the running platform."""
    logger = logger or logging.getLogger(__name__)
    platform = sys.platform
    if platform == "darwin":
        return DarwinResourceMonitor(logger)
    if platform.startswith("linux"):
        return LinuxResourceMonitor(logger)
    if platform == "win32":
        return WindowsPerformanceMonitor(logger)

    logger.warning(
        "Resource monitoring not optimized for platform: %s, using generic implementation",
        platform,
    )
    return GenericResourceMonitor(logger)