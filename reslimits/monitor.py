"""Periodic sampling of a process's resource usage with bounded history."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Optional

import psutil

from .limits import (
    InternalError,
    ProcessError,
    ResourceMonitoringConfig,
    ResourceUsage,
    ValidationError,
)
from .platform import new_platform_resource_monitor

UsageCallback = Callable[[ResourceUsage], None]

_DEFAULT_INTERVAL = timedelta(seconds=30)
_DEFAULT_RETENTION = timedelta(hours=24)
_MB = 1024 * 1024


def is_process_running(pid: int) -> bool:
    """Whether ``pid`` names a live, non-zombie process."""
    if pid <= 0:
        return False
    try:
        proc = psutil.Process(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except (psutil.Error, ValueError):
        return False


class ResourceMonitor:
    """Samples one process at a fixed interval and keeps recent history."""

    def __init__(
        self,
        pid: int,
        config: Optional[ResourceMonitoringConfig] = None,
        logger: Optional[logging.Logger] = None,
        platform_monitor=None,
    ):
        self.pid = pid
        self.logger = logger or logging.getLogger(__name__)
        config = (
            dataclasses.replace(config) if config is not None
            else ResourceMonitoringConfig.default()
        )
        if not config.interval:
            config.interval = _DEFAULT_INTERVAL
        if not config.history_retention:
            config.history_retention = _DEFAULT_RETENTION
        self.config = config
        self.platform_monitor = platform_monitor or new_platform_resource_monitor(self.logger)

        self._lock = threading.RLock()
        self._usage_callback: Optional[UsageCallback] = None
        self._history: deque[ResourceUsage] = deque()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        """Whether the sampling thread is active."""
        with self._lock:
            return self._thread is not None

    def start(self) -> None:
        """Begin sampling in a background thread."""
        with self._lock:
            if self._thread is not None:
                raise ValidationError("resource monitor is already running").with_context(
                    "pid", self.pid
                )
            if not self.config.enabled:
                self.logger.info("Resource monitoring disabled for PID %d", self.pid)
                return
            if not is_process_running(self.pid):
                self.logger.info(
                    "Not running process PID %d for resource monitoring", self.pid
                )
                raise ProcessError("process is not running").with_context("pid", self.pid)

            self.logger.info(
                "Starting resource monitoring for PID %d, interval: %s",
                self.pid,
                self.config.interval,
            )
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event, self.config.interval.total_seconds()),
                name=f"resource-monitor-{self.pid}",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        """Stop sampling and wait for the background thread to finish."""
        with self._lock:
            self.logger.info("Stopping resource monitoring for PID %d", self.pid)
            if self._thread is None:
                self.logger.info("Resource monitoring not running for PID %d", self.pid)
                return
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        stop_event.set()
        if thread is not threading.current_thread():
            thread.join()
        self.logger.info("Resource monitoring stopped for PID %d", self.pid)

    def get_current_usage(self) -> ResourceUsage:
        """Take a usage sample now."""
        if not is_process_running(self.pid):
            raise ProcessError("process is not running").with_context("pid", self.pid)
        try:
            return self.platform_monitor.get_process_usage(self.pid)
        except Exception as exc:
            raise InternalError("failed to get resource usage", exc).with_context(
                "pid", self.pid
            ) from exc

    def set_usage_callback(self, callback: Optional[UsageCallback]) -> None:
        """Register a function called with every collected sample."""
        with self._lock:
            self._usage_callback = callback

    def collect_usage(self) -> None:
        """Take a sample, record it in history and notify the callback."""
        if not is_process_running(self.pid):
            self.logger.warning(
                "Failed to collect resource usage: process %d is not running", self.pid
            )
            return
        try:
            usage = self.platform_monitor.get_process_usage(self.pid)
        except Exception as exc:
            self.logger.error("Failed to collect resource usage for PID %d: %s", self.pid, exc)
            return

        self.logger.debug(
            "Resource usage for PID %d: Memory RSS: %dMB, CPU: %.1f%%, FDs: %d",
            self.pid,
            usage.memory_rss // _MB,
            usage.cpu_percent,
            usage.open_file_descriptors,
        )

        with self._lock:
            self._add_to_history(usage)
            callback = self._usage_callback
        if callback is not None:
            callback(usage)

    def get_usage_history(self, since: datetime) -> list[ResourceUsage]:
        """Samples taken strictly after ``since``, oldest first."""
        with self._lock:
            return [usage for usage in self._history if usage.timestamp > since]

    def _add_to_history(self, usage: ResourceUsage) -> None:
        self._history.append(usage)
        cutoff = datetime.now() - self.config.history_retention
        while self._history and self._history[0].timestamp < cutoff:
            self._history.popleft()

    def _run(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.wait(interval):
            self.collect_usage()
        self.logger.debug("Resource monitoring loop stopped for PID %d", self.pid)