"""Coordination of limit enforcement, usage monitoring and violation handling."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable, Optional

from .enforcer import ResourceEnforcer
from .limits import (
    InternalError,
    ResourceLimits,
    ResourceLimitType,
    ResourceMonitoringConfig,
    ResourcePolicy,
    ResourceUsage,
    ResourceViolation,
    ValidationError,
    ViolationSeverity,
)
from .monitor import ResourceMonitor
from .violations import ResourceViolationChecker

ViolationCallback = Callable[[ResourcePolicy, ResourceViolation], None]

_DEFAULT_INTERVAL = timedelta(seconds=30)
_MAX_CHECK_INTERVAL = timedelta(seconds=10)
_MB = 1024 * 1024


class ResourceLimitManager:
    """Applies limits to one process, watches its usage and reports violations."""

    def __init__(
        self,
        pid: int,
        limits: Optional[ResourceLimits],
        logger: Optional[logging.Logger] = None,
        *,
        monitor=None,
        enforcer=None,
        violation_checker=None,
    ):
        self.pid = pid
        self.limits = limits
        self.logger = logger or logging.getLogger(__name__)

        monitoring_config = limits.monitoring if limits is not None else None
        if monitoring_config is None:
            monitoring_config = ResourceMonitoringConfig.default()

        self.check_interval = monitoring_config.interval or _DEFAULT_INTERVAL

        self.monitor = monitor or ResourceMonitor(pid, monitoring_config, self.logger)
        self.enforcer = enforcer or ResourceEnforcer(self.logger)
        self.violation_checker = violation_checker or ResourceViolationChecker(self.logger)

        self._lock = threading.RLock()
        self._violations: list[ResourceViolation] = []
        self._violation_callback: Optional[ViolationCallback] = None
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        """Whether limit management is active."""
        with self._lock:
            return self._thread is not None

    def start(self) -> None:
        """Apply the limits and begin monitoring and violation checking."""
        with self._lock:
            if self._thread is not None:
                raise ValidationError(
                    "resource limit manager is already running"
                ).with_context("pid", self.pid)

            if self.limits is None:
                self.logger.info("No resource limits configured for PID %d", self.pid)
                return

            self.logger.info("Starting resource limit management for PID %d", self.pid)

            try:
                self.enforcer.apply_limits(self.pid, self.limits)
            except Exception as exc:
                # Monitoring can still work without every limit in place.
                self.logger.warning(
                    "Failed to apply some resource limits to PID %d: %s", self.pid, exc
                )

            try:
                self.monitor.start()
            except Exception as exc:
                self.logger.error(
                    "Failed to start resource monitoring for PID %d: %s", self.pid, exc
                )
                raise InternalError("failed to start resource monitoring", exc) from exc

            self.monitor.set_usage_callback(self._on_usage_update)

            interval = min(self.check_interval, _MAX_CHECK_INTERVAL)
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event, interval.total_seconds()),
                name=f"resource-limits-{self.pid}",
                daemon=True,
            )
            self._thread.start()

            self.logger.info("Resource limit management started for PID %d", self.pid)

    def stop(self) -> None:
        """Stop monitoring and wait for the checking thread to finish."""
        with self._lock:
            self.logger.info("Stopping resource limit management for PID %d", self.pid)
            if self._thread is None:
                self.logger.info(
                    "Resource limit management not running for PID %d", self.pid
                )
                return
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None

        stop_event.set()
        self.monitor.stop()
        if thread is not threading.current_thread():
            thread.join()
        self.logger.info("Resource limit management stopped for PID %d", self.pid)

    def get_violations(self) -> list[ResourceViolation]:
        """Violations found by the most recent check."""
        with self._lock:
            return list(self._violations)

    def set_violation_callback(self, callback: Optional[ViolationCallback]) -> None:
        """Register the function called for critical violations with a policy."""
        with self._lock:
            self._violation_callback = callback

    def check_violations(self) -> None:
        """Sample usage now, record the violations found and dispatch each one."""
        if self.limits is None:
            return

        try:
            usage = self.monitor.get_current_usage()
        except Exception as exc:
            self.logger.debug(
                "Failed to get current usage for violation check on PID %d: %s",
                self.pid,
                exc,
            )
            return

        violations = self.violation_checker.check_violations(usage, self.limits)
        with self._lock:
            self._violations = list(violations)

        for violation in violations:
            self.dispatch_violation(violation)

    def dispatch_violation(self, violation: ResourceViolation) -> Optional[threading.Thread]:
        """Hand a critical violation to the callback on its own thread.

        Returns the thread running the callback, or None when nothing was dispatched.
        """
        with self._lock:
            callback = self._violation_callback

        self.logger.warning(
            "Resource violation detected for process with PID %d: %s, severity: %s",
            self.pid,
            violation.message,
            violation.severity.value,
        )

        if violation.severity != ViolationSeverity.CRITICAL:
            return None

        policy = self.policy_for(violation.limit_type)
        if policy is None:
            self.logger.warning(
                "Invalid policy for resource limit type %s on PID %d",
                violation.limit_type.value,
                self.pid,
            )
            return None

        if callback is None:
            self.logger.warning(
                "No violation callback set for PID %d; violation not handled", self.pid
            )
            return None

        thread = threading.Thread(
            target=callback,
            args=(policy, violation),
            name=f"resource-violation-{self.pid}",
            daemon=True,
        )
        thread.start()
        return thread

    def policy_for(self, limit_type: ResourceLimitType) -> Optional[ResourcePolicy]:
        """The configured policy for a kind of limit, or None if there is none."""
        limits = self.limits
        if limits is None:
            return None
        if limit_type == ResourceLimitType.MEMORY:
            return limits.memory.policy if limits.memory is not None else None
        if limit_type == ResourceLimitType.CPU:
            return limits.cpu.policy if limits.cpu is not None else None
        if limit_type == ResourceLimitType.PROCESS:
            return limits.process.policy if limits.process is not None else None
        self.logger.warning("Unknown resource limit type: %s", limit_type.value)
        return None

    def _on_usage_update(self, usage: ResourceUsage) -> None:
        self.logger.debug(
            "Resource usage update for PID %d: Memory RSS: %dMB, CPU: %.1f%%",
            self.pid,
            usage.memory_rss // _MB,
            usage.cpu_percent,
        )

    def _run(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.wait(interval):
            self.check_violations()
        self.logger.debug("Resource violation check loop stopped for PID %d", self.pid)