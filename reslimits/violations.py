"""Detection of resource limit violations from a usage snapshot."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from .limits import (
    CPULimits,
    IOLimits,
    MemoryLimits,
    ProcessLimits,
    ResourceLimits,
    ResourceLimitType,
    ResourceUsage,
    ResourceViolation,
    ViolationSeverity,
)

_NS_PER_SECOND = 10**9


def _fraction(value: int, size: int) -> str:
    whole, frac = divmod(value, size)
    if not frac:
        return str(whole)
    digits = str(frac).zfill(len(str(size)) - 1).rstrip("0")
    return f"{whole}.{digits}"


def _format_duration(duration: timedelta) -> str:
    """Render a duration compactly, e.g. ``1m30s``, ``1.5s`` or ``500ms``."""
    ns = (duration.days * 86400 + duration.seconds) * _NS_PER_SECOND + duration.microseconds * 1000
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < _NS_PER_SECOND:
        if ns < 1000:
            text = f"{ns}ns"
        elif ns < 10**6:
            text = _fraction(ns, 1000) + "µs"
        else:
            text = _fraction(ns, 10**6) + "ms"
        return sign + text
    hours, rest = divmod(ns, 3600 * _NS_PER_SECOND)
    minutes, rest = divmod(rest, 60 * _NS_PER_SECOND)
    text = ""
    if hours:
        text += f"{hours}h"
    if hours or minutes:
        text += f"{minutes}m"
    text += _fraction(rest, _NS_PER_SECOND) + "s"
    return sign + text


class ResourceViolationChecker:
    """Compares resource usage against configured limits."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def check_violations(
        self, usage: Optional[ResourceUsage], limits: Optional[ResourceLimits]
    ) -> list[ResourceViolation]:
        """Return every violation of ``limits`` found in ``usage``."""
        if usage is None or limits is None:
            return []

        timestamp = datetime.now()
        violations: list[ResourceViolation] = []
        if limits.memory is not None:
            violations.extend(_memory_violations(usage, limits.memory, timestamp))
        if limits.cpu is not None:
            violations.extend(_cpu_violations(usage, limits.cpu, timestamp))
        if limits.io is not None:
            violations.extend(_io_violations(usage, limits.io, timestamp))
        if limits.process is not None:
            violations.extend(_process_violations(usage, limits.process, timestamp))
        return violations


def _memory_violations(usage: ResourceUsage, limits: MemoryLimits, timestamp: datetime):
    if limits.max_rss > 0 and usage.memory_rss > limits.max_rss:
        yield ResourceViolation(
            limit_type=ResourceLimitType.MEMORY,
            current_value=usage.memory_rss,
            limit_value=limits.max_rss,
            severity=ViolationSeverity.CRITICAL,
            timestamp=timestamp,
            message=f"Memory RSS ({usage.memory_rss} bytes) exceeds limit ({limits.max_rss} bytes)",
        )

    if limits.max_virtual > 0 and usage.memory_virtual > limits.max_virtual:
        yield ResourceViolation(
            limit_type=ResourceLimitType.MEMORY,
            current_value=usage.memory_virtual,
            limit_value=limits.max_virtual,
            severity=ViolationSeverity.CRITICAL,
            timestamp=timestamp,
            message=(
                f"Virtual memory ({usage.memory_virtual} bytes) exceeds limit "
                f"({limits.max_virtual} bytes)"
            ),
        )

    if limits.warning_threshold > 0 and limits.max_rss > 0:
        warning_limit = float(limits.max_rss) * (limits.warning_threshold / 100.0)
        if float(usage.memory_rss) > warning_limit:
            yield ResourceViolation(
                limit_type=ResourceLimitType.MEMORY,
                current_value=usage.memory_rss,
                limit_value=int(warning_limit),
                severity=ViolationSeverity.WARNING,
                timestamp=timestamp,
                message=(
                    f"Memory RSS ({usage.memory_rss} bytes) exceeds warning threshold "
                    f"({warning_limit:.0f} bytes)"
                ),
            )


def _cpu_violations(usage: ResourceUsage, limits: CPULimits, timestamp: datetime):
    if limits.max_percent > 0 and usage.cpu_percent > limits.max_percent:
        yield ResourceViolation(
            limit_type=ResourceLimitType.CPU,
            current_value=usage.cpu_percent,
            limit_value=limits.max_percent,
            severity=ViolationSeverity.CRITICAL,
            timestamp=timestamp,
            message=(
                f"CPU usage ({usage.cpu_percent:.1f}%) exceeds limit ({limits.max_percent:.1f}%)"
            ),
        )

    # CPU time is compared in whole seconds.
    if limits.max_time > timedelta(0) and timedelta(seconds=int(usage.cpu_time)) > limits.max_time:
        yield ResourceViolation(
            limit_type=ResourceLimitType.CPU,
            current_value=usage.cpu_time,
            limit_value=limits.max_time.total_seconds(),
            severity=ViolationSeverity.CRITICAL,
            timestamp=timestamp,
            message=(
                f"CPU time ({usage.cpu_time:.1f}s) exceeds limit "
                f"({_format_duration(limits.max_time)})"
            ),
        )

    if limits.warning_threshold > 0 and limits.max_percent > 0:
        warning_limit = limits.max_percent * (limits.warning_threshold / 100.0)
        if usage.cpu_percent > warning_limit:
            yield ResourceViolation(
                limit_type=ResourceLimitType.CPU,
                current_value=usage.cpu_percent,
                limit_value=warning_limit,
                severity=ViolationSeverity.WARNING,
                timestamp=timestamp,
                message=(
                    f"CPU usage ({usage.cpu_percent:.1f}%) exceeds warning threshold "
                    f"({warning_limit:.1f}%)"
                ),
            )


def _io_violations(usage: ResourceUsage, limits: IOLimits, timestamp: datetime):
    # I/O limits are rates; a single snapshot cannot breach them.
    return iter(())


def _process_violations(usage: ResourceUsage, limits: ProcessLimits, timestamp: datetime):
    if limits.max_file_descriptors > 0 and usage.open_file_descriptors > limits.max_file_descriptors:
        yield ResourceViolation(
            limit_type=ResourceLimitType.PROCESS,
            current_value=usage.open_file_descriptors,
            limit_value=limits.max_file_descriptors,
            severity=ViolationSeverity.CRITICAL,
            timestamp=timestamp,
            message=(
                f"Open file descriptors ({usage.open_file_descriptors}) exceeds limit "
                f"({limits.max_file_descriptors})"
            ),
        )

    if limits.max_child_processes > 0 and usage.child_processes > limits.max_child_processes:
        yield ResourceViolation(
            limit_type=ResourceLimitType.PROCESS,
            current_value=usage.child_processes,
            limit_value=limits.max_child_processes,
            severity=ViolationSeverity.CRITICAL,
            timestamp=timestamp,
            message=(
                f"Child processes ({usage.child_processes}) exceeds limit "
                f"({limits.max_child_processes})"
            ),
        )