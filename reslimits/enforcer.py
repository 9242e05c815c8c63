"""Application of resource limits through the operating system's native mechanisms."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from .limits import (
    CPULimits,
    InternalError,
    MemoryLimits,
    ProcessError,
    ProcessLimits,
    ResourceLimits,
    ResourceLimitType,
)
from .monitor import is_process_running

try:
    import resource
except ImportError:  # not available on Windows
    resource = None  # type: ignore[assignment]

_DARWIN_SUPPORTED = frozenset(
    {ResourceLimitType.MEMORY, ResourceLimitType.CPU, ResourceLimitType.PROCESS}
)
_LINUX_SUPPORTED = frozenset(
    {
        ResourceLimitType.MEMORY,
        ResourceLimitType.CPU,
        ResourceLimitType.IO,
        ResourceLimitType.PROCESS,
    }
)


def _rlimit(name: str, fallback: int) -> int:
    return getattr(resource, name, fallback)


class _LimitErrors(Exception):
    """Several limit failures reported together."""

    def __init__(self, errors: list[Exception]):
        super().__init__("; ".join(str(error) for error in errors))
        self.errors = list(errors)


class ResourceEnforcer:
    """Applies memory, CPU and process limits to a process."""

    def __init__(self, logger: Optional[logging.Logger] = None, platform: Optional[str] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.platform = platform or sys.platform

    @property
    def _is_darwin(self) -> bool:
        return self.platform == "darwin"

    @property
    def _is_linux(self) -> bool:
        return self.platform.startswith("linux")

    def apply_limits(self, pid: int, limits: Optional[ResourceLimits]) -> None:
        """Apply every configured limit; raise ProcessError listing any that failed."""
        if limits is None:
            return None

        self.logger.info("Applying resource limits to PID %d", pid)

        if not is_process_running(pid):
            raise ProcessError("process is not running").with_context("pid", pid)

        errors: list[Exception] = []

        if limits.memory is not None:
            try:
                self._apply_memory_limits(pid, limits.memory)
            except Exception as exc:
                errors.append(
                    ProcessError("failed to apply memory limits", exc).with_context("pid", pid)
                )
                self.logger.warning("Failed to apply memory limits to PID %d: %s", pid, exc)

        if limits.cpu is not None:
            try:
                self._apply_cpu_limits(pid, limits.cpu)
            except Exception as exc:
                errors.append(
                    ProcessError("failed to apply CPU limits", exc).with_context("pid", pid)
                )
                self.logger.warning("Failed to apply CPU limits to PID %d: %s", pid, exc)

        if limits.io is not None:
            self.logger.debug(
                "I/O limits specified but not yet implemented for PID %d: "
                "max_read_bps=%d, max_write_bps=%d",
                pid,
                limits.io.max_read_bps,
                limits.io.max_write_bps,
            )

        if limits.process is not None:
            try:
                self._apply_process_limits(pid, limits.process)
            except Exception as exc:
                errors.append(
                    ProcessError("failed to apply process limits", exc).with_context("pid", pid)
                )
                self.logger.warning("Failed to apply process limits to PID %d: %s", pid, exc)

        if limits.memory is not None and (
            limits.memory.max_rss > 0 or limits.memory.max_virtual > 0
        ):
            self.logger.debug(
                "Applying memory limits to PID %d (MaxRSS: %d, MaxVirtual: %d)",
                pid,
                limits.memory.max_rss,
                limits.memory.max_virtual,
            )

        if limits.process is not None and limits.process.max_file_descriptors > 0:
            try:
                self._apply_file_descriptor_limit(pid, limits.process.max_file_descriptors)
            except Exception as exc:
                errors.append(
                    ProcessError("failed to apply file descriptor limits", exc).with_context(
                        "pid", pid
                    )
                )
                self.logger.warning(
                    "Failed to apply file descriptor limits to PID %d: %s", pid, exc
                )

        if errors:
            self.logger.error(
                "Some resource limits could not be applied to PID %d: %s",
                pid,
                [str(error) for error in errors],
            )
            raise ProcessError(
                "failed to apply some resource limits", _LimitErrors(errors)
            ).with_context("pid", pid)

        self.logger.info("Resource limits successfully applied to PID %d", pid)
        return None

    def supports_limit_type(self, limit_type: ResourceLimitType) -> bool:
        """Whether limits of this kind can be applied on this platform."""
        if self._is_darwin:
            return limit_type in _DARWIN_SUPPORTED
        if self._is_linux:
            return limit_type in _LINUX_SUPPORTED
        return False

    def _apply_memory_limits(self, pid: int, limits: MemoryLimits) -> None:
        if limits.max_rss <= 0 and limits.max_virtual <= 0:
            return
        if self._is_darwin:
            self._darwin_memory_limits(pid, limits)
        elif self._is_linux:
            raise InternalError("memory limit enforcement is not implemented on Linux")
        else:
            raise InternalError(f"memory limits are not supported on {self.platform}")

    def _apply_cpu_limits(self, pid: int, limits: CPULimits) -> None:
        if limits.max_percent <= 0 and limits.max_time.total_seconds() <= 0:
            return
        if self._is_darwin:
            self._darwin_cpu_limits(pid, limits)
        elif self._is_linux:
            raise InternalError("CPU limit enforcement is not implemented on Linux")
        else:
            raise InternalError(f"CPU limits are not supported on {self.platform}")

    def _apply_process_limits(self, pid: int, limits: ProcessLimits) -> None:
        if limits.max_file_descriptors <= 0 and limits.max_child_processes <= 0:
            return
        if limits.max_file_descriptors > 0:
            try:
                self._apply_file_descriptor_limit(pid, limits.max_file_descriptors)
            except Exception as exc:
                raise (
                    ProcessError("failed to apply file descriptor limits", exc)
                    .with_context("pid", pid)
                    .with_context("max_fd", limits.max_file_descriptors)
                ) from exc
        self.logger.debug("Process limits applied to PID %d", pid)

    def _apply_file_descriptor_limit(self, pid: int, max_fds: int) -> None:
        self.logger.debug("Applying file descriptor limit to PID %d: %d", pid, max_fds)
        self.logger.debug(
            "File descriptor limit implementation pending for PID %d: %d "
            "(platform-specific implementation required)",
            pid,
            max_fds,
        )

    def _darwin_memory_limits(self, pid: int, limits: MemoryLimits) -> None:
        if resource is None:
            raise InternalError("POSIX resource limits are not available")

        self.logger.info(
            "Applying memory limits to PID %d (MaxRSS: %d, MaxVirtual: %d)",
            pid,
            limits.max_rss,
            limits.max_virtual,
        )

        # RLIMIT_RSS may not be enforced on newer macOS versions.
        if limits.max_rss > 0:
            try:
                resource.setrlimit(_rlimit("RLIMIT_RSS", 5), (limits.max_rss, limits.max_rss))
            except (OSError, ValueError) as exc:
                self.logger.warning("Failed to set RSS limit for PID %d: %s", pid, exc)
            else:
                self.logger.info(
                    "Successfully set RSS limit for PID %d: %d bytes", pid, limits.max_rss
                )

        if limits.max_virtual > 0:
            try:
                resource.setrlimit(resource.RLIMIT_AS, (limits.max_virtual, limits.max_virtual))
            except (OSError, ValueError) as exc:
                self.logger.warning(
                    "Failed to set virtual memory limit for PID %d: %s", pid, exc
                )
            else:
                self.logger.info(
                    "Successfully set virtual memory limit for PID %d: %d bytes",
                    pid,
                    limits.max_virtual,
                )

        if limits.max_rss > 0:
            try:
                resource.setrlimit(resource.RLIMIT_DATA, (limits.max_rss, limits.max_rss))
            except (OSError, ValueError) as exc:
                self.logger.debug("Failed to set data segment limit for PID %d: %s", pid, exc)

    def _darwin_cpu_limits(self, pid: int, limits: CPULimits) -> None:
        if resource is None:
            raise InternalError("POSIX resource limits are not available")

        self.logger.info(
            "Applying CPU limits to PID %d (MaxTime: %s, MaxPercent: %f)",
            pid,
            limits.max_time,
            limits.max_percent,
        )

        if limits.max_time.total_seconds() > 0:
            seconds = int(limits.max_time.total_seconds())
            try:
                resource.setrlimit(resource.RLIMIT_CPU, (seconds, seconds))
            except (OSError, ValueError) as exc:
                raise InternalError(
                    f"failed to set CPU time limit for PID {pid}", exc
                ) from exc
            self.logger.info(
                "Successfully set CPU time limit for PID %d: %d seconds", pid, seconds
            )

        if limits.max_percent > 0:
            self.logger.debug(
                "CPU percentage limits not implemented via setrlimit - "
                "would require additional mechanisms"
            )
        if limits.max_cores > 0:
            self.logger.debug(
                "CPU core limits not implemented via setrlimit - "
                "would require CPU affinity mechanisms"
            )


def current_limits(logger: Optional[logging.Logger] = None) -> dict[str, tuple[int, int]]:
    """Current (soft, hard) resource limits of this process, keyed by name."""
    logger = logger or logging.getLogger(__name__)
    if resource is None:
        return {}

    limit_types = {
        "rss": _rlimit("RLIMIT_RSS", 5),
        "virtual": resource.RLIMIT_AS,
        "data": resource.RLIMIT_DATA,
        "cpu": resource.RLIMIT_CPU,
        "nofile": resource.RLIMIT_NOFILE,
        "nproc": _rlimit("RLIMIT_NPROC", 7),
        "core": resource.RLIMIT_CORE,
    }

    limits: dict[str, tuple[int, int]] = {}
    for name, limit_type in limit_types.items():
        try:
            soft, hard = resource.getrlimit(limit_type)
        except (OSError, ValueError) as exc:
            logger.debug("Failed to get %s limit: %s", name, exc)
            continue
        limits[name] = (soft, hard)
        logger.debug("Current %s limit: current=%d, max=%d", name, soft, hard)
    return limits