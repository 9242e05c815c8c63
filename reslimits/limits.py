"""Resource limit configuration, usage snapshots, violations and errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional


class ResourcePolicy(str, Enum):
    """Action to take when a limit is violated."""

    NONE = "none"
    LOG = "log"
    ALERT = "alert"
    THROTTLE = "throttle"
    GRACEFUL_SHUTDOWN = "graceful_shutdown"
    IMMEDIATE_KILL = "immediate_kill"
    RESTART = "restart"
    RESTART_ADJUSTED = "restart_adjusted"


class ResourceLimitType(str, Enum):
    """Kind of resource a limit applies to."""

    MEMORY = "memory"
    CPU = "cpu"
    IO = "io"
    NETWORK = "network"
    PROCESS = "process"


class ViolationSeverity(str, Enum):
    """How severe a resource violation is."""

    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class ResourceViolation:
    """A single observed breach of a resource limit."""

    limit_type: ResourceLimitType
    current_value: Any = None
    limit_value: Any = None
    severity: ViolationSeverity = ViolationSeverity.WARNING
    timestamp: datetime = field(default_factory=datetime.now)
    message: str = ""


@dataclass
class ResourceUsage:
    """A snapshot of a process's resource usage."""

    timestamp: datetime = field(default_factory=datetime.now)

    memory_rss: int = 0
    memory_virtual: int = 0
    memory_percent: float = 0.0

    cpu_percent: float = 0.0
    cpu_time: float = 0.0

    io_read_bytes: int = 0
    io_write_bytes: int = 0
    io_read_ops: int = 0
    io_write_ops: int = 0

    open_file_descriptors: int = 0
    child_processes: int = 0

    network_bytes_received: int = 0
    network_bytes_sent: int = 0


@dataclass
class MemoryLimits:
    """Memory limits in bytes, with an optional warning threshold in percent."""

    max_rss: int = 0
    max_virtual: int = 0
    max_swap: int = 0
    warning_threshold: float = 0.0
    policy: Optional[ResourcePolicy] = None


@dataclass
class CPULimits:
    """CPU limits: cores, percentage and total CPU time."""

    max_cores: float = 0.0
    max_percent: float = 0.0
    max_time: timedelta = field(default_factory=timedelta)
    warning_threshold: float = 0.0
    policy: Optional[ResourcePolicy] = None


@dataclass
class IOLimits:
    """I/O bandwidth and operation-rate limits."""

    weight: int = 0
    max_read_bps: int = 0
    max_write_bps: int = 0
    max_read_ops: int = 0
    max_write_ops: int = 0
    warning_threshold: float = 0.0
    policy: Optional[ResourcePolicy] = None


@dataclass
class ProcessLimits:
    """Limits on processes and open file descriptors."""

    max_processes: int = 0
    max_file_descriptors: int = 0
    max_child_processes: int = 0
    warning_threshold: float = 0.0
    policy: Optional[ResourcePolicy] = None


@dataclass
class ResourceMonitoringConfig:
    """How resource usage is sampled and retained.

    Zero durations mean "use the default".
    """

    enabled: bool = False
    interval: timedelta = field(default_factory=timedelta)
    history_retention: timedelta = field(default_factory=timedelta)
    alerting_enabled: bool = False

    @classmethod
    def default(cls) -> "ResourceMonitoringConfig":
        """The configuration used when none is given."""
        return cls(
            enabled=True,
            interval=timedelta(seconds=30),
            history_retention=timedelta(hours=24),
            alerting_enabled=True,
        )


@dataclass
class ResourceLimits:
    """All resource limits for one process."""

    priority: int = 0
    cpu_shares: int = 0
    memory: Optional[MemoryLimits] = None
    cpu: Optional[CPULimits] = None
    io: Optional[IOLimits] = None
    process: Optional[ProcessLimits] = None
    monitoring: Optional[ResourceMonitoringConfig] = None


class ResourceLimitsError(Exception):
    """Base error carrying a message, an optional cause and context values."""

    kind = "error"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context: dict[str, Any] = {}
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, key: str, value: Any) -> "ResourceLimitsError":
        """Attach a context value and return the same error."""
        self.context[key] = value
        return self

    def __str__(self) -> str:
        text = f"{self.kind}: {self.message}"
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            text += f" ({details})"
        if self.cause is not None:
            text += f": {self.cause}"
        return text


class ProcessError(ResourceLimitsError):
    """A problem with the target process."""

    kind = "process"


class ValidationError(ResourceLimitsError):
    """An invalid request or state."""

    kind = "validation"


class InternalError(ResourceLimitsError):
    """An unexpected internal failure."""

    kind = "internal"