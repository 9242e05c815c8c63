"""macOS resource usage sampling built on ps, lsof, sysctl and pgrep."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .limits import InternalError, ResourceUsage

_INT_RE = re.compile(r"[+-]?\d+")
_MB = 1024 * 1024


@dataclass
class CPUTimeInfo:
    """CPU time observed at one moment, for rate calculations."""

    user_time: float = 0.0
    system_time: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)


def _parse_int(text: str) -> Optional[int]:
    if _INT_RE.fullmatch(text) is None:
        return None
    return int(text)


def _parse_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


def _output(*args: str) -> str:
    """Run a command and return its standard output, raising if it fails."""
    try:
        result = subprocess.run(list(args), capture_output=True, text=True)
    except OSError as exc:
        raise InternalError(f"{args[0]} command failed", exc) from exc
    if result.returncode != 0:
        raise InternalError(
            f"{args[0]} command failed",
            RuntimeError(f"exit status {result.returncode}"),
        )
    return result.stdout


def _succeeds(*args: str) -> bool:
    """Run a command for its exit status only."""
    try:
        result = subprocess.run(
            list(args), stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
        )
    except OSError:
        return False
    return result.returncode == 0


def _data_fields(output: str, command: str, minimum: int) -> list[str]:
    """Return the fields of the first line after the header."""
    lines = output.strip().split("\n")
    if len(lines) < 2:
        raise InternalError(f"unexpected {command} output format")
    fields = lines[1].split()
    if len(fields) < minimum:
        raise InternalError(f"insufficient {command} output fields")
    return fields


class DarwinResourceMonitor:
    """Samples per-process resource usage with standard macOS tools."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.last_cpu_time: dict[int, CPUTimeInfo] = {}

    def get_process_usage(self, pid: int) -> ResourceUsage:
        """Collect a usage snapshot; individual probe failures are logged, not raised."""
        self.logger.debug("Getting macOS resource usage for PID %d", pid)
        usage = ResourceUsage(timestamp=datetime.now())

        try:
            self._read_memory(pid, usage)
        except InternalError as exc:
            self.logger.warning("Failed to get memory usage for PID %d: %s", pid, exc)
            self.logger.debug("Using fallback memory monitoring for PID %d", pid)
            self.logger.warning(
                "Fallback memory monitoring failed for PID %d: %s",
                pid,
                "procfs fallback not implemented for macOS",
            )

        try:
            self._read_cpu(pid, usage)
        except InternalError as exc:
            self.logger.warning("Failed to get CPU usage for PID %d: %s", pid, exc)

        try:
            self._read_file_descriptors(pid, usage)
        except InternalError as exc:
            self.logger.debug("Failed to get file descriptor count for PID %d: %s", pid, exc)

        try:
            self._read_io(usage)
        except InternalError as exc:
            self.logger.debug("Failed to get I/O usage for PID %d: %s", pid, exc)

        self.logger.debug(
            "macOS resource usage for PID %d: Memory RSS: %dMB, CPU: %.1f%%, FDs: %d",
            pid,
            usage.memory_rss // _MB,
            usage.cpu_percent,
            usage.open_file_descriptors,
        )
        return usage

    def supports_real_time_monitoring(self) -> bool:
        """Sampling through ps and lsof works at any time."""
        return True

    def parse_cpu_time(self, time_str: str) -> float:
        """Convert ps time such as ``0:01.23`` or ``1:23:45`` to seconds."""
        seconds = 0.0
        multiplier = 1.0
        for part in reversed(time_str.split(":")):
            value = _parse_float(part)
            if value is not None:
                seconds += value * multiplier
                multiplier *= 60
        return seconds

    def total_system_memory(self) -> int:
        """Total physical memory in bytes, or 0 if it cannot be read."""
        try:
            output = _output("sysctl", "-n", "hw.memsize")
        except InternalError as exc:
            self.logger.debug("Failed to get system memory: %s", exc)
            return 0
        value = _parse_int(output.strip())
        return value if value is not None else 0

    def get_child_process_count(self, pid: int) -> int:
        """Number of direct children of ``pid``; 0 when none or on failure."""
        try:
            output = _output("pgrep", "-P", str(pid))
        except InternalError:
            return 0
        lines = output.strip().split("\n")
        if len(lines) == 1 and lines[0] == "":
            return 0
        return len(lines)

    def check_process_exists(self, pid: int) -> bool:
        """Whether a signal could be delivered to ``pid``."""
        return _succeeds("kill", "-0", str(pid))

    def get_process_info(self, pid: int) -> dict[str, str]:
        """Command name, state, nice value and parent PID of ``pid``."""
        output = _output("ps", "-o", "comm,state,nice,ppid", "-p", str(pid))
        lines = output.strip().split("\n")
        if len(lines) < 2:
            raise InternalError("unexpected ps output format")
        fields = lines[1].split()
        info: dict[str, str] = {}
        if len(fields) >= 4:
            info["command"] = fields[0]
            info["state"] = fields[1]
            info["nice"] = fields[2]
            info["ppid"] = fields[3]
        return info

    def _read_memory(self, pid: int, usage: ResourceUsage) -> None:
        output = _output("ps", "-o", "rss,vsz", "-p", str(pid))
        fields = _data_fields(output, "ps", 2)

        rss_kb = _parse_int(fields[0])
        if rss_kb is not None:
            usage.memory_rss = rss_kb * 1024
        vsz_kb = _parse_int(fields[1])
        if vsz_kb is not None:
            usage.memory_virtual = vsz_kb * 1024

        if usage.memory_rss > 0:
            total = self.total_system_memory()
            if total > 0:
                usage.memory_percent = usage.memory_rss / total * 100.0

    def _read_cpu(self, pid: int, usage: ResourceUsage) -> None:
        output = _output("ps", "-o", "pcpu,time", "-p", str(pid))
        fields = _data_fields(output, "ps", 2)

        percent = _parse_float(fields[0])
        if percent is not None:
            usage.cpu_percent = percent
        cpu_time = self.parse_cpu_time(fields[1])
        if cpu_time > 0:
            usage.cpu_time = cpu_time

    def _read_file_descriptors(self, pid: int, usage: ResourceUsage) -> None:
        output = _output("lsof", "-p", str(pid))
        lines = output.strip().split("\n")
        if len(lines) > 1:
            usage.open_file_descriptors = len(lines) - 1

    def _read_io(self, usage: ResourceUsage) -> None:
        # Per-process I/O counters need elevated privileges on macOS.
        if not _succeeds("which", "fs_usage"):
            raise InternalError("fs_usage not available for I/O monitoring")
        usage.io_read_bytes = 0
        usage.io_write_bytes = 0
        usage.io_read_ops = 0
        usage.io_write_ops = 0