from datetime import timedelta

import pytest

from reslimits.limits import (
    CPULimits,
    IOLimits,
    MemoryLimits,
    ProcessLimits,
    ResourceLimits,
    ResourceLimitType,
    ResourceUsage,
    ViolationSeverity,
)
from reslimits.violations import ResourceViolationChecker


@pytest.fixture
def checker():
    return ResourceViolationChecker()


def test_none_inputs_give_no_violations(checker):
    assert checker.check_violations(None, ResourceLimits()) == []
    assert checker.check_violations(ResourceUsage(), None) == []


def test_within_limits_gives_no_violations(checker):
    usage = ResourceUsage(memory_rss=50, cpu_percent=10.0, open_file_descriptors=3)
    limits = ResourceLimits(
        memory=MemoryLimits(max_rss=100),
        cpu=CPULimits(max_percent=50.0),
        process=ProcessLimits(max_file_descriptors=10),
    )
    assert checker.check_violations(usage, limits) == []


def test_rss_violation(checker):
    usage = ResourceUsage(memory_rss=200)
    violations = checker.check_violations(usage, ResourceLimits(memory=MemoryLimits(max_rss=100)))
    assert len(violations) == 1
    v = violations[0]
    assert v.limit_type is ResourceLimitType.MEMORY
    assert v.severity is ViolationSeverity.CRITICAL
    assert (v.current_value, v.limit_value) == (200, 100)
    assert v.message == "Memory RSS (200 bytes) exceeds limit (100 bytes)"


def test_virtual_violation(checker):
    usage = ResourceUsage(memory_virtual=5000)
    violations = checker.check_violations(
        usage, ResourceLimits(memory=MemoryLimits(max_virtual=4000))
    )
    assert [v.message for v in violations] == [
        "Virtual memory (5000 bytes) exceeds limit (4000 bytes)"
    ]


def test_memory_warning_threshold(checker):
    usage = ResourceUsage(memory_rss=900)
    limits = ResourceLimits(memory=MemoryLimits(max_rss=1000, warning_threshold=80.0))
    violations = checker.check_violations(usage, limits)
    assert len(violations) == 1
    v = violations[0]
    assert v.severity is ViolationSeverity.WARNING
    assert v.limit_value < 1000
    assert v.current_value == 900


def test_memory_over_limit_gives_critical_then_warning(checker):
    usage = ResourceUsage(memory_rss=2000)
    limits = ResourceLimits(memory=MemoryLimits(max_rss=1000, warning_threshold=80.0))
    severities = [v.severity for v in checker.check_violations(usage, limits)]
    assert severities == [ViolationSeverity.CRITICAL, ViolationSeverity.WARNING]


def test_cpu_percent_violation(checker):
    usage = ResourceUsage(cpu_percent=90.0)
    violations = checker.check_violations(usage, ResourceLimits(cpu=CPULimits(max_percent=75.0)))
    assert len(violations) == 1
    assert violations[0].limit_type is ResourceLimitType.CPU
    assert violations[0].message == "CPU usage (90.0%) exceeds limit (75.0%)"


def test_cpu_time_violation(checker):
    usage = ResourceUsage(cpu_time=20.0)
    limits = ResourceLimits(cpu=CPULimits(max_time=timedelta(seconds=10)))
    violations = checker.check_violations(usage, limits)
    assert len(violations) == 1
    assert violations[0].limit_value == 10.0
    assert violations[0].message == "CPU time (20.0s) exceeds limit (10s)"


def test_cpu_time_compares_whole_seconds(checker):
    usage = ResourceUsage(cpu_time=10.9)
    limits = ResourceLimits(cpu=CPULimits(max_time=timedelta(seconds=10)))
    assert checker.check_violations(usage, limits) == []


def test_cpu_warning_threshold(checker):
    usage = ResourceUsage(cpu_percent=60.0)
    limits = ResourceLimits(cpu=CPULimits(max_percent=75.0, warning_threshold=50.0))
    violations = checker.check_violations(usage, limits)
    assert len(violations) == 1
    assert violations[0].severity is ViolationSeverity.WARNING
    assert violations[0].limit_value < 75.0


def test_io_limits_never_violate(checker):
    usage = ResourceUsage(io_read_bytes=10**9, io_write_bytes=10**9)
    limits = ResourceLimits(io=IOLimits(max_read_bps=1, max_write_bps=1))
    assert checker.check_violations(usage, limits) == []


def test_process_violations(checker):
    usage = ResourceUsage(open_file_descriptors=2048, child_processes=5)
    limits = ResourceLimits(
        process=ProcessLimits(max_file_descriptors=1024, max_child_processes=2)
    )
    violations = checker.check_violations(usage, limits)
    assert [v.message for v in violations] == [
        "Open file descriptors (2048) exceeds limit (1024)",
        "Child processes (5) exceeds limit (2)",
    ]
    assert all(v.limit_type is ResourceLimitType.PROCESS for v in violations)


def test_violations_share_one_timestamp(checker):
    usage = ResourceUsage(memory_rss=200, cpu_percent=99.0)
    limits = ResourceLimits(memory=MemoryLimits(max_rss=100), cpu=CPULimits(max_percent=50.0))
    violations = checker.check_violations(usage, limits)
    assert len(violations) == 2
    assert violations[0].timestamp == violations[1].timestamp
    assert [v.limit_type for v in violations] == [ResourceLimitType.MEMORY, ResourceLimitType.CPU]