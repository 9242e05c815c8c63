# reslimits

Resource limits for managed processes: apply memory and CPU limits where the
platform allows it, sample a process's resource usage on an interval, and
report violations of the configured limits to a callback that decides what
to do about them.

## Installation

```
pip install reslimits
```

The only runtime dependency is `psutil`.

## Describing limits

Limits are plain dataclasses in `reslimits.limits`:

```python
from datetime import timedelta
from reslimits.limits import (
    CPULimits, MemoryLimits, ProcessLimits, ResourceLimits,
    ResourceMonitoringConfig, ResourcePolicy,
)

limits = ResourceLimits(
    memory=MemoryLimits(max_rss=256 * 1024 * 1024, policy=ResourcePolicy.RESTART),
    cpu=CPULimits(max_percent=75.0, policy=ResourcePolicy.GRACEFUL_SHUTDOWN),
    process=ProcessLimits(max_file_descriptors=1024, policy=ResourcePolicy.ALERT),
    monitoring=ResourceMonitoringConfig(enabled=True, interval=timedelta(seconds=5)),
)
```

A limit left at zero is not checked. A `warning_threshold` (a percentage of
`max_rss` for memory, of `max_percent` for CPU) produces warning-level
violations before the limit itself is reached.

`ResourceMonitoringConfig()` is disabled by default; a zero `interval` or
`history_retention` means 30 seconds and 24 hours respectively.
`ResourceMonitoringConfig.default()` returns an enabled configuration with
those values, and is what is used when no monitoring configuration is given.

The enums `ResourcePolicy`, `ResourceLimitType` and `ViolationSeverity` are
string enums whose values are `"log"`, `"restart"`, `"memory"`, `"critical"`
and so on.

## Checking usage against limits

`reslimits.violations.ResourceViolationChecker.check_violations(usage, limits)`
compares a `ResourceUsage` sample with a `ResourceLimits` and returns a list
of `ResourceViolation` objects, each carrying `limit_type`, `current_value`,
`limit_value`, `severity`, `timestamp` and `message`. It returns an empty list
when either argument is `None`. It checks:

- memory: RSS and virtual size against `max_rss` and `max_virtual` (critical),
  and RSS against the warning threshold (warning);
- CPU: percentage against `max_percent` and whole seconds of CPU time against
  `max_time` (critical), and percentage against the warning threshold (warning);
- process: open file descriptors and child processes against
  `max_file_descriptors` and `max_child_processes` (critical).

## Sampling usage

`reslimits.platform.new_platform_resource_monitor(logger)` returns a sampler
for the running platform; each has `get_process_usage(pid)` returning a
`ResourceUsage`, and `supports_real_time_monitoring()`:

- macOS: `reslimits.darwin_monitor.DarwinResourceMonitor`, which runs `ps`,
  `lsof`, `sysctl` and `which` to fill in memory, CPU and descriptor counts. It
  also offers `parse_cpu_time`, `total_system_memory`,
  `get_child_process_count`, `check_process_exists` and `get_process_info`.
- Windows: `WindowsPerformanceMonitor`, which reads working set, pagefile
  usage, CPU time and handle count through psutil and computes a CPU
  percentage (clamped to 0–100) from successive samples.
- Linux: `LinuxResourceMonitor`, which currently returns the same all-zero
  sample as `GenericResourceMonitor`.
- anything else: `GenericResourceMonitor`.

`file_time_to_seconds(high, low)` converts a FILETIME split into two 32-bit
words into seconds.

## Monitoring a process

```python
import logging, os
from reslimits.monitor import ResourceMonitor, is_process_running

monitor = ResourceMonitor(os.getpid(), ResourceMonitoringConfig.default(),
                          logging.getLogger("limits"))
monitor.set_usage_callback(lambda usage: print(usage.memory_rss))
monitor.start()
...
monitor.stop()
```

`start()` launches a background thread that calls `collect_usage()` on every
interval; it does nothing if the configuration is disabled, raises
`ValidationError` if already running, and `ProcessError` if the process is not
running. Each sample is stored in a history trimmed to `history_retention` and
passed to the usage callback. `get_current_usage()` takes a sample on demand,
and `get_usage_history(since)` returns the stored samples taken after `since`.
A different sampler can be passed as `platform_monitor=`.

`is_process_running(pid)` is true for a live, non-zombie process.

## Enforcing limits

`reslimits.enforcer.ResourceEnforcer(logger).apply_limits(pid, limits)` does
nothing for `None`, raises `ProcessError` if the process is not running, and
otherwise applies every configured limit, raising one `ProcessError` that
lists each limit that failed. `supports_limit_type(limit_type)` reports memory,
CPU and process limits as supported on macOS, those plus I/O on Linux, and
nothing elsewhere.

`current_limits(logger)` returns this process's current `(soft, hard)`
resource limits, keyed by `"rss"`, `"virtual"`, `"data"`, `"cpu"`, `"nofile"`,
`"nproc"` and `"core"` (empty where POSIX resource limits are unavailable).

## Putting it together

`reslimits.manager.ResourceLimitManager` applies the limits, starts the
monitor and checks for violations on a thread running at the monitoring
interval, capped at 10 seconds. Critical violations whose limit type has a
policy configured are passed, with that policy, to the callback set with
`set_violation_callback`, each on its own thread:

```python
import logging, os
from reslimits.manager import ResourceLimitManager

def on_violation(policy, violation):
    print(policy.value, violation.message)

manager = ResourceLimitManager(os.getpid(), limits, logging.getLogger("limits"))
manager.set_violation_callback(on_violation)
manager.start()
...
manager.stop()
```

With `limits=None`, `start()` does nothing. A failure to apply limits is
logged and monitoring continues; a failure to start the monitor raises
`InternalError`. `get_violations()` returns the violations found by the latest
`check_violations()`; `dispatch_violation(violation)` returns the thread
running the callback, or `None` if nothing was dispatched; `policy_for(limit_type)`
returns the configured policy. The monitor, enforcer and checker can be
replaced with the keyword arguments `monitor=`, `enforcer=` and
`violation_checker=`.

## Errors

Failures are raised as subclasses of `reslimits.limits.ResourceLimitsError`,
which carry `message`, `cause` and a `context` dict filled by `with_context`:
`ProcessError` (the process is missing or a limit could not be applied),
`ValidationError` (starting something already running) and `InternalError`
(usage could not be read, or a command or limit call failed).

## What it does not do

- On macOS, limits are applied with `setrlimit` to the calling process, not to
  the process named by `pid`; RSS limits may not be enforced by the system.
- On Linux, memory and CPU limits are not enforced (applying them fails), and
  usage samples are all zero.
- On Windows and other platforms, no limits are enforced.
- File descriptor limits and I/O limits are accepted but not applied, and I/O
  limits are never reported as violated.
- The package acts on nothing itself: policies such as restart or kill are
  only handed to your callback. There is no command-line tool.