import subprocess

import pytest

from reslimits.darwin_monitor import CPUTimeInfo, DarwinResourceMonitor
from reslimits.limits import InternalError

PID = 42


def install_commands(monkeypatch, outputs, missing=()):
    """Replace subprocess.run with a table of canned command results."""
    calls = []

    def fake_run(args, **kwargs):
        calls.append(tuple(args))
        if args[0] in missing:
            raise FileNotFoundError(args[0])
        returncode, stdout = outputs.get(tuple(args), (1, ""))
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    return calls


def full_outputs():
    pid = str(PID)
    return {
        ("ps", "-o", "rss,vsz", "-p", pid): (0, "  RSS      VSZ\n 1024     4096\n"),
        ("sysctl", "-n", "hw.memsize"): (0, "1073741824\n"),
        ("ps", "-o", "pcpu,time", "-p", pid): (0, "%CPU      TIME\n 12.5   0:01.50\n"),
        ("lsof", "-p", pid): (
            0,
            "COMMAND PID USER FD TYPE\nproc 42 u cwd DIR\nproc 42 u txt REG\nproc 42 u 0u CHR\n",
        ),
        ("which", "fs_usage"): (0, "/usr/bin/fs_usage\n"),
    }


def test_parse_cpu_time_minutes_seconds():
    monitor = DarwinResourceMonitor()
    assert monitor.parse_cpu_time("0:01.23") == pytest.approx(1.23)


def test_parse_cpu_time_hours():
    monitor = DarwinResourceMonitor()
    assert monitor.parse_cpu_time("1:00:00") == pytest.approx(3600.0)


def test_parse_cpu_time_skips_unparsable_parts():
    monitor = DarwinResourceMonitor()
    assert monitor.parse_cpu_time("x:30") == pytest.approx(30.0)
    assert monitor.parse_cpu_time("garbage") == 0.0


def test_supports_real_time_monitoring():
    assert DarwinResourceMonitor().supports_real_time_monitoring() is True


def test_get_process_usage_collects_all_fields(monkeypatch):
    install_commands(monkeypatch, full_outputs())
    usage = DarwinResourceMonitor().get_process_usage(PID)

    assert usage.memory_rss == 1024 * 1024
    assert usage.memory_virtual == 4096 * 1024
    assert usage.memory_percent == pytest.approx(usage.memory_rss / 1073741824 * 100.0)
    assert 0 < usage.memory_percent < 100
    assert usage.cpu_percent == pytest.approx(12.5)
    assert usage.cpu_time == pytest.approx(1.5)
    assert usage.open_file_descriptors == 3
    assert usage.io_read_bytes == 0


def test_get_process_usage_tolerates_failures(monkeypatch):
    install_commands(monkeypatch, {})
    usage = DarwinResourceMonitor().get_process_usage(PID)
    assert usage.memory_rss == 0
    assert usage.memory_percent == 0.0
    assert usage.cpu_percent == 0.0
    assert usage.open_file_descriptors == 0


def test_get_process_usage_without_total_memory(monkeypatch):
    outputs = full_outputs()
    del outputs[("sysctl", "-n", "hw.memsize")]
    install_commands(monkeypatch, outputs)
    usage = DarwinResourceMonitor().get_process_usage(PID)
    assert usage.memory_rss == 1024 * 1024
    assert usage.memory_percent == 0.0


def test_get_process_usage_with_header_only(monkeypatch):
    pid = str(PID)
    outputs = {
        ("ps", "-o", "rss,vsz", "-p", pid): (0, "  RSS      VSZ\n"),
        ("ps", "-o", "pcpu,time", "-p", pid): (0, "%CPU TIME\n"),
        ("lsof", "-p", pid): (0, "COMMAND PID USER FD TYPE\n"),
    }
    install_commands(monkeypatch, outputs)
    usage = DarwinResourceMonitor().get_process_usage(PID)
    assert usage.memory_rss == 0
    assert usage.cpu_time == 0.0
    assert usage.open_file_descriptors == 0


def test_total_system_memory(monkeypatch):
    install_commands(monkeypatch, {("sysctl", "-n", "hw.memsize"): (0, "1073741824\n")})
    assert DarwinResourceMonitor().total_system_memory() == 1073741824


def test_total_system_memory_unparsable(monkeypatch):
    install_commands(monkeypatch, {("sysctl", "-n", "hw.memsize"): (0, "lots\n")})
    assert DarwinResourceMonitor().total_system_memory() == 0


def test_child_process_count(monkeypatch):
    install_commands(monkeypatch, {("pgrep", "-P", str(PID)): (0, "101\n102\n")})
    assert DarwinResourceMonitor().get_child_process_count(PID) == 2


def test_child_process_count_empty_and_failure(monkeypatch):
    install_commands(monkeypatch, {("pgrep", "-P", "7"): (0, "\n")})
    monitor = DarwinResourceMonitor()
    assert monitor.get_child_process_count(7) == 0
    assert monitor.get_child_process_count(8) == 0


def test_check_process_exists(monkeypatch):
    install_commands(monkeypatch, {("kill", "-0", str(PID)): (0, "")})
    monitor = DarwinResourceMonitor()
    assert monitor.check_process_exists(PID) is True
    assert monitor.check_process_exists(PID + 1) is False


def test_check_process_exists_missing_binary(monkeypatch):
    install_commands(monkeypatch, {}, missing=("kill",))
    assert DarwinResourceMonitor().check_process_exists(PID) is False


def test_get_process_info(monkeypatch):
    install_commands(
        monkeypatch,
        {
            ("ps", "-o", "comm,state,nice,ppid", "-p", str(PID)): (
                0,
                "COMM STAT NI PPID\n/bin/sleep S 0 1\n",
            )
        },
    )
    info = DarwinResourceMonitor().get_process_info(PID)
    assert info == {"command": "/bin/sleep", "state": "S", "nice": "0", "ppid": "1"}


def test_get_process_info_short_line_gives_empty_dict(monkeypatch):
    install_commands(
        monkeypatch,
        {("ps", "-o", "comm,state,nice,ppid", "-p", str(PID)): (0, "COMM STAT NI PPID\nsleep S\n")},
    )
    assert DarwinResourceMonitor().get_process_info(PID) == {}


def test_get_process_info_errors(monkeypatch):
    install_commands(
        monkeypatch,
        {("ps", "-o", "comm,state,nice,ppid", "-p", str(PID)): (0, "COMM STAT NI PPID\n")},
    )
    monitor = DarwinResourceMonitor()
    with pytest.raises(InternalError, match="unexpected ps output format"):
        monitor.get_process_info(PID)
    with pytest.raises(InternalError, match="ps command failed"):
        monitor.get_process_info(PID + 1)


def test_get_process_info_missing_ps(monkeypatch):
    install_commands(monkeypatch, {}, missing=("ps",))
    with pytest.raises(InternalError):
        DarwinResourceMonitor().get_process_info(PID)


def test_cpu_time_info_holds_values():
    info = CPUTimeInfo(user_time=1.5, system_time=0.5)
    assert info.user_time + info.system_time == pytest.approx(2.0)
    monitor = DarwinResourceMonitor()
    monitor.last_cpu_time[PID] = info
    assert monitor.last_cpu_time[PID].user_time == 1.5