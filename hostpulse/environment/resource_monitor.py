"""
ResourceMonitor: the collector's "body sensors".
资源监控器：采集器的"身体感觉"。

Reads raw OS counters through psutil and turns pairs of readings into
utilisation ratios. Readers raise CounterReadError on any platform
failure; calculators are pure and only reject a non-positive
elapsed time.

通过 psutil 读取原始操作系统计数器，并将读数换算为使用率。
读取函数在平台出错时抛出 CounterReadError；计算函数是纯函数，仅拒绝非正的耗时。
"""

from dataclasses import dataclass
from typing import Callable, Mapping, TypeVar

import psutil

from hostpulse.core.snapshot import NetworkTraffic

T = TypeVar("T")

# May fail on sandboxed hosts or containers due to /proc or sysctl permissions.
# 在沙箱主机或容器中可能因 /proc 或 sysctl 权限而失败。
_PSUTIL_ERRORS = (PermissionError, OSError, SystemError, psutil.Error)

# cpu_times() fields that count as "not busy". / 视为"空闲"的字段。
_IDLE_FIELDS = ("idle", "iowait")
# Already accounted for inside user/nice on Linux. / Linux 上已计入 user/nice。
_GUEST_FIELDS = ("guest", "guest_nice")


class CounterReadError(RuntimeError):
    """Raised when an OS counter cannot be read. / 无法读取操作系统计数器时抛出。"""

    def __init__(self, counter: str, cause: BaseException):
        self.counter = counter
        self.cause = cause
        super().__init__(f"failed to read {counter} counters: {cause}")


# ======================================================================
# Raw counter records / 原始计数器记录
# ======================================================================

@dataclass(frozen=True)
class CPUCounters:
    """Cumulative CPU time in seconds. / 累计 CPU 时间（秒）。"""
    busy: float
    total: float


@dataclass(frozen=True)
class MemoryCounters:
    total: int
    available: int


@dataclass(frozen=True)
class DiskCounters:
    total: int
    free: int


@dataclass(frozen=True)
class ByteCounters:
    """Cumulative bytes for one interface. / 单个接口的累计字节数。"""
    bytes_recv: int
    bytes_sent: int


# ======================================================================
# Readers / 读取函数
# ======================================================================

def _read(counter: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except _PSUTIL_ERRORS as exc:
        raise CounterReadError(counter, exc) from exc


def read_cpu_counters() -> CPUCounters:
    """
    Aggregate CPU times across all cores.
    汇总所有核心的 CPU 时间。
    """
    times = _read("cpu", psutil.cpu_times)
    fields = times._asdict()
    total = sum(v for k, v in fields.items() if k not in _GUEST_FIELDS)
    idle = sum(fields.get(k, 0.0) for k in _IDLE_FIELDS)
    return CPUCounters(busy=total - idle, total=total)


def read_memory_counters() -> MemoryCounters:
    mem = _read("memory", psutil.virtual_memory)
    return MemoryCounters(total=mem.total, available=mem.available)


def read_disk_counters(mount_point: str = "/") -> DiskCounters:
    usage = _read("disk", lambda: psutil.disk_usage(mount_point))
    return DiskCounters(total=usage.total, free=usage.free)


def read_network_counters() -> dict[str, ByteCounters]:
    """
    Per-interface byte counters, in the order the OS reports them.
    按操作系统报告顺序返回各接口的字节计数器。
    """
    per_nic = _read("network", lambda: psutil.net_io_counters(pernic=True))
    return {
        name: ByteCounters(bytes_recv=c.bytes_recv, bytes_sent=c.bytes_sent)
        for name, c in per_nic.items()
    }


# ======================================================================
# Calculators / 计算函数
# ======================================================================

def clamp_percent(v: float) -> float:
    """
    Clamp a value to [0, 100].
    将值裁剪到 [0, 100] 范围。
    """
    if v < 0.0:
        return 0.0
    if v > 100.0:
        return 100.0
    return v


def calculate_cpu_rate(prev: CPUCounters, curr: CPUCounters) -> float:
    """
    Busy share of the CPU time that elapsed between two readings.
    两次读数之间 CPU 时间中忙碌部分的占比。
    """
    total_delta = curr.total - prev.total
    if total_delta <= 0:
        return 0.0
    return clamp_percent((curr.busy - prev.busy) / total_delta * 100.0)


def calculate_mem_rate(stat: MemoryCounters) -> float:
    if stat.total <= 0:
        return 0.0
    return clamp_percent((stat.total - stat.available) / stat.total * 100.0)


def calculate_disk_rate(stat: DiskCounters) -> float:
    if stat.total <= 0:
        return 0.0
    return clamp_percent((stat.total - stat.free) / stat.total * 100.0)


def calculate_network_traffic(
    prev: Mapping[str, ByteCounters],
    curr: Mapping[str, ByteCounters],
    elapsed_s: float,
) -> list[NetworkTraffic]:
    """
    Bits per second for every interface present in both readings.
    为两次读数中都存在的每个接口计算每秒比特数。

    Interfaces that vanished between readings are dropped. A counter that
    went backwards (reset or wraparound) reports 0 rather than a negative rate.
    读数之间消失的接口会被丢弃。计数器回退（重置或回绕）时报告 0 而非负速率。

    Parameters / 参数
    ----------
    prev, curr : mapping of interface name to ByteCounters
        Readings at time A and time B.
    elapsed_s : float
        Seconds between the two readings.
    """
    if elapsed_s <= 0:
        raise ValueError("elapsed_s must be positive")

    traffic: list[NetworkTraffic] = []
    for name, before in prev.items():
        after = curr.get(name)
        if after is None:
            continue
        inbound = max(after.bytes_recv - before.bytes_recv, 0) * 8 / elapsed_s
        outbound = max(after.bytes_sent - before.bytes_sent, 0) * 8 / elapsed_s
        traffic.append(NetworkTraffic(interface=name, inbound_bps=inbound, outbound_bps=outbound))
    return traffic
