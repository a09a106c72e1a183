"""
Samplers: one blocking function per resource metric.
采样器：每个资源指标对应一个阻塞函数。

CPU and network are delta-based: two readings separated by a fixed
interval (default 1 s). Memory and disk are single instantaneous reads.
Every sampler takes its counter reader (and, where it sleeps, its
sleep/clock functions) as arguments so tests can feed fixed counters.

CPU 与网络基于差值：两次读数之间间隔固定时长（默认 1 秒）。
内存与磁盘是单次瞬时读取。每个采样器都以参数形式接收计数器读取函数
（需要休眠的还接收休眠/时钟函数），便于测试注入固定计数器。
"""

import functools
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from hostpulse.core.clock import Clock
from hostpulse.core.snapshot import NetworkTraffic
from hostpulse.environment.resource_monitor import (
    ByteCounters,
    CPUCounters,
    DiskCounters,
    MemoryCounters,
    calculate_cpu_rate,
    calculate_disk_rate,
    calculate_mem_rate,
    calculate_network_traffic,
    read_cpu_counters,
    read_disk_counters,
    read_memory_counters,
    read_network_counters,
)

DEFAULT_SAMPLE_INTERVAL_S = 1.0
DEFAULT_MOUNT_POINT = "/"


def sample_cpu_usage(
    read: Callable[[], CPUCounters] = read_cpu_counters,
    sleep: Callable[[float], None] = time.sleep,
    interval_s: float = DEFAULT_SAMPLE_INTERVAL_S,
) -> float:
    """
    CPU utilisation (%) over one sampling interval.
    一个采样间隔内的 CPU 使用率（%）。
    """
    prev = read()
    sleep(interval_s)
    curr = read()
    return calculate_cpu_rate(prev, curr)


def sample_mem_usage(read: Callable[[], MemoryCounters] = read_memory_counters) -> float:
    return calculate_mem_rate(read())


def sample_disk_usage(
    mount_point: str = DEFAULT_MOUNT_POINT,
    read: Callable[[str], DiskCounters] = read_disk_counters,
) -> float:
    return calculate_disk_rate(read(mount_point))


def sample_network_traffic(
    read: Callable[[], Mapping[str, ByteCounters]] = read_network_counters,
    sleep: Callable[[float], None] = time.sleep,
    interval_s: float = DEFAULT_SAMPLE_INTERVAL_S,
    clock: Callable[[], float] = time.monotonic,
) -> list[NetworkTraffic]:
    """
    Per-interface throughput in bits per second.
    各接口的吞吐量（比特/秒）。

    The divisor is the measured time between the two reads, not the
    nominal interval, so a late wake-up does not inflate the rate.
    除数是两次读取之间实际测得的时间而非名义间隔，因此延迟唤醒不会虚增速率。
    """
    prev = read()
    t0 = clock()
    sleep(interval_s)
    curr = read()
    elapsed = clock() - t0
    if elapsed <= 0:
        elapsed = interval_s
    return calculate_network_traffic(prev, curr, elapsed)


# ======================================================================
# Sampler bundle / 采样器集合
# ======================================================================

@dataclass(frozen=True)
class Samplers:
    """
    The four zero-argument samplers one collection cycle fans out to.
    一次采集周期并发调用的四个无参采样器。
    """
    cpu: Callable[[], float]
    memory: Callable[[], float]
    disk: Callable[[], float]
    network: Callable[[], list[NetworkTraffic]]

    @classmethod
    def default(
        cls,
        mount_point: str = DEFAULT_MOUNT_POINT,
        interval_s: float = DEFAULT_SAMPLE_INTERVAL_S,
        clock: Optional[Clock] = None,
    ) -> "Samplers":
        """
        psutil-backed samplers for the local host.
        基于 psutil 的本机采样器。

        The delta-based samplers sleep and measure elapsed time through
        *clock*, so the daemon's clock governs every sampling window.
        差值型采样器通过 clock 休眠并测量耗时，因此守护进程的时钟掌控每个采样窗口。
        """
        clock = clock or Clock()
        return cls(
            cpu=functools.partial(sample_cpu_usage, sleep=clock.sleep, interval_s=interval_s),
            memory=sample_mem_usage,
            disk=functools.partial(sample_disk_usage, mount_point),
            network=functools.partial(
                sample_network_traffic,
                sleep=clock.sleep,
                interval_s=interval_s,
                clock=clock.monotonic,
            ),
        )
