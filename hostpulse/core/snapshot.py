"""
Snapshot: the collector's "shop window".
快照：采集器的"橱窗"。

A ResourceSnapshot is one complete, immutable set of host metrics
produced by a single collection cycle. The SnapshotStore holds the
latest one: the collection cycle publishes (single writer) and any
number of reporting-layer readers pull copies at the same time.

ResourceSnapshot 是单次采集周期产生的一组完整且不可变的主机指标。
SnapshotStore 保存最新的一份：采集周期负责发布（单一写者），
任意数量的报告层读者可同时获取副本。

Consistency contract / 一致性约定:
    1. A published snapshot is never mutated; "changes" create a new object.
    2. Readers never observe a half-written snapshot.
    3. Readers share the lock; the writer is exclusive; no upgrades.
"""

from __future__ import annotations

import dataclasses
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Iterator


# ======================================================================
# Value types / 值类型
# ======================================================================

@dataclass(frozen=True)
class NetworkTraffic:
    """
    Throughput of one network interface over one sampling window.
    单个网络接口在一个采样窗口内的吞吐量。

    Attributes / 属性
    -----------------
    interface : str
        Interface name as reported by the OS (e.g. "eth0").
    inbound_bps : float
        Received bits per second (>= 0).
    outbound_bps : float
        Sent bits per second (>= 0).
    """
    interface: str
    inbound_bps: float
    outbound_bps: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "interface": self.interface,
            "inboundBps": self.inbound_bps,
            "outboundBps": self.outbound_bps,
        }


@dataclass(frozen=True)
class ResourceSnapshot:
    """
    One collection cycle's worth of host metrics, frozen after creation.
    一次采集周期的主机指标，创建后即冻结。

    Attributes / 属性
    -----------------
    cpu_usage_rate : float
        CPU utilisation over the sampling window, percent [0, 100].
        采样窗口内的 CPU 使用率，百分比 [0, 100]。
    mem_usage_rate : float
        Instantaneous memory utilisation, percent [0, 100].
        瞬时内存使用率，百分比 [0, 100]。
    disk_usage_rate : float
        Instantaneous utilisation of the monitored mount point, percent [0, 100].
        被监控挂载点的瞬时使用率，百分比 [0, 100]。
    network_traffic : tuple[NetworkTraffic, ...]
        One entry per interface, in discovery order.
        每个接口一项，按发现顺序排列。
    """
    cpu_usage_rate: float = 0.0
    mem_usage_rate: float = 0.0
    disk_usage_rate: float = 0.0
    network_traffic: tuple[NetworkTraffic, ...] = ()

    def __post_init__(self) -> None:
        # Callers may hand in a list; freeze it so the snapshot owns its sequence.
        object.__setattr__(self, "network_traffic", tuple(self.network_traffic))

    @classmethod
    def empty(cls) -> ResourceSnapshot:
        """The zero-valued snapshot held before the first publish. / 首次发布前的零值快照。"""
        return cls()

    def copy(self) -> ResourceSnapshot:
        """Return an equal snapshot that shares no sequence with this one."""
        return dataclasses.replace(self, network_traffic=tuple(self.network_traffic))

    def with_traffic(self, traffic: Iterable[NetworkTraffic]) -> ResourceSnapshot:
        return dataclasses.replace(self, network_traffic=tuple(traffic))

    def to_dict(self) -> dict[str, Any]:
        """
        Plain-dict view for the reporting layer (e.g. a /sys/stats response).
        供报告层使用的普通字典视图（例如 /sys/stats 响应）。
        """
        return {
            "cpuUsageRate": self.cpu_usage_rate,
            "memUsageRate": self.mem_usage_rate,
            "diskUsageRate": self.disk_usage_rate,
            "networkTraffic": [t.to_dict() for t in self.network_traffic],
        }


# ======================================================================
# Reader/writer lock / 读写锁
# ======================================================================

class RWLock:
    """
    Reader-shared, writer-exclusive lock with writer preference.
    读共享、写独占的锁，写者优先。

    Once a writer is waiting, new readers queue behind it so a steady
    stream of readers cannot starve the publisher. A reader can never
    upgrade to a writer.
    一旦有写者在等待，新的读者会排在其后，因此持续的读请求不会饿死发布者。
    读者不能升级为写者。
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers: int = 0
        self._writer_active: bool = False
        self._writers_waiting: int = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer_active or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer_active or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer_active = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer_active:
                raise RuntimeError("release_write() called without a matching acquire_write()")
            self._writer_active = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def reader_count(self) -> int:
        """Readers currently holding the lock. / 当前持有锁的读者数。"""
        with self._cond:
            return self._readers


# ======================================================================
# SnapshotStore: the single shared mutable resource
# 快照存储：唯一的共享可变资源
# ======================================================================

class SnapshotStore:
    """
    Holds the most recently published ResourceSnapshot.
    保存最近一次发布的 ResourceSnapshot。

    Owned by the process bootstrap and handed by reference to the
    collection cycle (writer) and the reporting layer (readers).
    由进程引导程序持有，并以引用方式交给采集周期（写者）和报告层（读者）。
    """

    def __init__(self, initial: ResourceSnapshot | None = None):
        self._lock = RWLock()
        self._current: ResourceSnapshot = (initial or ResourceSnapshot.empty()).copy()
        self._version: int = 0

    def publish(self, snapshot: ResourceSnapshot) -> None:
        """
        Replace the current snapshot as a whole.
        整体替换当前快照。

        The traffic sequence is copied so the store never aliases the
        caller's working buffer. No I/O happens under the lock.
        流量序列会被复制，存储绝不与调用方的工作缓冲区共享引用。锁内不做 I/O。
        """
        fresh = snapshot.copy()
        with self._lock.write_locked():
            self._current = fresh
            self._version += 1

    def read_current(self) -> ResourceSnapshot:
        """
        Return a private copy of the current snapshot.
        返回当前快照的私有副本。
        """
        with self._lock.read_locked():
            return self._current.copy()

    @property
    def version(self) -> int:
        """Number of publishes so far (0 = nothing published yet). / 迄今发布次数。"""
        with self._lock.read_locked():
            return self._version
