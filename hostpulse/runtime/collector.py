"""
Collector: the periodic resource-collection pipeline.
采集器：周期性资源采集流水线。

Two pieces live here:

    CollectionCycle  one round: fan out to the four samplers, join,
                     merge, publish to the SnapshotStore.
    CollectionLoop   the supervised worker that triggers one cycle per
                     period and stops at the next wait boundary once
                     cancellation is requested.

这里有两部分：
    CollectionCycle  一轮采集：并发调用四个采样器、等待全部完成、合并、发布到 SnapshotStore。
    CollectionLoop   受监管的工作者，每个周期触发一次采集，
                     收到取消请求后在下一个等待边界停止。

Loop state machine / 循环状态机:

    IDLE → WAITING(0) → SAMPLING → WAITING(period) → SAMPLING → … → CANCELLED
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Any, Optional

from hostpulse.core.clock import Clock, WaitOutcome
from hostpulse.core.snapshot import ResourceSnapshot, SnapshotStore
from hostpulse.environment.samplers import Samplers

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_S = 3.0

# field name → description used in failure warnings
_SAMPLER_LABELS = {
    "cpu": "CPU usage rate",
    "memory": "memory usage rate",
    "disk": "disk usage rate",
    "network": "network traffic",
}

# Sentinel for a sampler that raised. / 采样器失败的标记。
_FAILED = object()


# ======================================================================
# CollectionCycle: one fan-out / fan-in round
# 采集周期：一轮扇出/扇入
# ======================================================================

class CollectionCycle:
    """
    Produces and publishes one ResourceSnapshot per call to run_once().
    每次调用 run_once() 产生并发布一个 ResourceSnapshot。

    A sampler that fails leaves its field at the previously published
    value (zero before the first publish); the failure is logged as a
    warning and the cycle still publishes.
    失败的采样器使其字段保持上次发布的值（首次发布前为零）；
    失败以警告记录，周期仍然发布。

    Parameters / 参数
    ----------
    store : SnapshotStore
        Where finished snapshots are published.
    samplers : Samplers, optional
        The four samplers (defaults to the psutil-backed ones).
    debug : bool
        Emit one summary line per completed cycle.
    """

    def __init__(
        self,
        store: SnapshotStore,
        samplers: Optional[Samplers] = None,
        debug: bool = False,
    ):
        self._store = store
        self._samplers = samplers or Samplers.default()
        self._debug = debug
        self._last_errors: dict[str, str] = {}

    def run_once(self) -> ResourceSnapshot:
        """
        Run all four samplers concurrently and publish the merged result.
        并发运行四个采样器并发布合并结果。
        """
        previous = self._store.read_current()
        calls = {
            "cpu": self._samplers.cpu,
            "memory": self._samplers.memory,
            "disk": self._samplers.disk,
            "network": self._samplers.network,
        }

        # Fresh pool per cycle: no state shared between generations.
        with ThreadPoolExecutor(max_workers=len(calls), thread_name_prefix="sampler") as pool:
            futures: dict[str, Future] = {name: pool.submit(fn) for name, fn in calls.items()}
            results = {name: self._collect(name, fut) for name, fut in futures.items()}

        snapshot = ResourceSnapshot(
            cpu_usage_rate=_pick(results["cpu"], previous.cpu_usage_rate),
            mem_usage_rate=_pick(results["memory"], previous.mem_usage_rate),
            disk_usage_rate=_pick(results["disk"], previous.disk_usage_rate),
            network_traffic=_pick(results["network"], previous.network_traffic),
        )
        self._store.publish(snapshot)

        if self._debug:
            self._log_summary(snapshot)
        return snapshot

    def _collect(self, name: str, future: Future) -> Any:
        """Join one sampler; return its value, or _FAILED after logging. / 等待一个采样器。"""
        exc = future.exception()
        if exc is None:
            self._last_errors.pop(name, None)
            return future.result()
        self._last_errors[name] = f"{type(exc).__name__}: {exc}"
        logger.warning("failed to get %s: %s", _SAMPLER_LABELS[name], exc)
        return _FAILED

    def _log_summary(self, snapshot: ResourceSnapshot) -> None:
        logger.info(
            "cycle complete: cpu=%.2f%% mem=%.2f%% disk=%.2f%% interfaces=%d",
            snapshot.cpu_usage_rate,
            snapshot.mem_usage_rate,
            snapshot.disk_usage_rate,
            len(snapshot.network_traffic),
        )
        for t in snapshot.network_traffic:
            logger.debug(
                "network traffic - interface: %s, inbound: %.2fbps, outbound: %.2fbps",
                t.interface, t.inbound_bps, t.outbound_bps,
            )

    @property
    def last_errors(self) -> dict[str, str]:
        """Sampler failures from the most recent cycle. / 最近一轮的采样器失败信息。"""
        return dict(self._last_errors)

    @property
    def store(self) -> SnapshotStore:
        return self._store


def _pick(value: Any, fallback: Any) -> Any:
    return fallback if value is _FAILED else value


# ======================================================================
# CollectionLoop: the supervised periodic worker
# 采集循环：受监管的周期性工作者
# ======================================================================

class LoopState(Enum):
    IDLE = "idle"
    WAITING = "waiting"
    SAMPLING = "sampling"
    CANCELLED = "cancelled"


class CollectionLoop:
    """
    Runs one CollectionCycle per period until cancelled.
    每个周期运行一次 CollectionCycle，直到被取消。

    Cancellation is only observed at the wait boundary: an in-flight
    cycle always finishes, and no cycle starts after cancellation.
    Cycles never overlap because the next wait begins only after the
    previous cycle has published.
    取消只在等待边界被观察到：进行中的周期总会完成，取消后不会开始新周期。
    由于下一次等待只在上一周期发布之后开始，周期之间从不重叠。

    Parameters / 参数
    ----------
    cycle : CollectionCycle
        The work done on each tick.
    clock : Clock, optional
        Source of the cancellable wait (inject a fake in tests).
    period_s : float
        Steady-state delay between cycles (default 3 s).
    """

    def __init__(
        self,
        cycle: CollectionCycle,
        clock: Optional[Clock] = None,
        period_s: float = DEFAULT_PERIOD_S,
    ):
        if period_s <= 0:
            raise ValueError("period_s must be positive")
        self._cycle = cycle
        self._clock = clock or Clock()
        self._period_s = period_s
        self._state = LoopState.IDLE
        self._cycles_completed: int = 0

    def run(self, cancel_event: threading.Event) -> None:
        """
        Worker body for TaskSupervisor.register().
        供 TaskSupervisor.register() 使用的工作者主体。
        """
        delay = 0.0
        while True:
            self._state = LoopState.WAITING
            outcome = self._clock.wait(delay, cancel_event)
            if outcome is WaitOutcome.CANCELLED:
                self._state = LoopState.CANCELLED
                logger.debug("collection loop cancelled after %d cycle(s)", self._cycles_completed)
                return

            self._state = LoopState.SAMPLING
            self._cycle.run_once()
            self._cycles_completed += 1
            delay = self._period_s

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    @property
    def period_s(self) -> float:
        return self._period_s
