"""
Clock: the collector's "metronome".
时钟：采集器的"节拍器"。

Every suspension point in the collection pipeline goes through a Clock:
the collection loop's cancellable period wait, the fixed one-second
sampling sleeps, and elapsed-time measurement for delta-based rates.
HostPulse hands one Clock to both the loop and the samplers; tests swap
in a subclass to drive them without real timers.

采集流水线中的每一个挂起点都经过时钟：采集循环的可取消周期等待、
固定 1 秒的采样休眠，以及差值速率计算所需的耗时测量。
HostPulse 将同一个时钟交给循环和采样器；测试中可以替换为子类，无需真实计时器即可驱动它们。
"""

import threading
import time
from enum import Enum


class WaitOutcome(Enum):
    """
    Why a cancellable wait returned.
    可取消等待返回的原因。
    """
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class Clock:
    """
    Monotonic time source with a cancellable wait.
    带可取消等待的单调时间源。
    """

    # ------------------------------------------------------------------
    # Public API / 公共接口
    # ------------------------------------------------------------------

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def wait(self, timeout_s: float, cancel_event: threading.Event) -> WaitOutcome:
        """
        Block for *timeout_s* seconds or until *cancel_event* is set.
        阻塞 timeout_s 秒，或直到 cancel_event 被设置。

        An already-set event wins even with a zero timeout, so a loop
        never starts new work once cancellation has been requested.
        即使超时为零，已设置的事件也优先，因此取消请求后循环不会再开始新工作。

        Returns / 返回
        -------
        WaitOutcome
            CANCELLED if the event fired, TIMED_OUT otherwise.
        """
        if cancel_event.is_set():
            return WaitOutcome.CANCELLED
        if cancel_event.wait(max(timeout_s, 0.0)):
            return WaitOutcome.CANCELLED
        return WaitOutcome.TIMED_OUT
