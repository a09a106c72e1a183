"""
Tests for CollectionCycle and CollectionLoop.
采集周期与采集循环测试。

Tests cover:
  - Concurrent fan-out and deterministic merge / 并发扇出与确定性合并
  - Partial failure keeps the previous value / 部分失败保留上次的值
  - Loop state machine with a fake clock / 使用假时钟的循环状态机
  - No overlapping cycles / 周期不重叠
  - Cancellation latency / 取消延迟
"""

import logging
import threading
import time

import pytest

from hostpulse.core.clock import Clock, WaitOutcome
from hostpulse.core.snapshot import NetworkTraffic, ResourceSnapshot, SnapshotStore
from hostpulse.environment.resource_monitor import CounterReadError
from hostpulse.environment.samplers import Samplers
from hostpulse.runtime.collector import CollectionCycle, CollectionLoop, LoopState


def _fixed_samplers(cpu=10.0, mem=20.0, disk=30.0, traffic=None, delay=0.0):
    traffic = traffic if traffic is not None else [NetworkTraffic("eth0", 8000.0, 8000.0)]

    def delayed(value):
        def fn():
            if delay:
                time.sleep(delay)
            return value() if callable(value) else value
        return fn

    return Samplers(
        cpu=delayed(cpu),
        memory=delayed(mem),
        disk=delayed(disk),
        network=delayed(lambda: list(traffic)),
    )


def _failing(counter="memory"):
    def fn():
        raise CounterReadError(counter, PermissionError("denied"))
    return fn


class ScriptedClock(Clock):
    """Returns the scripted wait outcomes; records the requested delays."""

    def __init__(self, outcomes):
        super().__init__()
        self._outcomes = list(outcomes)
        self.delays: list[float] = []

    def wait(self, timeout_s, cancel_event):
        self.delays.append(timeout_s)
        if not self._outcomes:
            return WaitOutcome.CANCELLED
        return self._outcomes.pop(0)


# ======================================================================
# CollectionCycle / 采集周期
# ======================================================================

class TestCollectionCycle:
    def test_publishes_merged_snapshot(self):
        store = SnapshotStore()
        cycle = CollectionCycle(store, samplers=_fixed_samplers())
        snap = cycle.run_once()

        assert snap == store.read_current()
        assert snap.cpu_usage_rate == 10.0
        assert snap.mem_usage_rate == 20.0
        assert snap.disk_usage_rate == 30.0
        assert snap.network_traffic == (NetworkTraffic("eth0", 8000.0, 8000.0),)
        assert store.version == 1

    def test_samplers_run_concurrently(self):
        """Four 0.3 s samplers must finish in well under 4 × 0.3 s."""
        cycle = CollectionCycle(SnapshotStore(), samplers=_fixed_samplers(delay=0.3))
        t0 = time.monotonic()
        cycle.run_once()
        elapsed = time.monotonic() - t0
        assert elapsed < 0.9, f"cycle took {elapsed:.2f}s; samplers ran serially?"

    def test_merge_ignores_completion_order(self):
        def slow_cpu():
            time.sleep(0.2)
            return 70.0

        samplers = Samplers(cpu=slow_cpu, memory=lambda: 1.0, disk=lambda: 2.0, network=lambda: [])
        snap = CollectionCycle(SnapshotStore(), samplers=samplers).run_once()
        assert (snap.cpu_usage_rate, snap.mem_usage_rate, snap.disk_usage_rate) == (70.0, 1.0, 2.0)

    def test_failure_on_first_cycle_leaves_zero(self):
        samplers = Samplers(cpu=lambda: 55.0, memory=_failing(), disk=lambda: 66.0,
                            network=lambda: [NetworkTraffic("eth0", 1.0, 2.0)])
        cycle = CollectionCycle(SnapshotStore(), samplers=samplers)
        snap = cycle.run_once()

        assert snap.mem_usage_rate == 0.0
        assert snap.cpu_usage_rate == 55.0
        assert snap.disk_usage_rate == 66.0
        assert snap.network_traffic == (NetworkTraffic("eth0", 1.0, 2.0),)
        assert "memory" in cycle.last_errors

    def test_failure_keeps_previous_value(self):
        mem_values = [40.0, CounterReadError("memory", OSError("gone"))]

        def memory():
            v = mem_values.pop(0)
            if isinstance(v, Exception):
                raise v
            return v

        cpu_values = iter([11.0, 22.0])
        samplers = Samplers(cpu=lambda: next(cpu_values), memory=memory,
                            disk=lambda: 5.0, network=lambda: [])
        store = SnapshotStore()
        cycle = CollectionCycle(store, samplers=samplers)

        first = cycle.run_once()
        second = cycle.run_once()

        assert first.mem_usage_rate == 40.0
        assert second.mem_usage_rate == 40.0
        assert second.cpu_usage_rate == 22.0
        assert store.read_current() == second

    def test_network_failure_keeps_previous_traffic(self):
        calls = {"n": 0}

        def network():
            calls["n"] += 1
            if calls["n"] > 1:
                raise CounterReadError("network", OSError("nic vanished"))
            return [NetworkTraffic("eth0", 800.0, 400.0)]

        samplers = Samplers(cpu=lambda: 1.0, memory=lambda: 1.0, disk=lambda: 1.0, network=network)
        cycle = CollectionCycle(SnapshotStore(), samplers=samplers)
        cycle.run_once()
        snap = cycle.run_once()
        assert snap.network_traffic == (NetworkTraffic("eth0", 800.0, 400.0),)

    def test_all_samplers_failing_still_publishes(self):
        samplers = Samplers(cpu=_failing("cpu"), memory=_failing("memory"),
                            disk=_failing("disk"), network=_failing("network"))
        store = SnapshotStore()
        cycle = CollectionCycle(store, samplers=samplers)
        snap = cycle.run_once()
        assert snap == ResourceSnapshot.empty()
        assert store.version == 1
        assert set(cycle.last_errors) == {"cpu", "memory", "disk", "network"}

    def test_errors_clear_after_recovery(self):
        state = {"fail": True}

        def disk():
            if state["fail"]:
                raise CounterReadError("disk", OSError("busy"))
            return 12.0

        samplers = Samplers(cpu=lambda: 1.0, memory=lambda: 1.0, disk=disk, network=lambda: [])
        cycle = CollectionCycle(SnapshotStore(), samplers=samplers)
        cycle.run_once()
        assert "disk" in cycle.last_errors
        state["fail"] = False
        cycle.run_once()
        assert cycle.last_errors == {}

    def test_failure_logged_as_warning(self, caplog):
        caplog.set_level(logging.DEBUG, logger="hostpulse")
        samplers = Samplers(cpu=_failing("cpu"), memory=lambda: 1.0, disk=lambda: 1.0, network=lambda: [])
        CollectionCycle(SnapshotStore(), samplers=samplers).run_once()
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any("CPU usage rate" in r.getMessage() for r in warnings)

    def test_debug_mode_logs_one_summary_per_cycle(self, caplog):
        caplog.set_level(logging.DEBUG, logger="hostpulse")
        cycle = CollectionCycle(SnapshotStore(), samplers=_fixed_samplers(), debug=True)
        cycle.run_once()
        cycle.run_once()
        summaries = [r for r in caplog.records
                     if r.levelno == logging.INFO and "cycle complete" in r.getMessage()]
        assert len(summaries) == 2

    def test_normal_mode_is_quiet(self, caplog):
        caplog.set_level(logging.DEBUG, logger="hostpulse")
        CollectionCycle(SnapshotStore(), samplers=_fixed_samplers()).run_once()
        assert not any("cycle complete" in r.getMessage() for r in caplog.records)


# ======================================================================
# CollectionLoop state machine (fake clock) / 循环状态机（假时钟）
# ======================================================================

class TestCollectionLoopStateMachine:
    def test_first_wait_is_zero_then_period(self):
        clock = ScriptedClock([WaitOutcome.TIMED_OUT, WaitOutcome.TIMED_OUT, WaitOutcome.CANCELLED])
        store = SnapshotStore()
        loop = CollectionLoop(CollectionCycle(store, samplers=_fixed_samplers()), clock=clock, period_s=3.0)

        loop.run(threading.Event())

        assert clock.delays == [0.0, 3.0, 3.0]
        assert loop.cycles_completed == 2
        assert store.version == 2
        assert loop.state is LoopState.CANCELLED

    def test_cancelled_before_first_cycle_samples_nothing(self):
        clock = ScriptedClock([WaitOutcome.CANCELLED])
        store = SnapshotStore()
        loop = CollectionLoop(CollectionCycle(store, samplers=_fixed_samplers()), clock=clock)
        assert loop.state is LoopState.IDLE
        loop.run(threading.Event())
        assert loop.cycles_completed == 0
        assert store.version == 0
        assert loop.state is LoopState.CANCELLED

    def test_state_is_sampling_during_cycle(self):
        seen = []
        loop_ref = {}

        def cpu():
            seen.append(loop_ref["loop"].state)
            return 1.0

        samplers = Samplers(cpu=cpu, memory=lambda: 1.0, disk=lambda: 1.0, network=lambda: [])
        clock = ScriptedClock([WaitOutcome.TIMED_OUT, WaitOutcome.CANCELLED])
        loop = CollectionLoop(CollectionCycle(SnapshotStore(), samplers=samplers), clock=clock)
        loop_ref["loop"] = loop
        loop.run(threading.Event())
        assert seen == [LoopState.SAMPLING]

    def test_rejects_non_positive_period(self):
        with pytest.raises(ValueError):
            CollectionLoop(CollectionCycle(SnapshotStore(), samplers=_fixed_samplers()), period_s=0)

    def test_cycle_exception_escapes_loop(self):
        """A fault outside the samplers is left for the supervisor to isolate."""

        class BrokenStore(SnapshotStore):
            def publish(self, snapshot):
                raise RuntimeError("store corrupted")

        clock = ScriptedClock([WaitOutcome.TIMED_OUT])
        loop = CollectionLoop(CollectionCycle(BrokenStore(), samplers=_fixed_samplers()), clock=clock)
        with pytest.raises(RuntimeError):
            loop.run(threading.Event())


# ======================================================================
# CollectionLoop with real timing / 真实计时下的循环
# ======================================================================

class RecordingCycle:
    """Stands in for CollectionCycle; records start/end of each run."""

    def __init__(self, duration=0.05):
        self.duration = duration
        self.spans: list[tuple[float, float]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def run_once(self):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        start = time.monotonic()
        time.sleep(self.duration)
        end = time.monotonic()
        with self._lock:
            self.active -= 1
            self.spans.append((start, end))


class TestCollectionLoopTiming:
    def test_cycles_never_overlap(self):
        cycle = RecordingCycle(duration=0.05)
        loop = CollectionLoop(cycle, period_s=0.01)
        cancel = threading.Event()
        t = threading.Thread(target=loop.run, args=(cancel,))
        t.start()
        time.sleep(0.4)
        cancel.set()
        t.join(timeout=2)

        assert cycle.max_active == 1
        assert len(cycle.spans) >= 3
        for (_, prev_end), (next_start, _) in zip(cycle.spans, cycle.spans[1:]):
            assert next_start >= prev_end

    def test_publish_order_is_cycle_order(self):
        counter = {"n": 0}

        def cpu():
            counter["n"] += 1
            return float(counter["n"])

        samplers = Samplers(cpu=cpu, memory=lambda: 1.0, disk=lambda: 1.0, network=lambda: [])
        published = []

        class RecordingStore(SnapshotStore):
            def publish(self, snapshot):
                published.append(snapshot.cpu_usage_rate)
                super().publish(snapshot)

        loop = CollectionLoop(CollectionCycle(RecordingStore(), samplers=samplers), period_s=0.01)
        cancel = threading.Event()
        t = threading.Thread(target=loop.run, args=(cancel,))
        t.start()
        time.sleep(0.2)
        cancel.set()
        t.join(timeout=2)

        assert published == sorted(published)
        assert published == [float(i) for i in range(1, len(published) + 1)]

    def test_cancellation_during_wait_exits_promptly(self):
        """Period 3 s, cancel while waiting: exit well inside the period."""
        cycle = RecordingCycle(duration=0.01)
        loop = CollectionLoop(cycle, period_s=3.0)
        cancel = threading.Event()
        t = threading.Thread(target=loop.run, args=(cancel,))
        t.start()
        time.sleep(0.2)  # first cycle done, now waiting 3 s

        t0 = time.monotonic()
        cancel.set()
        t.join(timeout=5)
        elapsed = time.monotonic() - t0

        assert not t.is_alive()
        assert elapsed < 0.5, f"loop took {elapsed:.2f}s to observe cancellation"
        assert len(cycle.spans) == 1

    def test_cancellation_mid_sample_finishes_cycle_then_exits(self):
        """Cancel during a 1 s sample: cycle completes, no new one starts, exit ≈ 1 s."""
        in_sample = threading.Event()

        def slow_cpu():
            in_sample.set()
            time.sleep(1.0)
            return 42.0

        samplers = Samplers(cpu=slow_cpu, memory=lambda: 1.0, disk=lambda: 1.0, network=lambda: [])
        store = SnapshotStore()
        loop = CollectionLoop(CollectionCycle(store, samplers=samplers), period_s=3.0)
        cancel = threading.Event()
        t = threading.Thread(target=loop.run, args=(cancel,))
        t.start()
        assert in_sample.wait(1.0)

        t0 = time.monotonic()
        cancel.set()
        t.join(timeout=5)
        elapsed = time.monotonic() - t0

        assert not t.is_alive()
        assert elapsed < 1.5, f"shutdown latency {elapsed:.2f}s exceeds one sample"
        assert loop.cycles_completed == 1
        assert store.read_current().cpu_usage_rate == 42.0
        assert loop.state is LoopState.CANCELLED
