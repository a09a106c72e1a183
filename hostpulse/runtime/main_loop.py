"""
HostPulse: process bootstrap for the resource-monitoring daemon.
HostPulse：资源监控守护进程的引导程序。

Wires every component together and drives them through one start/stop
lifecycle:

将所有组件串联起来，并驱动它们经历统一的启动/停止生命周期：

    ①  加载配置   / Load config, set up logging
    ②  快照存储   / Create the SnapshotStore (reader handle for reporting)
    ③  采集周期   / Build the CollectionCycle and CollectionLoop
    ④  注册工作者 / Register the loop with the TaskSupervisor
    ⑤  启动       / start_all(), then block until a termination request
    ⑥  停止       / stop_all(shutdown_timeout) and report a run summary

A termination request is SIGINT, SIGTERM, SIGUSR1, or a worker fault
escalated by the panic handler.
终止请求可以是 SIGINT、SIGTERM、SIGUSR1，或由 panic 处理器上报的工作者故障。
"""

import json
import logging
import os
import signal
import sys
import threading
from typing import Optional

from hostpulse.core.clock import Clock
from hostpulse.core.snapshot import SnapshotStore
from hostpulse.environment.samplers import Samplers
from hostpulse.runtime.collector import CollectionCycle, CollectionLoop
from hostpulse.runtime.config import Config, parse_args
from hostpulse.runtime.logger import setup_logging
from hostpulse.runtime.supervisor import TaskSupervisor

logger = logging.getLogger(__name__)

COLLECTOR_TASK = "resource-collector"

_SHUTDOWN_SIGNALS = ("SIGINT", "SIGTERM", "SIGUSR1")
_IGNORED_SIGNALS = ("SIGHUP", "SIGQUIT", "SIGTSTP", "SIGALRM", "SIGVTALRM", "SIGPROF")


class HostPulse:
    """
    The daemon: one supervisor, one collection loop, one snapshot store.
    守护进程：一个监管器、一个采集循环、一个快照存储。

    Parameters / 参数
    ----------
    config : Config
        Loaded configuration. / 已加载的配置。
    debug : bool
        Force debug mode regardless of config. / 强制开启调试模式。
    samplers : Samplers, optional
        Override the psutil-backed samplers (useful for testing).
        覆盖基于 psutil 的采样器（用于测试）。
    clock : Clock, optional
        Time source shared by the loop and the default samplers (useful for testing).
    """

    def __init__(
        self,
        config: Config,
        debug: bool = False,
        samplers: Optional[Samplers] = None,
        clock: Optional[Clock] = None,
    ):
        self._config = config
        self._debug = debug or config.debug
        self._shutdown = threading.Event()
        self._shutdown_reason: Optional[str] = None
        self._clock = clock or Clock()

        # ---- ① Snapshot store / 快照存储 ----
        self._store = SnapshotStore()

        # ---- ② Collection cycle + loop / 采集周期与循环 ----
        self._cycle = CollectionCycle(
            self._store,
            samplers=samplers or Samplers.default(
                mount_point=config.disk_mount_point,
                interval_s=config.sample_interval_s,
                clock=self._clock,
            ),
            debug=self._debug,
        )
        self._loop = CollectionLoop(self._cycle, clock=self._clock, period_s=config.period_s)

        # ---- ③ Supervisor / 监管器 ----
        self._supervisor = TaskSupervisor(panic_handler=self._panic_handler)
        self._supervisor.register(COLLECTOR_TASK, self._loop.run)

    # ==================================================================
    # Public API / 公共接口
    # ==================================================================

    def run(self) -> dict:
        """
        Start all workers and block until a termination request.
        启动所有工作者并阻塞，直到收到终止请求。

        Returns / 返回
        -------
        dict
            Summary statistics of the run. / 运行的汇总统计。
        """
        previous_handlers = self._install_signal_handlers()
        logger.info(
            "start %s v%s (pid:%d, mode:%s)",
            self._config.system_name, self._config.system_version, os.getpid(), self.mode,
        )

        start_time = self._clock.monotonic()
        clean = False
        try:
            self._supervisor.start_all()
            while not self._shutdown.wait(0.5):
                pass
            logger.info("shutting down: %s", self._shutdown_reason)
        finally:
            clean = self._supervisor.stop_all(self._config.shutdown_timeout_s)
            self._restore_signal_handlers(previous_handlers)

        summary = {
            "cycles_completed": self._loop.cycles_completed,
            "elapsed_seconds": round(self._clock.monotonic() - start_time, 2),
            "clean_shutdown": clean,
            "shutdown_reason": self._shutdown_reason,
            "worker_faults": self._supervisor.fault_count,
            "pid": os.getpid(),
            "mode": self.mode,
        }
        logger.info("stop %s: %s", self._config.system_name, summary)
        return summary

    def collect_once(self) -> dict:
        """Run a single collection cycle and return the snapshot as a dict. / 运行单次采集周期。"""
        return self._cycle.run_once().to_dict()

    def request_shutdown(self, reason: str = "requested") -> None:
        """
        Ask the process to stop. Safe from any thread or signal handler.
        请求进程停止。可在任意线程或信号处理器中安全调用。
        """
        if not self._shutdown.is_set():
            self._shutdown_reason = reason
            self._shutdown.set()

    # ==================================================================
    # Signals and panics / 信号与 panic
    # ==================================================================

    def _panic_handler(self, exc: BaseException) -> None:
        """A worker faulted: escalate to a process-level termination request. / 工作者故障：上报为进程级终止请求。"""
        logger.error("panic occurred: %r", exc)
        self.request_shutdown(f"worker panic: {type(exc).__name__}")

    def _handle_signal(self, signum, frame) -> None:
        """Handle SIGINT/SIGTERM/SIGUSR1 for graceful shutdown. / 处理终止信号以优雅退出。"""
        name = signal.Signals(signum).name
        logger.info("received %s (signum:%d)", name, signum)
        self.request_shutdown(f"signal {name}")

    def _install_signal_handlers(self) -> dict:
        # signal.signal() only works from the main thread.
        if threading.current_thread() is not threading.main_thread():
            return {}
        previous = {}
        for name in _SHUTDOWN_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                previous[signum] = signal.signal(signum, self._handle_signal)
        for name in _IGNORED_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                previous[signum] = signal.signal(signum, signal.SIG_IGN)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    # ==================================================================
    # Properties for testing / 测试用属性
    # ==================================================================

    @property
    def store(self) -> SnapshotStore:
        """Reader handle for the reporting layer. / 供报告层读取的句柄。"""
        return self._store

    @property
    def supervisor(self) -> TaskSupervisor:
        return self._supervisor

    @property
    def loop(self) -> CollectionLoop:
        return self._loop

    @property
    def cycle(self) -> CollectionCycle:
        return self._cycle

    @property
    def debug(self) -> bool:
        return self._debug

    @property
    def mode(self) -> str:
        return "debug" if self._debug else "normal"

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    @property
    def shutdown_reason(self) -> Optional[str]:
        return self._shutdown_reason


# ==================================================================
# Entry point / 入口点
# ==================================================================

def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point: parse args, load config, run the daemon.
    主入口点：解析参数，加载配置，运行守护进程。
    """
    args = parse_args(argv)
    config = Config.load(args.config)
    debug = args.debug or config.debug
    setup_logging(level=config.log_level, debug=debug, fmt=config.log_format)

    daemon = HostPulse(config, debug=debug)
    if args.once:
        print(json.dumps(daemon.collect_once(), indent=2))
        return 0

    summary = daemon.run()
    return 0 if summary["worker_faults"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
