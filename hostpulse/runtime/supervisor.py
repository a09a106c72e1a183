"""
TaskSupervisor: lifecycle manager for long-lived background workers.
任务监管器：长期运行后台工作者的生命周期管理器。

Workers are registered by name, started together, and stopped together
through one shared cancellation event. Each worker runs in its own
thread behind a fault barrier: anything a worker raises is caught,
logged, and handed to the panic handler, and the other workers keep
running. Shutdown is bounded: stop_all() waits up to a timeout and then
returns control whether or not every worker has finished.

工作者按名称注册，一起启动，并通过一个共享的取消事件一起停止。
每个工作者在独立线程中运行，外面有一道故障屏障：工作者抛出的任何异常
都会被捕获、记录并交给 panic 处理器，其他工作者继续运行。
关闭是有界的：stop_all() 最多等待超时时间，然后无论工作者是否全部结束都交还控制权。

Design principles:
    1. Catch ALL exceptions at the thread boundary; nothing escapes a worker.
    2. Cancellation is a broadcast; it is observed, never consumed.
    3. Overrunning workers are abandoned, not killed.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

WorkerFn = Callable[[threading.Event], None]
PanicHandler = Callable[[BaseException], None]


class DuplicateTaskError(ValueError):
    """Raised when a task name is registered twice. / 任务名称重复注册时抛出。"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"task already registered: {name!r}")


@dataclass(frozen=True)
class WorkerTask:
    """
    A named, cancellable unit of long-running work.
    一个具名、可取消的长期工作单元。

    Attributes / 属性
    ----------
    name : str
        Unique name within one supervisor.
    run : callable
        run(cancel_event) -> None. Must return once cancel_event is set.
    """
    name: str
    run: WorkerFn


class TaskSupervisor:
    """
    Starts, isolates and stops a fixed set of worker threads.
    启动、隔离并停止一组固定的工作者线程。

    Usage / 用法
    -----
    ```python
    sup = TaskSupervisor(panic_handler=lambda exc: request_shutdown())
    sup.register("resource-collector", loop.run)
    sup.start_all()
    ...
    sup.stop_all(timeout=10.0)
    ```

    Parameters / 参数
    ----------
    panic_handler : callable, optional
        Called once with the exception value whenever a worker faults.
        每当工作者出错时，以异常值调用一次。
    """

    def __init__(self, panic_handler: Optional[PanicHandler] = None):
        self._panic_handler = panic_handler
        self._tasks: dict[str, WorkerTask] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._started = False
        self._fault_count: int = 0

    # ==================================================================
    # Core API
    # ==================================================================

    def register(self, name: str, run: WorkerFn) -> WorkerTask:
        """
        Register a worker. Must happen before start_all().
        注册工作者。必须在 start_all() 之前调用。

        Raises / 异常
        ------
        DuplicateTaskError
            If *name* is already registered.
        RuntimeError
            If the supervisor has already started.
        """
        with self._lock:
            if self._started:
                raise RuntimeError(f"cannot register {name!r}: supervisor already started")
            if name in self._tasks:
                raise DuplicateTaskError(name)
            task = WorkerTask(name=name, run=run)
            self._tasks[name] = task
            return task

    def start_all(self) -> None:
        """
        Launch every registered worker in its own thread.
        在各自的线程中启动所有已注册的工作者。
        """
        with self._lock:
            if self._started:
                raise RuntimeError("supervisor already started")
            self._started = True
            for task in self._tasks.values():
                thread = threading.Thread(
                    target=self._guarded_run,
                    args=(task,),
                    name=f"worker-{task.name}",
                    daemon=True,
                )
                self._threads[task.name] = thread
            threads = list(self._threads.values())

        for thread in threads:
            thread.start()
        logger.info("started %d worker(s): %s", len(threads), ", ".join(self._tasks))

    def stop_all(self, timeout: float) -> bool:
        """
        Broadcast cancellation and wait up to *timeout* seconds for workers.
        广播取消信号，并最多等待 timeout 秒让工作者退出。

        Advisory: never raises. Safe to call more than once.
        建议性操作：从不抛出异常，可多次调用。

        Returns / 返回
        -------
        bool
            True if every worker exited within the window.
        """
        self._cancel.set()
        deadline = time.monotonic() + max(timeout, 0.0)
        current = threading.current_thread()
        for thread in list(self._threads.values()):
            if thread is current or not thread.is_alive():
                continue
            thread.join(max(deadline - time.monotonic(), 0.0))

        lagging = self.running_tasks
        if lagging:
            logger.warning(
                "shutdown timed out after %.1fs; still running: %s",
                timeout, ", ".join(lagging),
            )
            return False
        logger.debug("all workers stopped")
        return True

    # ==================================================================
    # Fault barrier / 故障屏障
    # ==================================================================

    def _guarded_run(self, task: WorkerTask) -> None:
        try:
            task.run(self._cancel)
        except BaseException as exc:
            with self._lock:
                self._fault_count += 1
            logger.error("worker %r faulted: %r", task.name, exc, exc_info=exc)
            self._report_panic(exc)
            return
        if self._cancel.is_set():
            logger.debug("worker %r stopped", task.name)
        else:
            logger.info("worker %r exited on its own", task.name)

    def _report_panic(self, exc: BaseException) -> None:
        handler = self._panic_handler
        if handler is None:
            return
        try:
            handler(exc)
        except Exception:
            logger.exception("panic handler raised while handling %r", exc)

    # ==================================================================
    # Introspection / 状态查询
    # ==================================================================

    @property
    def panic_handler(self) -> Optional[PanicHandler]:
        return self._panic_handler

    @panic_handler.setter
    def panic_handler(self, handler: Optional[PanicHandler]) -> None:
        self._panic_handler = handler

    @property
    def cancel_event(self) -> threading.Event:
        """The shared cancellation signal. / 共享的取消信号。"""
        return self._cancel

    @property
    def started(self) -> bool:
        return self._started

    @property
    def task_names(self) -> list[str]:
        return list(self._tasks)

    @property
    def running_tasks(self) -> list[str]:
        """Names of workers whose threads are still alive. / 线程仍存活的工作者名称。"""
        return [name for name, t in self._threads.items() if t.is_alive()]

    def is_running(self, name: str) -> bool:
        thread = self._threads.get(name)
        return thread is not None and thread.is_alive()

    @property
    def fault_count(self) -> int:
        """Workers that ended with an exception. / 以异常结束的工作者数量。"""
        return self._fault_count
