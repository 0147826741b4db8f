from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from lifecycle_kernel.kernel.errors import KernelInternalError
from lifecycle_kernel.observability.logger import get_logger
from lifecycle_kernel.store.hierarchical_store import CloseableResource

_logger = get_logger("lifecycle_kernel.timeout.scheduler")

WATCHER_THREAD_NAME = "lifecycle-kernel-timeout-watcher"


@dataclass(slots=True)
class ScheduledAction:
    # Handle returned by DeadlineScheduler.schedule; cancel() is idempotent.
    deadline: float
    action: Callable[[], None]
    cancelled: bool = False
    fired: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def cancel(self) -> bool:
        # Returns False when the action already fired.
        with self._lock:
            if self.fired:
                return False
            self.cancelled = True
            return True

    def _claim(self) -> bool:
        with self._lock:
            if self.cancelled:
                return False
            self.fired = True
            return True


class DeadlineScheduler:
    # Single watcher thread firing deadline actions in deadline order; started on first use.
    def __init__(self, thread_name: str = WATCHER_THREAD_NAME) -> None:
        self._thread_name = thread_name
        self._condition = threading.Condition()
        self._queue: list[tuple[float, int, ScheduledAction]] = []
        self._sequence = itertools.count()
        self._thread: threading.Thread | None = None
        self._shutdown = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def schedule(self, delay_seconds: float, action: Callable[[], None]) -> ScheduledAction:
        scheduled = ScheduledAction(deadline=time.monotonic() + max(delay_seconds, 0.0), action=action)
        with self._condition:
            if self._shutdown:
                raise KernelInternalError("DeadlineScheduler has already been shut down")
            heapq.heappush(self._queue, (scheduled.deadline, next(self._sequence), scheduled))
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self._thread_name, daemon=True)
                self._thread.start()
            self._condition.notify()
        return scheduled

    def shutdown(self, timeout: float = 5.0) -> None:
        with self._condition:
            if self._shutdown:
                return
            self._shutdown = True
            self._queue.clear()
            self._condition.notify_all()
            thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)
        if thread.is_alive():
            raise KernelInternalError("Timeout watcher thread could not be stopped in an orderly manner")

    def _run(self) -> None:
        while True:
            with self._condition:
                while not self._shutdown and not self._queue:
                    self._condition.wait()
                if self._shutdown:
                    return
                deadline, _, scheduled = self._queue[0]
                remaining = deadline - time.monotonic()
                if remaining > 0:
                    self._condition.wait(remaining)
                    continue
                heapq.heappop(self._queue)
            if scheduled._claim():
                try:
                    scheduled.action()
                except Exception as exc:  # noqa: BLE001 - a failing action must not stop the watcher
                    _logger.warning("Deadline action failed", error=repr(exc))


class TimeoutExecutorResource(CloseableResource):
    # Root-store owned scheduler shared by every same-thread timeout invocation of a run.
    def __init__(self) -> None:
        self._scheduler = DeadlineScheduler()

    @property
    def scheduler(self) -> DeadlineScheduler:
        return self._scheduler

    def close(self) -> None:
        self._scheduler.shutdown()
