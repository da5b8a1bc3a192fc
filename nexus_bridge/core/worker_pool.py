"""
A fixed set of worker threads draining a shared FIFO task queue.
"""

import logging
import os
import queue
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar, Union

from nexus_bridge.exceptions import NexusBridgeError, TransientTransferError

log = logging.getLogger(__name__)

T = TypeVar("T")

MIN_WORKERS = 4
FALLBACK_WORKERS = 8


def resolve_worker_count(hint: int | None = None) -> int:
    """
    Returns the number of workers to start.

    An explicit positive hint picks the size, otherwise the CPU count does.
    Either way the pool never drops below four threads, since tasks spend
    most of their time waiting on I/O.
    """
    if hint and hint > 0:
        return max(MIN_WORKERS, hint)
    detected = os.cpu_count() or FALLBACK_WORKERS
    return max(MIN_WORKERS, detected)


@dataclass
class Task(Generic[T]):
    """A unit of work. `package_index` ties it back to the manifest entry."""

    kind: str
    package_index: int
    run: Callable[[], T]
    attempt: int = 1


@dataclass(frozen=True)
class Success(Generic[T]):
    task: Task[T]
    value: T


@dataclass(frozen=True)
class Failure:
    task: Task[Any]
    reason: str
    transient: bool = False
    error: BaseException | None = field(default=None, compare=False)


TaskResult = Union[Success[Any], Failure]


@dataclass
class PoolCounters:
    """Per-pool bookkeeping guarded by its own lock."""

    enqueued: int = 0
    completed: int = 0
    failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    def snapshot(self) -> tuple[int, int, int]:
        with self._lock:
            return self.enqueued, self.completed, self.failed


class WorkerPool:
    """
    Bounded thread pool with explicit drain semantics.

    Workers pull tasks from one shared queue. Every task outcome becomes a
    `Success` or `Failure`; nothing raised inside a task reaches the pool or
    its siblings. When a results queue is supplied, each result is put on it
    before the worker reports itself idle, so a coordinator reading that queue
    never misses a result after `drain()` returns.
    """

    def __init__(
        self,
        name: str,
        workers: int | None = None,
        results: "queue.Queue[TaskResult] | None" = None,
    ):
        self.name = name
        self.size = resolve_worker_count(workers)
        self.counters = PoolCounters()
        self._results = results

        self._tasks: deque[Task[Any]] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._idle = threading.Condition(self._lock)
        self._active = 0
        self._shutdown = False

        self._threads = [
            threading.Thread(target=self._worker, name=f"{name}-{i}", daemon=True)
            for i in range(self.size)
        ]
        for thread in self._threads:
            thread.start()
        log.debug(f"Started '{name}' pool with {self.size} workers.")

    @property
    def active_count(self) -> int:
        with self._lock:
            return self._active

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def submit(self, task: Task[Any]) -> None:
        """Queues a task without blocking."""
        with self._lock:
            if self._shutdown:
                raise RuntimeError(f"Pool '{self.name}' is shut down.")
            self._tasks.append(task)
            self.counters.add("enqueued")
            self._not_empty.notify()

    def drain(self) -> None:
        """Blocks until the queue is empty and no task is running."""
        with self._lock:
            while self._tasks or self._active:
                self._idle.wait()

    def shutdown(self, wait: bool = True) -> None:
        """
        Stops the workers once the queue is empty. Queued and in-flight tasks
        still run to completion.
        """
        with self._lock:
            self._shutdown = True
            self._not_empty.notify_all()
        if wait:
            for thread in self._threads:
                thread.join()

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)

    def _worker(self) -> None:
        while True:
            with self._lock:
                while not self._tasks and not self._shutdown:
                    self._not_empty.wait()
                if not self._tasks:
                    return
                task = self._tasks.popleft()
                self._active += 1

            result = self._execute(task)
            if self._results is not None:
                self._results.put(result)

            with self._lock:
                self._active -= 1
                if not self._tasks and not self._active:
                    self._idle.notify_all()

    def _execute(self, task: Task[Any]) -> TaskResult:
        try:
            value = task.run()
        except NexusBridgeError as e:
            self.counters.add("failed")
            return Failure(
                task, str(e), transient=isinstance(e, TransientTransferError), error=e
            )
        except Exception as e:
            self.counters.add("failed")
            log.debug(f"Unexpected error in {task.kind} task", exc_info=True)
            return Failure(task, f"{type(e).__name__}: {e}", error=e)
        self.counters.add("completed")
        return Success(task, value)
