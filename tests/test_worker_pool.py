from __future__ import annotations

import queue
import threading
import time

import pytest

from nexus_bridge.core.worker_pool import (
    Failure,
    Success,
    Task,
    WorkerPool,
    resolve_worker_count,
)
from nexus_bridge.exceptions import TransferRejectedError, TransientTransferError


def test_resolve_worker_count() -> None:
    assert resolve_worker_count(1) == 4
    assert resolve_worker_count(3) == 4
    assert resolve_worker_count(12) == 12
    assert resolve_worker_count(0) >= 4
    assert resolve_worker_count(None) >= 4


def test_drain_waits_for_every_task() -> None:
    results: queue.Queue = queue.Queue()
    done = []
    lock = threading.Lock()

    def work(i: int):
        time.sleep(0.01)
        with lock:
            done.append(i)
        return i

    with WorkerPool("test", 4, results) as pool:
        for i in range(20):
            pool.submit(Task("work", i, lambda i=i: work(i)))
        pool.drain()
        assert pool.active_count == 0
        assert pool.pending_count == 0
        assert sorted(done) == list(range(20))
        assert results.qsize() == 20

    enqueued, completed, failed = pool.counters.snapshot()
    assert enqueued == 20
    assert completed + failed == enqueued


def test_failures_do_not_stop_siblings() -> None:
    results: queue.Queue = queue.Queue()

    def boom():
        raise RuntimeError("broken")

    def transient():
        raise TransientTransferError("timeout")

    def rejected():
        raise TransferRejectedError("403")

    with WorkerPool("test", 2, results) as pool:
        pool.submit(Task("x", 0, boom))
        pool.submit(Task("x", 1, transient))
        pool.submit(Task("x", 2, rejected))
        pool.submit(Task("x", 3, lambda: "ok"))
        pool.drain()

    outcomes = {}
    while not results.empty():
        outcome = results.get_nowait()
        outcomes[outcome.task.package_index] = outcome

    assert isinstance(outcomes[3], Success) and outcomes[3].value == "ok"
    assert isinstance(outcomes[0], Failure) and not outcomes[0].transient
    assert "RuntimeError" in outcomes[0].reason
    assert outcomes[1].transient is True
    assert outcomes[2].transient is False
    assert pool.counters.snapshot() == (4, 1, 3)


def test_drain_on_idle_pool_returns_immediately() -> None:
    with WorkerPool("idle", 4) as pool:
        pool.drain()
        assert pool.active_count == 0


def test_submit_after_shutdown_raises() -> None:
    pool = WorkerPool("closed", 1)
    pool.shutdown()
    with pytest.raises(RuntimeError):
        pool.submit(Task("x", 0, lambda: None))


def test_tasks_submitted_from_inside_a_task_are_drained() -> None:
    results: queue.Queue = queue.Queue()
    with WorkerPool("chain", 2, results) as pool:

        def parent():
            pool.submit(Task("child", 1, lambda: "child"))
            return "parent"

        pool.submit(Task("parent", 0, parent))
        pool.drain()
        assert results.qsize() == 2
