"""
=============================================================================
THREAD POOL
=============================================================================

Each accepted connection becomes one task. A small pool of worker threads
runs those tasks, so a slow client only ties up one worker while the
accept loop and the other workers carry on.

    ┌──────────────┐   submit()   ┌─────────────────┐   get()   ┌──────────┐
    │ Accept loop  │ ───────────► │  Bounded queue  │ ────────► │ Worker 1 │
    │ (main thread)│              │  [conn][conn].. │ ────────► │ Worker 2 │
    └──────────────┘              └─────────────────┘ ────────► │ Worker N │
                                                                └──────────┘

- min_workers threads are started up front
- one more is added (up to max_workers) whenever every worker is busy
  and tasks are waiting
- the queue is bounded: when it's full submit() returns False and the
  caller drops the connection instead of buffering without limit
- shutdown() lets queued and running tasks finish, then stops workers
  with one "poison pill" (None) each

Why threads and not asyncio? Every step of a request (TLS read, stat,
read file, libmagic, write) is blocking, short, and independent. Threads
keep each handler a plain synchronous function.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: ``func(*args)`` run by some worker later."""

    func: Callable[..., Any]
    args: tuple = ()
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread: take a task, run it, repeat until a poison pill.

    Exceptions raised by a task are logged and counted; they never kill
    the worker.
    """

    def __init__(self, task_queue: "queue.Queue[Optional[Task]]", worker_id: int):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            task = self.task_queue.get()
            try:
                if task is None:  # poison pill
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()
        try:
            task.func(*task.args)
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE


class ThreadPool:
    """
    Bounded pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()

        if not pool.submit(handle_connection, args=(conn,)):
            conn.close()  # overloaded

        pool.shutdown(wait=True, timeout=30.0)
    """

    def __init__(self, min_workers: int = 4, max_workers: int = 16, queue_size: int = 128):
        """
        Args:
            min_workers: Threads started by start().
            max_workers: Upper bound when scaling up under load.
            queue_size: Maximum number of tasks waiting for a worker.
        """
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError("Need 1 <= min_workers <= max_workers")

        self.min_workers = min_workers
        self.max_workers = max_workers

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()  # protects _workers
        self._started = False
        self._shutting_down = False

    def start(self):
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        for _ in range(self.min_workers):
            self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        with self._lock:
            worker = Worker(self._task_queue, worker_id=len(self._workers))
            self._workers.append(worker)
            worker.start()
            return worker

    def submit(self, func: Callable[..., Any], args: tuple = ()) -> bool:
        """
        Queue ``func(*args)`` without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool isn't started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutting_down:
            raise RuntimeError("Thread pool is shutting down")

        try:
            self._task_queue.put(Task(func=func, args=args), block=False)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker when all are busy and work is waiting."""
        with self._lock:
            worker_count = len(self._workers)
            if worker_count >= self.max_workers or self._task_queue.qsize() == 0:
                return
            if any(w.state is WorkerState.IDLE for w in self._workers):
                return

        logger.debug(f"Scaling up: {worker_count} -> {worker_count + 1} workers")
        self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued and running tasks finish before stopping.
                  If False, queued tasks are dropped (running ones still
                  complete, threads can't be killed).
            timeout: Upper bound in seconds for the whole shutdown.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutting_down = True
        deadline = None if timeout is None else time.time() + timeout

        if not wait:
            self._drop_queued_tasks()

        # Pills go in behind any queued tasks, so those still run first.
        for _ in self._workers:
            try:
                self._task_queue.put(None, timeout=self._remaining(deadline))
            except queue.Full:
                logger.warning("Shutdown timeout while stopping workers")
                break

        for worker in self._workers:
            worker.join(timeout=self._remaining(deadline))
            if worker.is_alive():
                logger.warning(f"Worker {worker.worker_id} still busy at shutdown")

        self._workers.clear()
        self._started = False
        logger.info("Thread pool shutdown complete")

    def _drop_queued_tasks(self):
        while True:
            try:
                self._task_queue.get_nowait()
            except queue.Empty:
                return
            self._task_queue.task_done()

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - time.time())

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state is WorkerState.BUSY)

    @property
    def queue_size(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
            },
            "tasks": {
                "queued": self.queue_size,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
