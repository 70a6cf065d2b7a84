"""
=============================================================================
BOUNDED CALLBACK POOL
=============================================================================

Connection callbacks (connected, data available, closed) never run on the
listener thread. The listener hands each one to this pool and goes straight
back to polling, so a slow command can never stall the accept loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Callback Pool                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   listener thread                                                    │
    │        │ submit(handler, args=(event,), block=False)                 │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  TASK QUEUE   [event] [event] [event] ...                    │   │
    │   └──────────────────────┬──────────────────────────────────────┘   │
    │                          │ get()                                     │
    │                          ▼                                           │
    │   ┌──────────┐ ┌──────────┐ ┌──────────┐        ┌──────────┐        │
    │   │ Worker 0 │ │ Worker 1 │ │ Worker 2 │  ...   │ Worker N │        │
    │   └──────────┘ └──────────┘ └──────────┘        └──────────┘        │
    │                                                  N < max_workers     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

min_workers threads start eagerly. When every worker is busy and work is
queued, one more is added, never exceeding max_workers. That upper bound is
the maximum number of callbacks executing at once.

Shutdown uses the "poison pill" pattern: one None per worker in the queue.
=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, for monitoring."""
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred callback: call func(*args, **kwargs) on a worker.

    Attributes:
        func: The callback.
        args: Positional arguments.
        kwargs: Keyword arguments.
        submitted_at: When the task was queued (for queue-wait logging).
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread pulling tasks from the shared queue.

    A task that raises is logged and counted; the worker keeps going.
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 1.0
    ):
        super().__init__(name=f"tcpconsole-worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        waited = start_time - task.submitted_at
        if waited > 1.0:
            logger.debug(f"Worker {self.worker_id} picked up task after {waited:.2f}s in queue")

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            # A failing callback must not kill the worker
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop."""
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool with a hard cap on concurrent callbacks.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=100)
        pool.start()
        pool.submit(handler, args=(event,), block=False)
        pool.shutdown(wait=False)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 100,
        queue_size: int = 1000,
        idle_timeout: float = 1.0
    ):
        """
        Args:
            min_workers: Workers started up front. Clamped to max_workers.
            max_workers: Upper bound on worker threads.
            queue_size: Maximum number of queued tasks.
            idle_timeout: Seconds an idle worker waits before re-checking
                          for shutdown.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        self.min_workers = max(1, min(min_workers, max_workers))
        self.max_workers = max_workers
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)

        self._workers: list = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Start the pool with min_workers threads."""
        if self._started:
            return

        logger.info(
            f"Starting callback pool with {self.min_workers} workers "
            f"(max {self.max_workers})"
        )

        self._drain_queue()
        self._shutdown = False
        self._started = True
        for _ in range(self.min_workers):
            self._add_worker()

    def _add_worker(self) -> Optional[Worker]:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return None

            worker = Worker(
                task_queue=self._task_queue,
                worker_id=self._next_worker_id,
                idle_timeout=self.idle_timeout
            )
            self._next_worker_id += 1
            self._workers.append(worker)
            worker.start()
            return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Queue a callback.

        Args:
            func: The callback.
            args: Positional arguments.
            kwargs: Keyword arguments.
            block: Wait for queue space when the queue is full.
            queue_timeout: Longest wait for queue space when blocking.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        # All busy and work waiting: add one worker, up to max_workers
        with self._lock:
            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            total = len(self._workers)

        if busy_count >= total and total < self.max_workers and self._task_queue.qsize() > 0:
            logger.debug(f"Scaling up: {total} -> {total + 1} workers")
            self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks finish first. When False, queued tasks
                  are discarded.
            timeout: Longest wait for the queue to drain.
        """
        if not self._started or self._shutdown:
            return

        logger.info("Shutting down callback pool...")
        self._shutdown = True

        if wait:
            deadline = None if timeout is None else time.time() + timeout
            while not self._task_queue.empty():
                if deadline is not None and time.time() > deadline:
                    logger.warning("Callback pool shutdown timeout, abandoning queued tasks")
                    break
                time.sleep(0.05)

        self._drain_queue()

        with self._lock:
            workers = list(self._workers)

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass

        current = threading.current_thread()
        for worker in workers:
            if worker is not current:
                worker.join(timeout=2.0)

        tasks = self.stats["tasks"]

        with self._lock:
            self._workers.clear()
        self._started = False

        logger.info(
            f"Callback pool shutdown complete: {tasks['completed']} callbacks run, "
            f"{tasks['failed']} failed"
        )

    def _drain_queue(self):
        while True:
            try:
                self._task_queue.get_nowait()
            except queue.Empty:
                return
            self._task_queue.task_done()

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def worker_count(self) -> int:
        with self._lock:
            return len(self._workers)

    @property
    def stats(self) -> dict:
        """Worker and task counts."""
        with self._lock:
            workers = list(self._workers)

        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
            },
        }
