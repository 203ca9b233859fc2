"""
=============================================================================
THREAD POOL
=============================================================================

Runs client connections on a bounded set of worker threads. The accept
loop submits one task per connection; when the queue is full the
connection is answered with 503 instead of piling up.

=============================================================================
STRUCTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept() ──► submit(handle, conn) ──► ┌───────────────────────┐   │
    │                                         │  Task queue (bounded) │   │
    │                       queue.Full ◄──────│  [T1] [T2] [T3] ...   │   │
    │                       → 503             └───────────┬───────────┘   │
    │                                                     │ get()         │
    │                        ┌────────────────────────────┼──────────┐    │
    │                        ▼                            ▼          ▼    │
    │                   ┌─────────┐                ┌─────────┐ ┌─────────┐│
    │                   │Worker-0 │                │Worker-1 │ │Worker-2 ││
    │                   └─────────┘                └─────────┘ └─────────┘│
    │                                                                      │
    │   Starts with min_workers threads and adds one (up to max_workers)  │
    │   whenever every worker is busy and tasks are waiting. Workers      │
    │   above min_workers exit after idle_timeout without a task.         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHUTDOWN
=============================================================================

    1. stop accepting submissions
    2. optionally wait for queued tasks to drain
    3. put one None "poison pill" per worker; a worker exits on None
    4. join each worker with a short timeout

=============================================================================
INTERVIEW QUESTIONS ABOUT THREAD POOLS
=============================================================================

Q: "Why a bounded queue?"
A: "An unbounded queue hides overload: latency grows without limit and
   memory with it. A bounded queue turns overload into an immediate,
   visible 503 that clients can retry."

Q: "Why threads and not processes for an HTTP file server?"
A: "The work is I/O bound. Socket and file reads release the GIL, so
   threads overlap well and share the read-only configuration for free."

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
    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """A unit of work: func(*args, **kwargs)."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.monotonic)


class Worker(threading.Thread):
    """
    A worker thread that pulls tasks off the shared queue.

    Daemon threads, so a stuck connection never keeps the process alive
    after shutdown.
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 60.0,
        may_retire: Optional[Callable[["Worker"], bool]] = None
    ):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.may_retire = may_retire

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                # Timeout so the shutdown flag is rechecked periodically
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                if self.may_retire is not None and self.may_retire(self):
                    logger.debug(f"Worker {self.worker_id} retiring after idle timeout")
                    break
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
        start_time = time.monotonic()

        try:
            task.func(*task.args, **task.kwargs)
            elapsed = time.monotonic() - start_time
            logger.debug(f"Worker {self.worker_id} completed task in {elapsed:.3f}s")
            self.tasks_completed += 1
        except Exception as e:
            # A failing connection must not take the worker down with it
            elapsed = time.monotonic() - start_time
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
    Bounded pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=1, max_workers=3, max_queue_size=64)
        pool.start()

        if not pool.submit(handle_connection, args=(conn,)):
            reject(conn)   # queue full

        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 1,
        max_workers: int = 3,
        max_queue_size: int = 64,
        idle_timeout: float = 60.0
    ):
        """
        Args:
            min_workers: Threads started up front.
            max_workers: Upper bound on threads.
            max_queue_size: Tasks allowed to wait for a free worker.
            idle_timeout: Seconds a worker waits for a task before it
                          rechecks for shutdown. Workers above
                          min_workers exit after one idle wait.
        """
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(
                f"Invalid worker bounds: min={min_workers}, max={max_workers}"
            )

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = max_queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=max_queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start the initial workers. Calling twice is a no-op."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        for _ in range(self.min_workers):
            self._add_worker()
        self._started = True

    def _add_worker(self) -> Worker:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                raise RuntimeError("Maximum workers reached")

            worker = Worker(
                task_queue=self._task_queue,
                worker_id=self._next_worker_id,
                idle_timeout=self.idle_timeout,
                may_retire=self._retire
            )
            self._next_worker_id += 1
            self._workers.append(worker)
            worker.start()
            return worker

    def _retire(self, worker: Worker) -> bool:
        """Drop an idle worker if the pool is above its minimum size."""
        with self._lock:
            if self._shutdown or len(self._workers) <= self.min_workers:
                return False
            if worker in self._workers:
                self._workers.remove(worker)
            return True

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
    ) -> bool:
        """
        Queue a task without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: Pool not started or shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})
        try:
            self._task_queue.put(task, block=False)
        except queue.Full:
            logger.warning(f"Task queue full ({self.max_queue_size} waiting)")
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            busy = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            waiting = self._task_queue.qsize()
            if busy + waiting <= len(self._workers):
                return
            logger.debug(
                f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
            )

        self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks finish first.
            timeout: Give up waiting after this many seconds.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        if wait:
            deadline = time.monotonic() + timeout if timeout else None
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.monotonic() > deadline:
                    logger.warning("Shutdown timeout, forcing stop")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for worker in workers:
            worker.shutdown()
        for _ in workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                break  # Workers will see the shutdown flag instead
        for worker in workers:
            worker.join(timeout=2.0)

        self._started = False
        logger.info("Thread pool shutdown complete")

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queued(self) -> int:
        """Tasks waiting for a worker."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Snapshot of pool state, logged at shutdown."""
        return {
            "workers": len(self._workers),
            "busy": self.busy_workers,
            "queued": self.queued,
            "completed": sum(w.tasks_completed for w in self._workers),
            "failed": sum(w.tasks_failed for w in self._workers),
        }
