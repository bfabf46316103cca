"""Background execution of blocking adapter calls.

Adapters only ever run on the loader's worker threads. Completed calls are
posted as immutable ``LoadResult`` values on one queue per resource class;
the UI thread drains the queues on its own schedule and never blocks.
"""

import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional

from vibe_orchestrator.models.resource import ResourceClass
from vibe_orchestrator.utils.threading import get_optimal_worker_count
from vibe_orchestrator.logging_config import get_logger

logger = get_logger(__name__)

# Command lanes for submit()
LANE_GENERAL = "general"
LANE_WORKTREES = "worktrees"  # Serialized: worktree creation and removal


@dataclass(frozen=True)
class LoadResult:
    """Outcome of one background call. Exactly one of value/error is meaningful."""
    resource: ResourceClass
    generation: int
    value: Any = None
    error: Optional[BaseException] = None
    completed_at: float = 0.0
    tag: Optional[Hashable] = None  # Identifies the command for ACTIONS results

    @property
    def ok(self) -> bool:
        return self.error is None


class BackgroundLoader:
    """Runs polls and commands off the UI thread.

    Polls go through ``request`` and are coalesced per resource class: while
    one call is in flight, newer requests replace each other in a single
    queued slot, so at most one adapter invocation per class is outstanding.
    """

    def __init__(self, max_workers: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        workers = get_optimal_worker_count(max_workers)
        self._clock = clock
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="vibe-loader")
        self._worktree_lane = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vibe-worktrees")

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._channels: Dict[ResourceClass, "queue.Queue[LoadResult]"] = {
            resource: queue.Queue() for resource in ResourceClass
        }
        self._in_flight: Dict[ResourceClass, bool] = {resource: False for resource in ResourceClass}
        self._queued: Dict[ResourceClass, Optional[Callable[[], Any]]] = {resource: None for resource in ResourceClass}
        self._generation = 0
        self._outstanding = 0
        self._closed = False

        self.superseded: Dict[ResourceClass, int] = {resource: 0 for resource in ResourceClass}
        logger.debug(f"Background loader started with {workers} workers")

    def _next_generation(self) -> int:
        # Caller holds self._lock
        self._generation += 1
        return self._generation

    def request(self, resource: ResourceClass, work: Callable[[], Any]) -> bool:
        """Schedule a poll of a resource class.

        Returns:
            True if the call started now, False if it was queued behind the
            in-flight call (or the loader is shut down)
        """
        if resource is ResourceClass.ACTIONS:
            raise ValueError("Commands go through submit()")

        with self._lock:
            if self._closed:
                return False
            if self._in_flight[resource]:
                if self._queued[resource] is not None:
                    self.superseded[resource] += 1
                    logger.debug(f"Superseded queued {resource.value} request")
                self._queued[resource] = work
                return False

            self._in_flight[resource] = True
            self._start_request(resource, work)
            return True

    def _start_request(self, resource: ResourceClass, work: Callable[[], Any]) -> None:
        # Caller holds self._lock
        generation = self._next_generation()
        self._outstanding += 1
        self._pool.submit(self._run_request, resource, work, generation)

    def _run_request(self, resource: ResourceClass, work: Callable[[], Any], generation: int) -> None:
        result = self._execute(resource, work, generation)
        self._channels[resource].put(result)

        with self._lock:
            queued = self._queued[resource]
            self._queued[resource] = None
            if queued is not None and not self._closed:
                self._start_request(resource, queued)
            else:
                self._in_flight[resource] = False
            self._outstanding -= 1
            self._idle.notify_all()

    def _execute(
        self,
        resource: ResourceClass,
        work: Callable[[], Any],
        generation: int,
        tag: Optional[Hashable] = None,
    ) -> LoadResult:
        try:
            value = work()
        except Exception as e:
            # Failures travel to the UI thread as values
            logger.debug(f"{resource.value} work failed: {e}")
            return LoadResult(resource, generation, error=e, completed_at=self._clock(), tag=tag)
        return LoadResult(resource, generation, value=value, completed_at=self._clock(), tag=tag)

    def submit(self, lane: str, work: Callable[[], Any], tag: Optional[Hashable] = None) -> "Future[LoadResult]":
        """Run a command (not coalesced) and post its outcome to the ACTIONS channel.

        The returned future resolves to the same ``LoadResult``; it never
        raises the command's exception.
        """
        if lane not in (LANE_GENERAL, LANE_WORKTREES):
            raise ValueError(f"Unknown lane: {lane}")

        with self._lock:
            if self._closed:
                raise RuntimeError("Background loader is shut down")
            generation = self._next_generation()
            self._outstanding += 1

        def run() -> LoadResult:
            result = self._execute(ResourceClass.ACTIONS, work, generation, tag)
            self._channels[ResourceClass.ACTIONS].put(result)
            with self._lock:
                self._outstanding -= 1
                self._idle.notify_all()
            return result

        executor = self._worktree_lane if lane == LANE_WORKTREES else self._pool
        return executor.submit(run)

    def in_flight(self, resource: ResourceClass) -> bool:
        with self._lock:
            return self._in_flight[resource]

    def drain(self) -> List[LoadResult]:
        """Take every posted result without blocking, grouped by resource class."""
        results = []
        for channel in self._channels.values():
            while True:
                try:
                    results.append(channel.get_nowait())
                except queue.Empty:
                    break
        return results

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no call is in flight or queued. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._outstanding == 0, timeout)

    def shutdown(self) -> None:
        """Stop accepting work. Running hand-offs are not waited for."""
        with self._lock:
            self._closed = True
            for resource in ResourceClass:
                self._queued[resource] = None
        self._pool.shutdown(wait=False, cancel_futures=True)
        self._worktree_lane.shutdown(wait=False, cancel_futures=True)
        logger.debug("Background loader shut down")
