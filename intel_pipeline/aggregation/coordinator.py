"""
Fan-out fetch coordinator.

Runs every enabled feed's adapter on a bounded thread pool. Each feed gets
its own deadline, counted from the moment its task starts running, and the
whole fan-out is capped by a global deadline. Feeds that miss either deadline
are recorded as timeouts and abandoned: queued tasks are cancelled, running
ones are left to finish in the background and their results are ignored.

Exactly one RawFetchResult is produced per config, in config order.
"""
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Sequence, Set

from ..ingestion.base_adapter import ErrorKind, FetchFailure, RawFetchResult, utcnow
from ..ingestion.source_config import SourceConfig

logger = logging.getLogger(__name__)

# callable(config, deadline) -> RawFetchResult, normally BaseAdapter.fetch
FetchFn = Callable[[SourceConfig, float], RawFetchResult]

# how often queued tasks are re-checked for having started
QUEUE_POLL_SECONDS = 0.05


class _FanOut:
    """Bookkeeping for a single collect() call."""

    def __init__(self, configs: Sequence[SourceConfig], global_cutoff: float):
        self.configs = configs
        self.global_cutoff = global_cutoff
        self.started_at: Dict[int, float] = {}
        self.lock = threading.Lock()
        self.results: Dict[int, RawFetchResult] = {}

    def mark_started(self, index: int) -> float:
        start = time.monotonic()
        with self.lock:
            self.started_at[index] = start
        return start

    def start_of(self, index: int):
        with self.lock:
            return self.started_at.get(index)

    def feed_deadline(self, index: int):
        start = self.start_of(index)
        if start is None:
            return None
        return start + self.configs[index].timeout

    def record(self, index: int, result: RawFetchResult) -> None:
        # first writer wins; an abandoned feed never gets a second entry
        self.results.setdefault(index, result)


class FanOutCoordinator:
    """
    Concurrent fetch of all feeds with per-feed and global deadlines.

    Safe to reuse across cycles; each collect() call owns its own executor
    so abandoned threads from one cycle never block the next.
    """

    def __init__(self, max_in_flight: int = 8, global_deadline: float = 60.0):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        if global_deadline <= 0:
            raise ValueError("global_deadline must be positive")
        self.max_in_flight = max_in_flight
        self.global_deadline = global_deadline

    def collect(
        self,
        configs: Sequence[SourceConfig],
        fetch_for: Callable[[SourceConfig], FetchFn],
    ) -> List[RawFetchResult]:
        """
        Fetch all configs concurrently and wait for the join barrier.

        Args:
            configs: Enabled feed configs
            fetch_for: Returns the fetch callable for a config

        Returns:
            One result per config, same order as configs
        """
        if not configs:
            return []

        state = _FanOut(configs, time.monotonic() + self.global_deadline)

        def run(index: int, config: SourceConfig) -> RawFetchResult:
            start = state.mark_started(index)
            deadline = min(start + config.timeout, state.global_cutoff)
            return fetch_for(config)(config, deadline)

        workers = min(self.max_in_flight, len(configs))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="feed-fetch")
        futures: Dict[Future, int] = {}
        try:
            for index, config in enumerate(configs):
                futures[executor.submit(run, index, config)] = index
            logger.debug(
                "Fan-out started for %d feeds (workers=%d, deadline=%.1fs)",
                len(configs), workers, self.global_deadline,
            )
            pending = self._join(state, futures)

            for future in pending:
                index = futures[future]
                state.record(index, self._timeout(state, index, "global aggregation deadline exceeded"))
                future.cancel()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        ordered = [state.results[index] for index in range(len(configs))]
        failed = sum(1 for result in ordered if not result.ok)
        logger.info("Fan-out complete: %d/%d feeds succeeded", len(ordered) - failed, len(ordered))
        return ordered

    def _join(self, state: _FanOut, futures: Dict[Future, int]) -> Set[Future]:
        """Wait until every future resolves or the global cutoff; return what is still pending."""
        pending: Set[Future] = set(futures)
        while pending:
            now = time.monotonic()
            if now >= state.global_cutoff:
                break

            for future in list(pending):
                index = futures[future]
                deadline = state.feed_deadline(index)
                if deadline is not None and now >= deadline and not future.done():
                    state.record(index, self._timeout(state, index, "feed deadline exceeded"))
                    future.cancel()
                    pending.discard(future)
            if not pending:
                break

            done, pending = wait(
                pending,
                timeout=max(0.0, self._next_wake(state, futures, pending) - time.monotonic()),
                return_when=FIRST_COMPLETED,
            )
            for future in done:
                index = futures[future]
                state.record(index, self._result_of(future, state.configs[index]))
        return pending

    @staticmethod
    def _next_wake(state: _FanOut, futures: Dict[Future, int], pending: Set[Future]) -> float:
        wake_at = state.global_cutoff
        queued = False
        for future in pending:
            deadline = state.feed_deadline(futures[future])
            if deadline is None:
                queued = True
            else:
                wake_at = min(wake_at, deadline)
        if queued:
            wake_at = min(wake_at, time.monotonic() + QUEUE_POLL_SECONDS)
        return wake_at

    @staticmethod
    def _result_of(future: Future, config: SourceConfig) -> RawFetchResult:
        try:
            return future.result()
        except Exception as e:
            logger.error("Adapter for %s raised past its boundary: %s", config.name, e, exc_info=True)
            return FetchFailure(
                source=config.name,
                error_kind=ErrorKind.NETWORK,
                message=f"{type(e).__name__}: {e}",
                fetched_at=utcnow(),
            )

    @staticmethod
    def _timeout(state: _FanOut, index: int, reason: str) -> FetchFailure:
        config = state.configs[index]
        start = state.start_of(index)
        logger.warning("%s abandoned: %s", config.name, reason)
        return FetchFailure(
            source=config.name,
            error_kind=ErrorKind.TIMEOUT,
            message=f"{config.name}: {reason}",
            fetched_at=utcnow(),
            duration=(time.monotonic() - start) if start is not None else 0.0,
        )
