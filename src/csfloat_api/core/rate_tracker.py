"""
Per-key rate tracker driven by server-advertised quotas.

This module keeps, for every bucket key, the earliest time at which the next
request on that key may be sent:
- Every response reports its quota through record_observation()
- The remaining budget is spread evenly over the time left until reset
- wait()/wait_async() hold a request back until its key's deadline passes
- Concurrent waiters on one key are released one slot apart
- peek() lets callers send immediately and accept a server-side throttle

Keys are independent: different endpoints or credentials never share a
budget, so one key's wait does not hold up another key.
"""
import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import ClientConfig
from .errors import RateWaitTimeoutError, WaitCancelledError
from .quota import RateQuota

logger = logging.getLogger(__name__)


class TimeProvider(ABC):
    """Protocol for providing time values, allows injection of fake time in tests."""

    @abstractmethod
    def now(self) -> float:
        """Return current time in seconds since epoch."""
        pass

    @abstractmethod
    def sleep(self, seconds: float, cancel: Optional[threading.Event] = None) -> bool:
        """
        Block the calling thread.

        Returns:
            False if the cancel event was set before the time passed
        """
        pass

    @abstractmethod
    async def sleep_async(self, seconds: float) -> None:
        """Suspend the calling task."""
        pass


class SystemTimeProvider(TimeProvider):
    """Real time provider using system clock."""

    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float, cancel: Optional[threading.Event] = None) -> bool:
        if cancel is not None:
            return not cancel.wait(seconds)
        time.sleep(seconds)
        return True

    async def sleep_async(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class FakeTimeProvider(TimeProvider):
    """Fake time provider for deterministic tests. Sleeping advances time."""

    def __init__(self, initial_time: float = 1000.0):
        self._current_time = initial_time
        self._lock = threading.Lock()
        self.sleep_history: List[float] = []

    def now(self) -> float:
        with self._lock:
            return self._current_time

    def advance(self, seconds: float) -> None:
        """Advance time by given seconds."""
        with self._lock:
            self._current_time += seconds

    def set(self, time: float) -> None:
        """Set absolute time."""
        with self._lock:
            self._current_time = time

    def sleep(self, seconds: float, cancel: Optional[threading.Event] = None) -> bool:
        if cancel is not None and cancel.is_set():
            return False
        with self._lock:
            self.sleep_history.append(seconds)
            self._current_time += seconds
        return True

    async def sleep_async(self, seconds: float) -> None:
        with self._lock:
            self.sleep_history.append(seconds)
            self._current_time += seconds
        # Still yield so other tasks get to run
        await asyncio.sleep(0)


@dataclass
class BucketState:
    """
    Tracked state of one bucket key.

    Attributes:
        deadline: Epoch seconds before which no request should be sent
        last_quota: Quota of the most recent observation
        interval: Spacing between two sends on the key, handed on to
            queued waiters whenever one of them is released
        observations: Number of observations recorded for the key
        waiters: Number of wait()/wait_async() calls currently queued
    """

    deadline: float
    last_quota: RateQuota
    interval: float = 0.0
    observations: int = 1
    waiters: int = 0


@dataclass
class RateTrackerStats:
    """Statistics for rate tracker telemetry."""

    observations: int = 0
    exhausted_observations: int = 0
    waits: int = 0
    waits_throttled: int = 0
    total_wait_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "observations": self.observations,
            "exhausted_observations": self.exhausted_observations,
            "waits": self.waits,
            "waits_throttled": self.waits_throttled,
            "total_wait_time": self.total_wait_time,
        }


class RateTracker:
    """
    Concurrency-safe store of per-key send deadlines.

    A key is unknown until its first observation and tracked afterwards;
    every observation replaces the previous deadline. The key map is
    guarded by a single lock, waiting always happens outside of it.
    Create one tracker per process (or per client) and pass it to every
    dispatcher that should share its budgets.
    """

    DEFAULT_SAFETY_MARGIN = 5.0

    def __init__(
        self,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        time_provider: Optional[TimeProvider] = None,
    ):
        """
        Initialize rate tracker.

        Args:
            safety_margin: Seconds subtracted from every reset window, so
                clock skew does not push us past the server's budget
            time_provider: Optional time provider (defaults to system time)
        """
        if safety_margin < 0:
            raise ValueError("safety_margin must not be negative")
        self.safety_margin = safety_margin
        self.time_provider = time_provider or SystemTimeProvider()

        self._buckets: Dict[str, BucketState] = {}
        self._lock = threading.Lock()

        self._stats = RateTrackerStats()
        self._stats_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        time_provider: Optional[TimeProvider] = None,
    ) -> "RateTracker":
        """Create a tracker using the configured safety margin."""
        return cls(safety_margin=config.safety_margin, time_provider=time_provider)

    def compute_delay(self, quota: RateQuota, now: float) -> float:
        """
        Calculate how long to hold back the next request on a key.

        The time left in the window, minus the safety margin, is divided by
        the remaining count. With nothing remaining there is no budget to
        spread and the full time until reset is used instead.

        Args:
            quota: Quota observed on the key
            now: Current epoch seconds

        Returns:
            Seconds to wait, never negative
        """
        if quota.remaining == 0:
            return max(0.0, quota.reset_at - now)
        return max(0.0, (quota.reset_at - now - self.safety_margin) / quota.remaining)

    def record_observation(self, key: str, quota: RateQuota) -> float:
        """
        Record the quota observed on a response and update the key's deadline.

        Args:
            key: Bucket key of the exchange
            quota: Quota parsed from the response headers

        Returns:
            The delay the new deadline imposes, in seconds
        """
        with self._lock:
            now = self.time_provider.now()
            delay = self.compute_delay(quota, now)
            if quota.remaining == 0 and quota.limit > 0:
                # After the reset a fresh budget is spread over a window of the same length
                interval = delay / quota.limit
            else:
                interval = delay
            state = self._buckets.get(key)
            if state is None:
                self._buckets[key] = BucketState(
                    deadline=now + delay, last_quota=quota, interval=interval
                )
            else:
                state.deadline = now + delay
                state.last_quota = quota
                state.interval = interval
                state.observations += 1

        with self._stats_lock:
            self._stats.observations += 1
            if quota.remaining == 0:
                self._stats.exhausted_observations += 1

        if quota.remaining == 0:
            logger.warning(
                f"Rate limit exhausted for {key}, holding requests for {delay:.2f}s until reset"
            )
        else:
            logger.debug(
                f"Observed {quota.remaining}/{quota.limit} remaining for {key}, "
                f"next request in {delay:.3f}s"
            )
        return delay

    def deadline(self, key: str) -> Optional[float]:
        """Return the key's deadline, or None if the key is not tracked."""
        with self._lock:
            state = self._buckets.get(key)
            return state.deadline if state is not None else None

    def last_quota(self, key: str) -> Optional[RateQuota]:
        """Return the most recently observed quota for the key."""
        with self._lock:
            state = self._buckets.get(key)
            return state.last_quota if state is not None else None

    def peek(self, key: str) -> float:
        """
        Return the remaining delay for a key without waiting.

        Callers that send right away anyway still report the response
        through record_observation().
        """
        deadline = self.deadline(key)
        if deadline is None:
            return 0.0
        return max(0.0, deadline - self.time_provider.now())

    def _check_timeout(self, key: str, delay: float, waited: float, timeout: Optional[float]) -> None:
        if timeout is not None and waited + delay > timeout:
            raise RateWaitTimeoutError(
                f"bucket {key} needs {waited + delay:.2f}s, timeout is {timeout:.2f}s",
                bucket_key=key,
            )

    def _enqueue(self, key: str) -> bool:
        with self._lock:
            state = self._buckets.get(key)
            if state is None:
                return False
            state.waiters += 1
            return True

    def _dequeue(self, key: str) -> None:
        with self._lock:
            state = self._buckets.get(key)
            if state is not None and state.waiters > 0:
                state.waiters -= 1

    def _claim(self, key: str) -> float:
        """
        Return the delay left for a queued waiter, or release it.

        A waiter released while others are still queued on the key moves
        the deadline one interval ahead, so the next one gets its own slot.
        A lone waiter leaves the deadline alone; repeated waits without a new
        observation then return immediately.
        """
        with self._lock:
            state = self._buckets.get(key)
            if state is None:
                return 0.0
            now = self.time_provider.now()
            delay = state.deadline - now
            if delay > 0:
                return delay
            if state.waiters > 1:
                state.deadline = now + state.interval
            return 0.0

    def _record_wait(self, waited: float) -> None:
        with self._stats_lock:
            self._stats.waits += 1
            if waited > 0:
                self._stats.waits_throttled += 1
                self._stats.total_wait_time += waited

    def wait(
        self,
        key: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> float:
        """
        Block the calling thread until the key's deadline has passed.

        Returns immediately for unknown keys and passed deadlines. If another
        observation moves the deadline while we sleep, the new one is honored.
        Concurrent waiters on the same key are released one interval apart.

        Args:
            key: Bucket key to wait on
            timeout: Maximum total seconds to wait
            cancel: Event that abandons the wait when set

        Returns:
            Seconds spent waiting

        Raises:
            RateWaitTimeoutError: If the deadline lies beyond the timeout
            WaitCancelledError: If the cancel event was set
        """
        waited = 0.0
        queued = self._enqueue(key)
        try:
            delay = self._claim(key)
            while delay > 0:
                self._check_timeout(key, delay, waited, timeout)
                logger.debug(f"Waiting {delay:.3f}s for bucket {key}")
                if not self.time_provider.sleep(delay, cancel):
                    raise WaitCancelledError(
                        f"wait on bucket {key} was cancelled", bucket_key=key
                    )
                waited += delay
                delay = self._claim(key)
        finally:
            if queued:
                self._dequeue(key)
            self._record_wait(waited)
        return waited

    async def wait_async(self, key: str, timeout: Optional[float] = None) -> float:
        """
        Suspend the calling task until the key's deadline has passed.

        Cancelling the task abandons the wait. Same queueing as wait().

        Args:
            key: Bucket key to wait on
            timeout: Maximum total seconds to wait

        Returns:
            Seconds spent waiting

        Raises:
            RateWaitTimeoutError: If the deadline lies beyond the timeout
        """
        waited = 0.0
        queued = self._enqueue(key)
        try:
            delay = self._claim(key)
            while delay > 0:
                self._check_timeout(key, delay, waited, timeout)
                logger.debug(f"Waiting {delay:.3f}s for bucket {key}")
                await self.time_provider.sleep_async(delay)
                waited += delay
                delay = self._claim(key)
        finally:
            if queued:
                self._dequeue(key)
            self._record_wait(waited)
        return waited

    def forget(self, key: str) -> None:
        """Drop a key, returning it to the unknown state."""
        with self._lock:
            self._buckets.pop(key, None)

    def reset(self) -> None:
        """Drop all keys."""
        with self._lock:
            self._buckets.clear()

    def keys(self) -> List[str]:
        """Return all tracked keys."""
        with self._lock:
            return list(self._buckets)

    def get_stats(self) -> RateTrackerStats:
        """Get current statistics."""
        with self._stats_lock:
            return RateTrackerStats(
                observations=self._stats.observations,
                exhausted_observations=self._stats.exhausted_observations,
                waits=self._stats.waits,
                waits_throttled=self._stats.waits_throttled,
                total_wait_time=self._stats.total_wait_time,
            )

    def reset_stats(self) -> None:
        """Reset statistics."""
        with self._stats_lock:
            self._stats = RateTrackerStats()
