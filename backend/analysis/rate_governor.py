"""
Rate and token-budget governor for provider calls.

Each provider gets its own sliding request window and per-minute token budget.
acquire() never rejects a request; it only blocks the calling thread until the
request fits, then records it.
"""

import logging
import math
import threading
import time
from collections import deque
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 80
DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_TOKEN_LIMIT = 250_000
DEFAULT_WARNING_THRESHOLD = 0.8
MINUTE_SECONDS = 60.0


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token estimate: one token per four characters."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


class RateWindow:
    """Sliding window of request timestamps."""

    def __init__(self, max_requests: int = DEFAULT_MAX_REQUESTS, window_seconds: float = DEFAULT_WINDOW_SECONDS):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.timestamps: deque = deque()

    def prune(self, now: float) -> None:
        while self.timestamps and now - self.timestamps[0] >= self.window_seconds:
            self.timestamps.popleft()

    def wait_time(self, now: float) -> float:
        """Seconds until one more request fits in the window (0 if it fits now)."""
        self.prune(now)
        if len(self.timestamps) < self.max_requests:
            return 0.0
        oldest = self.timestamps[0]
        return max(0.0, self.window_seconds - (now - oldest))

    def record(self, now: float) -> None:
        self.timestamps.append(now)

    def count(self, now: float) -> int:
        self.prune(now)
        return len(self.timestamps)


class TokenBudget:
    """Per-minute token ceiling with a warning threshold."""

    def __init__(
        self,
        ceiling: int = DEFAULT_TOKEN_LIMIT,
        warning_threshold: float = DEFAULT_WARNING_THRESHOLD,
        now: float = 0.0,
    ):
        self.ceiling = ceiling
        self.warning_threshold = warning_threshold
        self.minute_tokens = 0
        self.minute_start = now

    @property
    def threshold_tokens(self) -> float:
        return self.ceiling * self.warning_threshold

    def roll(self, now: float) -> None:
        if now - self.minute_start > MINUTE_SECONDS:
            self.minute_tokens = 0
            self.minute_start = now

    def wait_time(self, now: float) -> float:
        """Seconds until the minute rolls over when past the threshold, else 0."""
        self.roll(now)
        if self.minute_tokens > self.threshold_tokens:
            return max(0.0, MINUTE_SECONDS - (now - self.minute_start))
        return 0.0

    def reset(self, now: float) -> None:
        self.minute_tokens = 0
        self.minute_start = now

    def record(self, tokens: int) -> None:
        self.minute_tokens += tokens


class _ProviderState:
    def __init__(self, window: RateWindow, budget: TokenBudget):
        self.window = window
        self.budget = budget
        self.lock = threading.Lock()


class RateGovernor:
    """
    Per-provider request-rate and token-budget enforcement.

    One instance is built per process and handed to the orchestrator. Calls
    for the same provider are serialized by a per-provider lock; calls for
    different providers never wait on each other.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        token_limit: int = DEFAULT_TOKEN_LIMIT,
        warning_threshold: float = DEFAULT_WARNING_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.token_limit = token_limit
        self.warning_threshold = warning_threshold
        self._clock = clock
        self._sleep = sleep
        self._states: Dict[str, _ProviderState] = {}
        self._states_lock = threading.Lock()

    def _state(self, provider: str) -> _ProviderState:
        with self._states_lock:
            state = self._states.get(provider)
            if state is None:
                state = _ProviderState(
                    RateWindow(self.max_requests, self.window_seconds),
                    TokenBudget(self.token_limit, self.warning_threshold, now=self._clock()),
                )
                self._states[provider] = state
            return state

    def acquire(self, provider: str, estimated_tokens: int = 0) -> float:
        """
        Block until one more request to `provider` is allowed, then record it.

        Args:
            provider: Provider name
            estimated_tokens: Estimated token cost of the request

        Returns:
            Total seconds spent waiting
        """
        state = self._state(provider)
        waited = 0.0

        with state.lock:
            # Request window
            delay = state.window.wait_time(self._clock())
            if delay > 0:
                logger.info(f"Rate limit reached for {provider}, waiting {delay:.2f}s")
                self._sleep(delay)
                waited += delay
                state.window.prune(self._clock())

            # Token budget
            delay = state.budget.wait_time(self._clock())
            if delay > 0:
                logger.info(
                    f"Token limit approaching for {provider} "
                    f"({state.budget.minute_tokens}/{state.budget.ceiling}), waiting {delay:.2f}s"
                )
                self._sleep(delay)
                waited += delay
                state.budget.reset(self._clock())

            now = self._clock()
            state.window.record(now)
            state.budget.record(estimated_tokens)
            logger.debug(
                f"Tokens used by {provider}: {estimated_tokens}, "
                f"total this minute: {state.budget.minute_tokens}/{state.budget.ceiling}"
            )

        return waited

    def usage(self, provider: str) -> dict:
        state = self._state(provider)
        with state.lock:
            now = self._clock()
            state.budget.roll(now)
            return {
                'used': state.budget.minute_tokens,
                'limit': state.budget.ceiling,
                'remaining': max(0, state.budget.ceiling - state.budget.minute_tokens),
                'requests_in_window': state.window.count(now),
            }
