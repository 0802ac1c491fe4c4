"""Trailing-window token budget limiter for LLM API usage.

Usage is tracked as a queue of ``(timestamp, tokens)`` entries. Only entries
younger than the window count against the budget; older ones are purged
lazily whenever the limiter is touched. Callers gate on an *estimate* before
a request and record the provider-reported *actual* usage afterwards.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from typing import Awaitable, Callable, NamedTuple

from autofix.config import ProviderConfig
from autofix.utils.logging import get_logger

log = get_logger(__name__)

WINDOW_SECONDS = 60.0


class RateLimitStats(NamedTuple):
    used: int
    remaining: int
    reset_in: float


class RateLimiter:
    def __init__(
        self,
        tokens_per_minute: int | None,
        window: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._budget = tokens_per_minute or 0
        self._window = window
        self._clock = clock
        self._entries: deque[tuple[float, int]] = deque()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ProviderConfig) -> RateLimiter:
        limiter = cls(config.rate_limit_tpm)
        log.debug(
            "rate_limiter_configured",
            provider=config.provider_type.value,
            tokens_per_minute=limiter.budget,
            enabled=limiter.enabled,
        )
        return limiter

    @property
    def enabled(self) -> bool:
        return self._budget > 0

    @property
    def budget(self) -> int:
        return self._budget

    def check_and_wait(self, estimated_tokens: int) -> float | None:
        """Return None if the request fits the budget, else seconds to wait."""
        if not self.enabled:
            return None

        with self._lock:
            now = self._clock()
            self._purge(now)
            used = sum(tokens for _, tokens in self._entries)
            if used + estimated_tokens <= self._budget:
                return None

            freed = 0
            for timestamp, tokens in self._entries:
                freed += tokens
                if used - freed + estimated_tokens <= self._budget:
                    return max(timestamp + self._window - now, 0.0)

            # Even an empty window cannot fit the request
            return self._window

    def record_usage(self, tokens: int) -> None:
        if not self.enabled:
            return

        with self._lock:
            now = self._clock()
            self._entries.append((now, tokens))
            self._purge(now)

    def get_stats(self) -> RateLimitStats:
        if not self.enabled:
            return RateLimitStats(used=0, remaining=0, reset_in=0.0)

        with self._lock:
            now = self._clock()
            self._purge(now)
            used = sum(tokens for _, tokens in self._entries)
            reset_in = 0.0
            if self._entries:
                reset_in = max(self._entries[0][0] + self._window - now, 0.0)
            return RateLimitStats(
                used=used,
                remaining=max(self._budget - used, 0),
                reset_in=reset_in,
            )

    async def wait_for_capacity(
        self,
        estimated_tokens: int,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> float:
        """Suspend until ``estimated_tokens`` fits. Returns seconds waited."""
        wait = self.check_and_wait(estimated_tokens)
        if wait is None:
            return 0.0

        stats = self.get_stats()
        log.info(
            "rate_limit_wait",
            wait_seconds=round(wait, 2),
            estimated_tokens=estimated_tokens,
            used=stats.used,
            remaining=stats.remaining,
        )
        await sleep(wait)
        return wait

    def _purge(self, now: float) -> None:
        # An entry exactly one window old is expired, so a caller that sleeps
        # for the returned wait always finds that entry gone.
        cutoff = now - self._window
        while self._entries and self._entries[0][0] <= cutoff:
            self._entries.popleft()
