"""
Token Budget Rate Limiter

Gates LLM calls on an estimated token budget per fixed one-minute window so
the pipeline never causes its own provider throttling. Provider-reported
throttling (429/529) is handled by the LLM client's retry policy instead.

Design Considerations:
- Reservation happens before the call, on an estimate of the prompt size
- Fixed windows that reset on a regular tick, guarded by a safety buffer
- Waiting is a timed suspension on the event loop, never a busy wait
- Clock and sleep are injectable for deterministic tests
"""

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class TokenRateLimiter:
    """
    Fixed-window token budget shared by every LLM call in the process.

    A reservation is admitted when the tokens already consumed in the
    current window plus the new estimate stay within
    ``tokens_per_minute * (1 - safety_buffer)``. Otherwise the caller is
    suspended until the next window tick. A single reservation larger than
    the usable budget is admitted into an empty window so it cannot wait
    forever.
    """

    def __init__(
        self,
        tokens_per_minute: int = 40000,
        safety_buffer: float = 0.2,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if tokens_per_minute <= 0:
            raise ValueError("tokens_per_minute must be positive")
        if not 0 <= safety_buffer < 1:
            raise ValueError("safety_buffer must be in [0, 1)")

        self.tokens_per_minute = tokens_per_minute
        self.safety_buffer = safety_buffer
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep

        self.tokens_consumed_this_window = 0
        self.window_started_at = self._clock()
        self._lock: Optional[asyncio.Lock] = None

        logger.info(
            f"Rate limiter initialized: {tokens_per_minute} tokens per "
            f"{window_seconds:.0f}s window ({safety_buffer:.0%} safety buffer)"
        )

    @property
    def usable_budget(self) -> float:
        return self.tokens_per_minute * (1 - self.safety_buffer)

    @staticmethod
    def estimate(text: Optional[str]) -> int:
        """
        Conservative token estimate for a piece of text.

        Averages a word-based (1.3 tokens per word) and a character-based
        (4 characters per token) approximation.
        """
        if not text:
            return 0
        words = len(text.split())
        chars = len(text)
        return math.ceil((words * 1.3 + chars / 4) / 2)

    def _roll_window(self) -> None:
        """Reset the counter if one or more window ticks have passed."""
        now = self._clock()
        elapsed = now - self.window_started_at
        if elapsed >= self.window_seconds:
            ticks = int(elapsed // self.window_seconds)
            self.window_started_at += ticks * self.window_seconds
            if self.tokens_consumed_this_window:
                logger.debug(
                    f"Token window reset (previous usage: {self.tokens_consumed_this_window})"
                )
            self.tokens_consumed_this_window = 0

    def _fits(self, estimated_tokens: int) -> bool:
        if self.tokens_consumed_this_window == 0:
            return True
        return self.tokens_consumed_this_window + estimated_tokens <= self.usable_budget

    async def reserve(self, estimated_tokens: int) -> None:
        """
        Suspend until ``estimated_tokens`` fit in the current window, then consume them.

        Args:
            estimated_tokens: Estimated token cost of the upcoming call
        """
        if estimated_tokens < 0:
            raise ValueError("estimated_tokens must not be negative")

        if self._lock is None:
            self._lock = asyncio.Lock()

        # Waiters are served in arrival order
        async with self._lock:
            while True:
                self._roll_window()
                if self._fits(estimated_tokens):
                    self.tokens_consumed_this_window += estimated_tokens
                    return

                wait_seconds = max(
                    self.window_started_at + self.window_seconds - self._clock(), 0.0
                )
                logger.info(
                    f"Token budget buffer reached (used {self.tokens_consumed_this_window}, "
                    f"requested {estimated_tokens}, usable {self.usable_budget:.0f}); "
                    f"waiting {wait_seconds:.1f}s for window reset"
                )
                await self._sleep(wait_seconds)

    def status(self) -> Dict[str, float]:
        """Current usage snapshot for monitoring endpoints."""
        self._roll_window()
        return {
            "current_token_usage": self.tokens_consumed_this_window,
            "time_since_reset": self._clock() - self.window_started_at,
            "tokens_per_minute": self.tokens_per_minute,
            "remaining_tokens": max(0, self.tokens_per_minute - self.tokens_consumed_this_window),
        }
