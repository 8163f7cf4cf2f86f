"""Reconnect policy — attempt counting with capped exponential backoff."""

from __future__ import annotations

import logging

from tenacity import RetryCallState, wait_exponential

logger = logging.getLogger(__name__)


class ReconnectPolicy:
    """Tracks reconnection attempts and computes the delay before each one.

    ``attempt`` counts retries scheduled since the last successful open:

    * ``reset()`` on every open brings it back to 0
    * ``next_attempt()`` on every retry-triggering close adds exactly 1
    * once ``attempt == max_attempts`` the policy is exhausted and stays so
      until ``reset()``

    Delays come from tenacity's ``wait_exponential``: ``base_delay`` for the
    first attempt, doubling per attempt, never above ``max_delay``.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 2.0,
        max_delay: float = 30.0,
    ) -> None:
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max(max_delay, base_delay)
        self._attempt = 0
        self._wait = wait_exponential(
            multiplier=base_delay, min=base_delay, max=self.max_delay
        )

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def exhausted(self) -> bool:
        return self._attempt >= self.max_attempts

    def backoff(self, attempt: int) -> float:
        """Delay in seconds before the given (1-based) attempt."""
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = max(attempt, 1)
        return float(self._wait(state))

    def next_attempt(self) -> float:
        """Consume one attempt and return the delay to wait before it.

        Raises:
            RuntimeError: The policy is exhausted.
        """
        if self.exhausted:
            raise RuntimeError("Reconnect policy exhausted")
        self._attempt += 1
        delay = self.backoff(self._attempt)
        logger.debug(
            "Reconnect attempt %d/%d in %.2fs",
            self._attempt,
            self.max_attempts,
            delay,
        )
        return delay

    def reset(self) -> None:
        self._attempt = 0
