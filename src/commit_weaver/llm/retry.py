"""
Bounded exponential backoff around classifier calls.

:class:`RetryingClient` wraps anything with a ``generate(system,
prompt)`` method. Transport errors, HTTP 429 and HTTP 5xx are retried
with a doubling delay; any other HTTP status fails at once. The policy
is a plain value passed to the constructor, so tests can use a
zero-delay policy or a recording ``sleep``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from commit_weaver.llm.claude_client import LLMError, LLMHTTPError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class RetryCancelled(LLMError):
    """Raised when a backoff sleep is interrupted by cancellation."""

    pass


@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits for one logical call.

    ``max_attempts`` counts the first attempt, so the default of 4 means
    three retries.
    """

    max_attempts: int = 4
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000

    def delay_ms(self, retry_number: int) -> int:
        """Delay before retry ``retry_number`` (1-based): base doubled, capped."""
        return min(self.base_delay_ms * (2 ** max(retry_number - 1, 0)), self.max_delay_ms)


def is_retryable(error: Exception) -> bool:
    if isinstance(error, RetryCancelled):
        return False
    if isinstance(error, LLMHTTPError):
        return error.status_code == 429 or error.status_code >= 500
    return isinstance(error, LLMError)


class RetryingClient:
    """Wrap ``client`` so every ``generate`` call follows ``policy``.

    Parameters
    ----------
    client
        Object exposing ``generate(system, prompt) -> str``.
    policy : RetryPolicy
        Attempt ceiling and delays.
    sleep : callable, optional
        ``sleep(seconds)`` used between attempts. Defaults to
        :func:`time.sleep`, or to waiting on ``cancel_event`` when one is
        supplied.
    cancel_event : threading.Event, optional
        When set during a backoff wait, the call gives up with
        :class:`RetryCancelled` instead of retrying.
    """

    def __init__(
        self,
        client,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy()
        self.cancel_event = cancel_event
        self._sleep = sleep

    def _wait(self, seconds: float) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
        elif self.cancel_event is not None:
            self.cancel_event.wait(seconds)
        else:
            time.sleep(seconds)
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RetryCancelled("Retry cancelled")

    def generate(self, system: str, prompt: str) -> str:
        attempts = max(self.policy.max_attempts, 1)
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return self.client.generate(system, prompt)
            except LLMError as exc:
                if not is_retryable(exc):
                    raise
                last_error = exc
                if attempt == attempts:
                    break
                delay = self.policy.delay_ms(attempt)
                logger.warning(
                    "Classifier call failed (%s), retrying in %.1fs (attempt %d/%d)",
                    exc, delay / 1000, attempt + 1, attempts,
                )
                self._wait(delay / 1000)
        raise LLMError(f"Failed after {attempts} attempts. Last error: {last_error}") from last_error
