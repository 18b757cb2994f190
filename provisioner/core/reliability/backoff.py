"""
Bounded polling with exponential backoff.

Used for the post-registration health check: the wait is always
finite (``attempts`` checks, delays capped at ``max_delay``).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class PollOutcome:
    """Result of a bounded poll."""

    ok: bool
    attempts: int
    delays: list[float] = field(default_factory=list)

    @property
    def waited(self) -> float:
        return sum(self.delays)


def backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 8.0) -> float:
    """Delay before check number ``attempt`` (1-based): base * 2^(n-1), capped."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


def poll_until(
    check: Callable[[], bool],
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 8.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "condition",
) -> PollOutcome:
    """Call ``check`` up to ``attempts`` times, sleeping before each call.

    Returns as soon as ``check`` returns True. ``check`` raising is a
    programming error and propagates.
    """
    outcome = PollOutcome(ok=False, attempts=0)
    for attempt in range(1, max(attempts, 1) + 1):
        delay = backoff_delay(attempt, base_delay, max_delay)
        sleep(delay)
        outcome.delays.append(delay)
        outcome.attempts = attempt
        if check():
            outcome.ok = True
            logger.debug("%s satisfied after %d attempt(s)", label, attempt)
            return outcome
        logger.debug("%s not yet satisfied (attempt %d/%d)", label, attempt, attempts)

    logger.warning("%s not satisfied after %d attempts (%.1fs)", label, outcome.attempts, outcome.waited)
    return outcome
