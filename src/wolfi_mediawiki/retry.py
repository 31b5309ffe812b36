"""Bounded polling with a fixed attempt ceiling."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Abort(Exception):
    """Raised by a predicate to stop polling without using the remaining attempts."""


@dataclass
class RetryResult:
    """Outcome of :func:`retry`."""
    success: bool
    attempts: int
    aborted: bool = False
    reason: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return not self.success and not self.aborted


def retry(
    max_attempts: int,
    interval: float,
    predicate: Callable[[int], bool],
    *,
    backoff: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Optional[Callable[[int, int], None]] = None,
) -> RetryResult:
    """Call ``predicate(attempt)`` until it returns True or attempts run out.

    Sleeps *interval* seconds between attempts (multiplied by *backoff* after
    each one) and never after the last. A predicate raising :class:`Abort`
    ends polling immediately with ``aborted=True``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delay = interval
    for attempt in range(1, max_attempts + 1):
        if on_attempt:
            on_attempt(attempt, max_attempts)
        try:
            if predicate(attempt):
                return RetryResult(success=True, attempts=attempt)
        except Abort as e:
            logger.debug("Polling aborted on attempt %d: %s", attempt, e)
            return RetryResult(success=False, attempts=attempt, aborted=True, reason=str(e))

        if attempt < max_attempts:
            sleep(delay)
            delay *= backoff

    return RetryResult(
        success=False,
        attempts=max_attempts,
        reason=f"gave up after {max_attempts} attempts",
    )
