"""Bounded retry policies with a typed outcome.

Polling loops ("wait until the template settles", "retry the read") are
expressed as a :class:`RetryPolicy` run by :func:`retry_async`, which
returns a :class:`RetryOutcome` instead of looping forever or raising
from the middle of the schedule.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from loguru import logger

from sleepsync.core.clock import Clock

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between."""

    max_attempts: int = 3
    """Total attempts, including the first one."""

    initial_delay: float = 0.2
    """Seconds to wait after the first failed attempt."""

    multiplier: float = 1.0
    """Exponential growth factor (ignored when ``linear``)."""

    max_delay: float | None = None
    """Upper bound for a single delay."""

    linear: bool = False
    """Wait ``initial_delay * attempt`` instead of growing exponentially."""

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        if self.linear:
            delay = self.initial_delay * attempt
        else:
            delay = self.initial_delay * (self.multiplier ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def schedule(self) -> list[float]:
        """All delays this policy can sleep through."""
        return [self.delay_for(i) for i in range(1, self.max_attempts)]


SETTLE_POLICY = RetryPolicy(max_attempts=10, initial_delay=0.1, multiplier=2.0, max_delay=1.0)
STORAGE_POLICY = RetryPolicy(max_attempts=3, initial_delay=0.2, linear=True)


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    """Result of running a policy: either a value or an exhausted schedule."""

    succeeded: bool
    value: T | None
    attempts: int
    last_error: BaseException | None = None

    @property
    def exhausted(self) -> bool:
        return not self.succeeded


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    clock: Clock,
    *,
    accept: Callable[[T], bool] | None = None,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    label: str = "operation",
) -> RetryOutcome[T]:
    """Run *operation* until it succeeds (and *accept* agrees) or the policy runs out.

    Exceptions outside ``retry_on`` propagate immediately.
    """
    last_error: BaseException | None = None
    value: T | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            value = await operation()
        except retry_on as e:
            last_error = e
            logger.debug(f"{label}: attempt {attempt}/{policy.max_attempts} failed: {e}")
        else:
            if accept is None or accept(value):
                return RetryOutcome(succeeded=True, value=value, attempts=attempt)
            last_error = None
            logger.debug(f"{label}: attempt {attempt}/{policy.max_attempts} not ready yet")

        if attempt < policy.max_attempts:
            await clock.sleep(policy.delay_for(attempt))

    return RetryOutcome(succeeded=False, value=value, attempts=policy.max_attempts, last_error=last_error)
