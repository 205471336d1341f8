"""Backoff strategies applied between retries of an upstream request.

Each strategy answers one question: given how many retries have already
been attempted, how long should we wait before the next one?

Strategies double as tenacity wait strategies so the client retry loop can
hand them straight to ``AsyncRetrying(wait=...)``.
"""

import random

from tenacity import RetryCallState
from tenacity.wait import wait_base

DEFAULT_GROWTH_RATE = 0.5


class BackoffConfigurationError(ValueError):
    """Raised when a backoff strategy is constructed with invalid parameters."""


class Backoff(wait_base):
    """Base class for all backoff strategies."""

    def next(self, retries: int) -> float:
        """Return the delay in seconds to wait before the next retry."""
        raise NotImplementedError

    def __call__(self, retry_state: RetryCallState) -> float:
        # tenacity counts attempts from 1, so the first wait follows retry 0
        return self.next(retry_state.attempt_number - 1)


class ConstantBackoff(Backoff):
    """Always waits the same amount of time between requests."""

    def __init__(self, delay: float) -> None:
        self.delay = delay

    def next(self, retries: int) -> float:
        return self.delay

    def __repr__(self) -> str:
        return f"ConstantBackoff(delay={self.delay!r})"


def zero() -> ConstantBackoff:
    """Backoff which allows no delay between attempts."""
    return ConstantBackoff(0.0)


class ExponentialBackoff(Backoff):
    """Delay grows exponentially from ``initial`` up to ``maximum``.

    Growth follows f(x) = a(1 + r)^x where a is the initial delay, r the
    growth rate and x the retry count. For x > 0 jitter removes up to a
    quarter of f(x), so the delay lands between 75% and 100% of the
    unjittered value before being clamped to ``maximum``.
    """

    def __init__(
        self,
        initial: float,
        maximum: float,
        growth_rate: float = DEFAULT_GROWTH_RATE,
    ) -> None:
        # a zero initial delay would make every computed delay zero
        if not 0 < initial < maximum:
            raise BackoffConfigurationError(
                f"initial delay must be greater than zero and less than max "
                f"(initial={initial!r}, max={maximum!r})"
            )
        if not 0 < growth_rate <= 1:
            raise BackoffConfigurationError(
                f"growth rate must be a fraction in (0.0, 1.0], got {growth_rate!r}"
            )
        self.initial = initial
        self.maximum = maximum
        self.growth_rate = growth_rate

    def next(self, retries: int) -> float:
        if retries == 0:
            return self.initial

        delay = self.initial * (1 + self.growth_rate) ** retries
        delay -= random.uniform(0, delay / 4)
        return min(delay, self.maximum)

    def __repr__(self) -> str:
        return (
            f"ExponentialBackoff(initial={self.initial!r}, maximum={self.maximum!r}, "
            f"growth_rate={self.growth_rate!r})"
        )
