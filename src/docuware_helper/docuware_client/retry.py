"""
Retry policy for the DocuWare request wrapper.

The policy is immutable and shared read-only by every request a client makes.
The jitter is a pluggable strategy: any callable taking the policy and
returning extra seconds to wait. ``PolicyWait`` hands the policy's delays to
tenacity, which drives the attempts.
"""

import math
import random
from dataclasses import dataclass, field, fields, replace
from typing import Callable

from tenacity import RetryCallState
from tenacity.wait import wait_base

JitterStrategy = Callable[["RetryPolicy"], float]


def random_jitter(policy: "RetryPolicy") -> float:
    """Whole seconds in ``[0, max - min)`` picked uniformly at random."""
    spread = policy.max_jitter_seconds - policy.min_jitter_seconds
    return math.floor(random.random() * spread)


def no_jitter(policy: "RetryPolicy") -> float:
    return 0


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with a base delay plus jitter.

    A failing call costs at most ``max_attempts * (base + spread)`` seconds.
    """

    max_attempts: int = 100
    base_delay_seconds: float = 10
    min_jitter_seconds: float = 10
    max_jitter_seconds: float = 20
    jitter: JitterStrategy = field(default=random_jitter, compare=False, repr=False)

    def compute_delay(self) -> float:
        """Seconds to wait before the next attempt."""
        return self.base_delay_seconds + self.jitter(self)

    def with_overrides(self, **overrides: float | None) -> "RetryPolicy":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if "max_attempts" in changes:
            changes["max_attempts"] = int(changes["max_attempts"])
        return replace(self, **changes)

    def validate(self) -> list[str]:
        errors: list[str] = []
        numbers = [f.name for f in fields(self) if f.name != "jitter"]
        non_finite = [name for name in numbers if not math.isfinite(getattr(self, name))]
        for name in non_finite:
            errors.append(f"retry.{name} must be a finite number")
        if non_finite:
            return errors

        if self.max_attempts < 1:
            errors.append("retry.max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            errors.append("retry.base_delay_seconds must be >= 0")
        if self.max_jitter_seconds < self.min_jitter_seconds:
            errors.append("retry.max_jitter_seconds must be >= retry.min_jitter_seconds")
        return errors


class PolicyWait(wait_base):
    """Tenacity wait strategy drawing each delay from a ``RetryPolicy``."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.policy.compute_delay()
