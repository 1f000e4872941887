"""Backoff strategies for retrying gateway operations."""

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffStrategy:
    """Backoff strategy configuration."""

    strategy_type: str = "exponential"  # exponential, linear, fixed
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.strategy_type not in ("exponential", "linear", "fixed"):
            raise ValueError(f"Unknown backoff strategy: {self.strategy_type}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")

    @classmethod
    def fixed(cls, delay: float) -> "BackoffStrategy":
        """Constant delay between attempts."""
        return cls(strategy_type="fixed", base_delay=delay, max_delay=delay)

    @classmethod
    def exponential(
        cls, base_delay: float, max_delay: float, multiplier: float = 2.0
    ) -> "BackoffStrategy":
        """Doubling (by default) delay capped at ``max_delay``."""
        return cls(
            strategy_type="exponential",
            base_delay=base_delay,
            max_delay=max_delay,
            multiplier=multiplier,
        )

    def get_delay(self, attempt: int) -> float:
        """Get delay for the given attempt (1-based)."""
        if attempt <= 0:
            return 0.0

        if self.strategy_type == "exponential":
            delay = self.base_delay * (self.multiplier ** (attempt - 1))
        elif self.strategy_type == "linear":
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay

        # Cap at max delay
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= random.uniform(0.5, 1.5)

        return delay
