"""Rate limiting data models."""

from dataclasses import dataclass


@dataclass
class Bucket:
    """Per-key token bucket state."""

    key: str
    tokens: float
    last_refill: float  # clock seconds
    capacity: float
    refill_rate: float  # tokens per second


@dataclass(frozen=True)
class RateLimitPolicy:
    """Named bucket parameters; keys are namespaced by the policy name."""

    name: str
    capacity: float
    refill_rate: float

    def key_for(self, identifier: str) -> str:
        return f"{self.name}:{identifier}"


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one admission check."""

    granted: bool
    remaining: int
    limit: int
    reset_after: float  # seconds until the bucket is full again
    retry_after: int | None = None  # only set on denial
