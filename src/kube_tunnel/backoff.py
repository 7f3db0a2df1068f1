"""Exponential restart backoff for the port-forward supervisor."""

from dataclasses import dataclass, field


@dataclass(slots=True)
class BackoffState:
    """Doubling restart delay with a cap and an explicit reset.

    ``next_delay`` hands out the delay to wait right now and doubles the
    stored delay for the following failure, so consecutive failures wait
    1, 2, 4, 8, 16, 30, 30, ... seconds with the defaults.

    Attributes:
        minimum: First delay in seconds, and the value ``reset`` returns to.
        maximum: Cap in seconds.
        current_delay: Delay the next failure will wait.
    """

    minimum: float = 1.0
    maximum: float = 30.0
    current_delay: float = field(init=False)

    def __post_init__(self) -> None:
        if self.minimum <= 0:
            raise ValueError("minimum must be positive")
        if self.maximum < self.minimum:
            raise ValueError("maximum must not be lower than minimum")
        self.current_delay = self.minimum

    def next_delay(self) -> float:
        """Return the delay for this failure and advance the state."""
        delay = self.current_delay
        self.current_delay = min(self.current_delay * 2, self.maximum)
        return delay

    def reset(self) -> None:
        """Return to the minimum delay after a stable run."""
        self.current_delay = self.minimum

    @property
    def is_reset(self) -> bool:
        return self.current_delay == self.minimum
