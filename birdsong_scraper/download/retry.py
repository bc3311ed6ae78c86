"""
Retry policy as an explicit state machine.

States:
    Pending       not started
    Attempting(n) attempt n (1-based) in progress
    Succeeded     terminal
    Abandoned     terminal, retries exhausted

transition() is pure: it maps (state, outcome) to the next state and the
delay to wait before entering it.
"""

from dataclasses import dataclass
from enum import Enum


class Outcome(str, Enum):
    START = "start"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Attempting:
    attempt: int


@dataclass(frozen=True)
class Succeeded:
    attempts: int


@dataclass(frozen=True)
class Abandoned:
    attempts: int


RetryState = Pending | Attempting | Succeeded | Abandoned


@dataclass(frozen=True)
class RetryPolicy:
    """max_retries retries after the first attempt, delays base * 2**(n-1)."""

    max_retries: int = 3
    backoff_base: float = 1.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff(self, failed_attempt: int) -> float:
        return self.backoff_base * (2 ** (failed_attempt - 1))


def is_terminal(state: RetryState) -> bool:
    return isinstance(state, (Succeeded, Abandoned))


def transition(
    state: RetryState, outcome: Outcome, policy: RetryPolicy = RetryPolicy()
) -> tuple[RetryState, float]:
    """
    Compute the next retry state.

    Args:
        state: Current state
        outcome: START for a Pending state, SUCCESS/FAILURE of the current attempt
        policy: Attempt limit and backoff

    Returns:
        (next_state, delay_seconds) where delay is the wait before the next attempt

    Raises:
        ValueError: If the outcome is not valid for the state
    """
    if isinstance(state, Pending):
        if outcome is Outcome.START:
            return Attempting(1), 0.0
    elif isinstance(state, Attempting):
        if outcome is Outcome.SUCCESS:
            return Succeeded(state.attempt), 0.0
        if outcome is Outcome.FAILURE:
            if state.attempt >= policy.max_attempts:
                return Abandoned(state.attempt), 0.0
            return Attempting(state.attempt + 1), policy.backoff(state.attempt)
    raise ValueError(f"Invalid transition from {state!r} on {outcome.value}")

