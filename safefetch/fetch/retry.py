"""Retry state machine for one call's attempt sequence."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import ClassVar, Literal

import httpx
import structlog

from safefetch.fetch.constants import HEADER_RETRY_AFTER
from safefetch.fetch.errors import NormalizedError
from safefetch.fetch.models import (
    HttpMethod,
    RetryContext,
    RetryPolicy,
    is_success_status,
)


logger = structlog.get_logger()


class RetryState(Enum):
    """Retry lifecycle states.

    State transitions:
        ATTEMPTING -> RESPONSE_OBTAINED: Response kept (success or not retried)
        ATTEMPTING -> WAITING: Attempt failed and is eligible for retry
        ATTEMPTING -> EXHAUSTED: Transport failure or timeout not retried
        WAITING -> ATTEMPTING: Backoff elapsed, next attempt starts
        ATTEMPTING/WAITING -> ABORTED: Total deadline elapsed
    """

    ATTEMPTING = auto()
    WAITING = auto()
    RESPONSE_OBTAINED = auto()
    EXHAUSTED = auto()
    ABORTED = auto()


class RetryStateError(Exception):
    """Raised when an invalid retry state transition is attempted."""

    def __init__(self, from_state: RetryState, to_state: RetryState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid retry state transition: {from_state.name} -> {to_state.name}"
        )


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one transport attempt: exactly one of response or error."""

    response: httpx.Response | None = None
    error: NormalizedError | None = None


def parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header in its integer-seconds form.

    Args:
        value: Raw header value.

    Returns:
        Delay in milliseconds, or None if absent or not a non-negative integer.
    """
    if value is None:
        return None
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    return int(value) * 1000


class RetryController:
    """State machine deciding whether and when to retry.

    Status-based decisions are made on the raw response, before its body is
    parsed or validated.
    """

    VALID_TRANSITIONS: ClassVar[dict[RetryState, set[RetryState]]] = {
        RetryState.ATTEMPTING: {
            RetryState.RESPONSE_OBTAINED,
            RetryState.WAITING,
            RetryState.EXHAUSTED,
            RetryState.ABORTED,
        },
        RetryState.WAITING: {
            RetryState.ATTEMPTING,
            RetryState.ABORTED,
        },
        RetryState.RESPONSE_OBTAINED: set(),  # Terminal state
        RetryState.EXHAUSTED: set(),  # Terminal state
        RetryState.ABORTED: set(),  # Terminal state
    }

    TERMINAL_STATES: ClassVar[frozenset[RetryState]] = frozenset(
        {RetryState.RESPONSE_OBTAINED, RetryState.EXHAUSTED, RetryState.ABORTED}
    )

    def __init__(
        self,
        policy: RetryPolicy | Literal[False],
        method: HttpMethod,
        log: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Initialize the controller in ATTEMPTING(0).

        Args:
            policy: Retry policy, or False when retries are disabled.
            method: Request method, used by the default eligibility rule.
            log: Bound logger for the call.
        """
        self._policy = None if policy is False else policy
        self._method = method
        self._state = RetryState.ATTEMPTING
        self._attempt = 0
        self._log = log or logger

    @property
    def state(self) -> RetryState:
        """Get the current state."""
        return self._state

    @property
    def attempt(self) -> int:
        """Index of the current (or last) attempt, starting at 0."""
        return self._attempt

    def can_transition(self, to_state: RetryState) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: RetryState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            RetryStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise RetryStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        if to_state is RetryState.ATTEMPTING:
            self._attempt += 1
        self._log.debug(
            "retry_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
            attempt=self._attempt,
        )

    def is_terminal(self) -> bool:
        """Check if the current state is terminal."""
        return self._state in self.TERMINAL_STATES

    def record(self, outcome: AttemptOutcome) -> RetryState:
        """Decide what follows the attempt that just ended.

        Args:
            outcome: Response or error from the attempt.

        Returns:
            The new state: WAITING, RESPONSE_OBTAINED or EXHAUSTED.
        """
        response = outcome.response
        if response is not None and is_success_status(response.status_code):
            self.transition(RetryState.RESPONSE_OBTAINED)
        elif self._wants_retry(outcome):
            self.transition(RetryState.WAITING)
        elif response is not None:
            self.transition(RetryState.RESPONSE_OBTAINED)
        else:
            self.transition(RetryState.EXHAUSTED)
        return self._state

    def next_delay_ms(self, outcome: AttemptOutcome) -> int:
        """Compute the wait before the next attempt.

        A ``Retry-After`` value on the response takes precedence over the
        policy's backoff and is not capped.

        Args:
            outcome: The attempt that is about to be retried.

        Returns:
            Delay in milliseconds.
        """
        if self._policy is None:
            return 0
        retry_after_ms = None
        if outcome.response is not None:
            retry_after_ms = parse_retry_after(
                outcome.response.headers.get(HEADER_RETRY_AFTER)
            )
        return self._policy.get_delay_ms(self._attempt, retry_after_ms)

    def start_next_attempt(self) -> None:
        """Leave WAITING for the next attempt."""
        self.transition(RetryState.ATTEMPTING)

    def abort(self) -> None:
        """Stop the sequence because the total deadline elapsed."""
        if not self.is_terminal():
            self.transition(RetryState.ABORTED)

    def _wants_retry(self, outcome: AttemptOutcome) -> bool:
        if self._policy is None or self._attempt >= self._policy.retries:
            return False

        context = RetryContext(
            attempt=self._attempt,
            method=self._method,
            error=outcome.error,
            response=outcome.response,
        )
        try:
            return self._policy.should_retry(context)
        except Exception:  # noqa: BLE001
            self._log.warning(
                "retry_predicate_failed", attempt=self._attempt, exc_info=True
            )
            return False
