"""State machine for a single time-range collection request."""

from __future__ import annotations

from slackmcp.domain.errors import InvalidTransitionError
from slackmcp.domain.types import CollectionEvent, CollectionState

# All valid (current_state, event) -> next_state mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[CollectionState, str], CollectionState] = {
    # From SCANNING
    (CollectionState.SCANNING, CollectionEvent.SCAN_COMPLETE): CollectionState.IDENTIFYING,
    (CollectionState.SCANNING, CollectionEvent.FAIL): CollectionState.FAILED,
    # From IDENTIFYING (no anchors means nothing to collect)
    (CollectionState.IDENTIFYING, CollectionEvent.ANCHORS_IDENTIFIED): CollectionState.COLLECTING,
    (CollectionState.IDENTIFYING, CollectionEvent.FINISH): CollectionState.DONE,
    (CollectionState.IDENTIFYING, CollectionEvent.FINISH_DEGRADED): (
        CollectionState.PARTIAL_FAILURE
    ),
    (CollectionState.IDENTIFYING, CollectionEvent.FAIL): CollectionState.FAILED,
    # From COLLECTING
    (CollectionState.COLLECTING, CollectionEvent.FINISH): CollectionState.DONE,
    (CollectionState.COLLECTING, CollectionEvent.FINISH_DEGRADED): CollectionState.PARTIAL_FAILURE,
    (CollectionState.COLLECTING, CollectionEvent.FAIL): CollectionState.FAILED,
}

TERMINAL_STATES: frozenset[CollectionState] = frozenset(
    {CollectionState.DONE, CollectionState.PARTIAL_FAILURE, CollectionState.FAILED}
)


class CollectionStateMachine:
    """Tracks one request through ``scanning -> identifying -> collecting -> done``.

    Partial failures (a truncated scan, a skipped anchor) are recorded while
    the request runs; ``complete()`` then ends in ``partial_failure`` instead
    of ``done``.

    Usage::

        sm = CollectionStateMachine()
        sm.trigger("scan_complete")        # -> IDENTIFYING
        sm.trigger("anchors_identified")   # -> COLLECTING
        sm.record_partial_failure("anchor 200.000000: thread_not_found")
        sm.complete()                      # -> PARTIAL_FAILURE
    """

    def __init__(self, initial_state: CollectionState = CollectionState.SCANNING) -> None:
        self._state: CollectionState = initial_state
        self._history: list[tuple[CollectionState, str, CollectionState]] = []
        self._partial_failures: list[str] = []

    @property
    def state(self) -> CollectionState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def history(self) -> list[tuple[CollectionState, str, CollectionState]]:
        """Copy of the ``(from_state, event, to_state)`` transitions so far."""
        return list(self._history)

    @property
    def partial_failures(self) -> list[str]:
        return list(self._partial_failures)

    def trigger(self, event: str) -> CollectionState:
        """Apply an event to the current state and transition.

        Raises:
            InvalidTransitionError: If the transition is not allowed from
                the current state, or if the machine is in a terminal state.
        """
        key = (self._state, event)
        if self.is_terminal or key not in TRANSITIONS:
            raise InvalidTransitionError(self._state, event)

        old_state = self._state
        self._state = TRANSITIONS[key]
        self._history.append((old_state, event, self._state))
        return self._state

    def record_partial_failure(self, reason: str) -> None:
        """Note a recoverable failure without leaving the current state."""
        if self.is_terminal:
            raise InvalidTransitionError(self._state, "record_partial_failure")
        self._partial_failures.append(reason)

    def complete(self) -> CollectionState:
        """Finish the request, degraded if any partial failure was recorded."""
        if self._partial_failures:
            return self.trigger(CollectionEvent.FINISH_DEGRADED)
        return self.trigger(CollectionEvent.FINISH)

    def fail(self) -> CollectionState:
        return self.trigger(CollectionEvent.FAIL)
