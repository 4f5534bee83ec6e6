"""Allowed session status edges."""

from classroom.domain.models import SessionStatus

TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.LIVE, SessionStatus.CANCELLED}),
    SessionStatus.LIVE: frozenset({SessionStatus.ENDED, SessionStatus.CANCELLED}),
    SessionStatus.ENDED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in TRANSITIONS[current]


def sources_for(target: SessionStatus) -> frozenset[SessionStatus]:
    """Every status from which target can be reached in one edge."""
    return frozenset(
        status for status, targets in TRANSITIONS.items() if target in targets
    )
