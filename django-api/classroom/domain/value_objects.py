"""Domain primitives that enforce validity at creation time."""

from dataclasses import dataclass
from enum import Enum
from typing import Self
from uuid import UUID


@dataclass(frozen=True)
class SessionId:
    """Unique identifier for a class Session."""

    value: UUID

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(str(value)))

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class RequestId:
    """Unique identifier for an approval request of any kind."""

    value: UUID

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(str(value)))

    def __str__(self) -> str:
        return str(self.value)


class Role(Enum):
    """Closed set of portal roles."""

    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"
    BATCH_COORDINATOR = "batch_coordinator"
    ACADEMIC_OPERATOR = "academic_operator"
    HR = "hr"
    OWNER = "owner"
    GHOST = "ghost"

    @classmethod
    def parse(cls, value: str) -> Self:
        """Parse a role name, accepting the legacy aliases still issued by old tokens."""
        normalized = value.strip().lower()
        normalized = _ROLE_ALIASES.get(normalized, normalized)
        return cls(normalized)


_ROLE_ALIASES = {
    "academic": "academic_operator",
    "coordinator": "batch_coordinator",
}


class Capability(Enum):
    """Actions gated by role rather than by ownership."""

    START_SESSION = "start_session"
    END_SESSION = "end_session"
    DECIDE_END_REQUEST = "decide_end_request"
    APPROVE_COORDINATOR_LEVEL = "approve_coordinator_level"
    APPROVE_ADMIN_LEVEL = "approve_admin_level"
    APPROVE_ACADEMIC_LEVEL = "approve_academic_level"
    APPROVE_HR_LEVEL = "approve_hr_level"
    REQUEST_POLICY_CANCELLATION = "request_policy_cancellation"
    REVIEW_SESSION_CHANGE = "review_session_change"
    SUBMIT_SESSION_CHANGE = "submit_session_change"
    DECIDE_LEAVE = "decide_leave"
    VIEW_ALL_ATTENDANCE = "view_all_attendance"
    VIEW_ALL_REQUESTS = "view_all_requests"


_ADMIN_CLASS = frozenset({Role.BATCH_COORDINATOR, Role.ACADEMIC_OPERATOR, Role.OWNER})

CAPABILITIES: dict[Capability, frozenset[Role]] = {
    Capability.START_SESSION: _ADMIN_CLASS,
    Capability.END_SESSION: _ADMIN_CLASS,
    Capability.DECIDE_END_REQUEST: _ADMIN_CLASS,
    Capability.APPROVE_COORDINATOR_LEVEL: frozenset({Role.BATCH_COORDINATOR, Role.OWNER}),
    Capability.APPROVE_ADMIN_LEVEL: frozenset({Role.OWNER, Role.ACADEMIC_OPERATOR}),
    Capability.APPROVE_ACADEMIC_LEVEL: frozenset({Role.ACADEMIC_OPERATOR, Role.OWNER}),
    Capability.APPROVE_HR_LEVEL: frozenset({Role.HR, Role.OWNER}),
    Capability.REQUEST_POLICY_CANCELLATION: frozenset({Role.ACADEMIC_OPERATOR, Role.OWNER}),
    Capability.REVIEW_SESSION_CHANGE: frozenset(
        {Role.ACADEMIC_OPERATOR, Role.OWNER, Role.HR, Role.BATCH_COORDINATOR}
    ),
    Capability.SUBMIT_SESSION_CHANGE: frozenset({Role.STUDENT, Role.PARENT}),
    Capability.DECIDE_LEAVE: _ADMIN_CLASS,
    Capability.VIEW_ALL_ATTENDANCE: _ADMIN_CLASS | {Role.TEACHER, Role.HR, Role.GHOST},
    Capability.VIEW_ALL_REQUESTS: frozenset({Role.OWNER, Role.HR, Role.ACADEMIC_OPERATOR}),
}


@dataclass(frozen=True)
class Actor:
    """A resolved (participant id, role) identity."""

    participant_id: str
    role: Role

    def can(self, capability: Capability) -> bool:
        return self.role in CAPABILITIES[capability]
