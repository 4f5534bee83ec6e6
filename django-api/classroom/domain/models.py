"""Domain models representing persisted state.

These are pure domain objects with no API input rules.
Django ORM models are in classroom/models.py (persistence layer).
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from classroom.domain.value_objects import Actor, RequestId, Role, SessionId


class SessionStatus(Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"
    CANCELLED = "cancelled"


class BatchType(Enum):
    ONE_TO_ONE = "one_to_one"
    GROUP = "group"


class SessionEventType(Enum):
    ROOM_STARTED = "room_started"
    ROOM_ENDED = "room_ended"
    ROOM_ENDED_BY_APPROVAL = "room_ended_by_approval"
    ROOM_CANCELLED = "room_cancelled"
    END_CLASS_REQUESTED = "end_class_requested"
    END_CLASS_APPROVED = "end_class_approved"
    END_CLASS_DENIED = "end_class_denied"
    CANCELLATION_REQUESTED = "cancellation_requested"
    CANCELLATION_LEVEL_APPROVED = "cancellation_level_approved"
    CANCELLATION_APPROVED = "cancellation_approved"
    CANCELLATION_REJECTED = "cancellation_rejected"
    SESSION_CHANGE_REQUESTED = "session_change_requested"
    SESSION_CHANGE_APPROVED = "session_change_approved"
    SESSION_CHANGE_REJECTED = "session_change_rejected"
    SESSION_CHANGE_WITHDRAWN = "session_change_withdrawn"
    SESSION_RESCHEDULED = "session_rescheduled"
    ATTENDANCE_FINALIZED = "attendance_finalized"


class EndRequestStatus(Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    SUPERSEDED = "superseded"


class CancellationType(Enum):
    PARENT_INITIATED = "parent_initiated"
    GROUP_REQUEST = "group_request"
    TEACHER_INITIATED = "teacher_initiated"
    POLICY = "policy"


class CancellationStatus(Enum):
    PENDING = "pending"
    COORDINATOR_APPROVED = "coordinator_approved"
    ADMIN_APPROVED = "admin_approved"
    ACADEMIC_APPROVED = "academic_approved"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_final(self) -> bool:
        return self in (CancellationStatus.APPROVED, CancellationStatus.REJECTED)


class ChangeRequestType(Enum):
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"


class ChangeRequestStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class AttendanceStatus(Enum):
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    LEFT_EARLY = "left_early"


class AttendanceEventType(Enum):
    JOIN = "join"
    REJOIN = "rejoin"
    LEAVE = "leave"
    LATE_JOIN = "late_join"
    LEAVE_REQUEST = "leave_request"
    LEAVE_APPROVED = "leave_approved"
    LEAVE_DENIED = "leave_denied"


LEAVE_ACTIONS = frozenset(
    {
        AttendanceEventType.LEAVE_REQUEST,
        AttendanceEventType.LEAVE_APPROVED,
        AttendanceEventType.LEAVE_DENIED,
    }
)


@dataclass(frozen=True)
class Session:
    """Domain representation of one scheduled class instance."""

    id: SessionId
    title: str
    status: SessionStatus
    scheduled_start: datetime
    duration_minutes: int
    batch_type: BatchType
    assigned_teacher_id: str
    coordinator_id: str | None
    academic_operator_id: str | None = None
    went_live_at: datetime | None = None
    ended_at: datetime | None = None
    pending_end_request_id: RequestId | None = None

    @property
    def scheduled_end(self) -> datetime:
        return self.scheduled_start + timedelta(minutes=self.duration_minutes)

    def is_early(self, now: datetime) -> bool:
        """True while the scheduled end has not been reached yet."""
        return now < self.scheduled_end

    def effective_status(self, now: datetime) -> SessionStatus:
        """Status presented to read paths.

        A session still persisted as live after its scheduled end is shown as
        ended. The stored value is not touched.
        """
        if self.status is SessionStatus.LIVE and not self.is_early(now):
            return SessionStatus.ENDED
        return self.status

    def is_assigned_teacher(self, actor: Actor) -> bool:
        return actor.role is Role.TEACHER and actor.participant_id == self.assigned_teacher_id


@dataclass(frozen=True)
class Enrollment:
    """A student enrolled in a session, with their guardian when known."""

    student_id: str
    guardian_id: str | None = None


@dataclass(frozen=True)
class SessionEvent:
    """One append-only row of the session event log."""

    id: int
    session_id: SessionId
    event_type: SessionEventType
    actor_id: str | None
    actor_role: str | None
    payload: dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class EndSessionRequest:
    """A teacher's request to end a live session before its scheduled end."""

    id: RequestId
    session_id: SessionId
    requested_by: str
    reason: str
    scheduled_end: datetime
    status: EndRequestStatus
    created_at: datetime
    decided_by: str | None = None
    decided_by_role: str | None = None
    decision_reason: str | None = None
    decided_at: datetime | None = None


@dataclass(frozen=True)
class LevelDecision:
    """Decision recorded by one level of an approval chain."""

    decision: str
    approver_id: str
    decided_at: datetime


@dataclass(frozen=True)
class CancellationRequest:
    """A cancellation case travelling through its approval chain."""

    id: RequestId
    session_id: SessionId
    requester_id: str
    requester_role: Role
    reason: str
    cancellation_type: CancellationType
    status: CancellationStatus
    created_at: datetime
    decisions: dict[str, LevelDecision] = field(default_factory=dict)
    rejection_reason: str | None = None
    rejected_at_level: str | None = None


@dataclass(frozen=True)
class SessionChangeRequest:
    """A student or parent asking to reschedule or cancel a session."""

    id: RequestId
    session_id: SessionId
    request_type: ChangeRequestType
    requester_id: str
    requester_role: Role
    reason: str
    status: ChangeRequestStatus
    created_at: datetime
    proposed_start: datetime | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None


@dataclass(frozen=True)
class AttendanceSummary:
    """Cumulative presence record of one participant in one session."""

    session_id: SessionId
    participant_id: str
    participant_role: str
    status: AttendanceStatus
    first_join_at: datetime | None = None
    last_leave_at: datetime | None = None
    total_duration_sec: int = 0
    join_count: int = 0
    late: bool = False
    late_by_sec: int = 0
    leave_approved: bool = False


@dataclass(frozen=True)
class AttendanceEvent:
    """One immutable entry of a participant's presence timeline."""

    session_id: SessionId
    participant_id: str
    participant_role: str | None
    event_type: AttendanceEventType
    occurred_at: datetime
    payload: dict[str, Any] | None = None


@dataclass(frozen=True)
class FirstJoinClassification:
    status: AttendanceStatus
    late: bool
    late_by_sec: int


def classify_first_join(
    role: str, scheduled_start: datetime | None, joined_at: datetime
) -> FirstJoinClassification:
    """Lateness is decided once, at a student's first join."""
    if role == Role.STUDENT.value and scheduled_start is not None and joined_at > scheduled_start:
        late_by = int((joined_at - scheduled_start).total_seconds())
        return FirstJoinClassification(AttendanceStatus.LATE, True, late_by)
    return FirstJoinClassification(AttendanceStatus.PRESENT, False, 0)


@dataclass(frozen=True)
class AttendanceAggregate:
    """Counts derived on read over student summaries; never persisted."""

    total_students: int
    present: int
    late: int
    absent: int
    left_early: int
    avg_duration_sec: int

    @classmethod
    def from_summaries(cls, summaries: list[AttendanceSummary]) -> "AttendanceAggregate":
        students = [s for s in summaries if s.participant_role == Role.STUDENT.value]
        counts = {status: 0 for status in AttendanceStatus}
        for summary in students:
            counts[summary.status] += 1
        total_duration = sum(s.total_duration_sec for s in students)
        return cls(
            total_students=len(students),
            present=counts[AttendanceStatus.PRESENT],
            late=counts[AttendanceStatus.LATE],
            absent=counts[AttendanceStatus.ABSENT],
            left_early=counts[AttendanceStatus.LEFT_EARLY],
            avg_duration_sec=round(total_duration / len(students)) if students else 0,
        )


@dataclass(frozen=True)
class Stakeholder:
    """Anyone with a legitimate interest in a session's events."""

    participant_id: str
    role: Role


@dataclass(frozen=True)
class Notification:
    """A message queued for one recipient."""

    recipient_id: str
    recipient_role: Role
    kind: str
    session_id: SessionId | None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OutboxEntry:
    """A queued notification awaiting delivery."""

    id: int
    notification: Notification
    attempts: int
    created_at: datetime
