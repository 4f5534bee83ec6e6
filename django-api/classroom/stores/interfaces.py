"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. Every guarded write is a
single conditional update whose boolean result tells the caller whether it
won; no store method holds a lock across calls.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from classroom.domain import (
    AttendanceEvent,
    AttendanceSummary,
    CancellationRequest,
    CancellationStatus,
    CancellationType,
    ChangeRequestStatus,
    ChangeRequestType,
    EndRequestStatus,
    EndSessionRequest,
    Enrollment,
    Notification,
    OutboxEntry,
    RequestId,
    Role,
    Session,
    SessionChangeRequest,
    SessionEvent,
    SessionEventType,
    SessionId,
    SessionStatus,
)
from classroom.domain.approval_chain import AdvancePlan
from classroom.domain.models import FirstJoinClassification


@dataclass(frozen=True)
class RequestScope:
    """Visibility filter for request listings.

    Set fields are OR-ed together; a scope with no field set sees everything.
    """

    requester_id: str | None = None
    teacher_id: str | None = None
    coordinator_id: str | None = None
    academic_operator_id: str | None = None

    @property
    def is_unrestricted(self) -> bool:
        return not any(
            (self.requester_id, self.teacher_id, self.coordinator_id, self.academic_operator_id)
        )


class SessionStore(ABC):
    """Interface for session persistence and its roster."""

    @abstractmethod
    def get(self, session_id: SessionId) -> Session | None:
        """Return a session by ID, or None if not found."""
        ...

    @abstractmethod
    def transition(
        self,
        session_id: SessionId,
        from_statuses: frozenset[SessionStatus],
        to_status: SessionStatus,
        at: datetime,
    ) -> bool:
        """Move to to_status only if the current status is in from_statuses.

        Going live stamps went_live_at; ending stamps ended_at. Leaving the
        live status clears the pending end-request pointer. Returns True when
        this call performed the write.
        """
        ...

    @abstractmethod
    def claim_pending_end_request(self, session_id: SessionId, request_id: RequestId) -> bool:
        """Point the session at request_id only if it is live and no request is pending."""
        ...

    @abstractmethod
    def release_pending_end_request(self, session_id: SessionId, request_id: RequestId) -> bool:
        """Clear the pointer only if it still references request_id."""
        ...

    @abstractmethod
    def reschedule(self, session_id: SessionId, new_start: datetime) -> bool:
        """Move a scheduled session to a new start time."""
        ...

    @abstractmethod
    def enrollments(self, session_id: SessionId) -> list[Enrollment]:
        """Return the session's roster."""
        ...

    @abstractmethod
    def sync_mirror(
        self,
        session_id: SessionId,
        status: SessionStatus,
        at: datetime,
        scheduled_start: datetime | None = None,
    ) -> None:
        """Bring the mirrored scheduling record in line with the session."""
        ...


class EventLogStore(ABC):
    """Interface for the append-only session event ledger."""

    @abstractmethod
    def append(
        self,
        session_id: SessionId,
        event_type: SessionEventType,
        actor_id: str | None,
        actor_role: str | None,
        payload: dict[str, Any],
        at: datetime,
    ) -> SessionEvent:
        ...

    @abstractmethod
    def list_for_session(
        self,
        session_id: SessionId,
        event_types: Iterable[SessionEventType] | None = None,
    ) -> list[SessionEvent]:
        """Return events oldest first, optionally restricted to event_types."""
        ...


class EndRequestStore(ABC):
    """Interface for early end-of-session requests."""

    @abstractmethod
    def create(
        self,
        session_id: SessionId,
        requested_by: str,
        reason: str,
        scheduled_end: datetime,
        at: datetime,
    ) -> EndSessionRequest:
        ...

    @abstractmethod
    def get(self, request_id: RequestId) -> EndSessionRequest | None:
        ...

    @abstractmethod
    def latest_for_session(self, session_id: SessionId) -> EndSessionRequest | None:
        ...

    @abstractmethod
    def close(
        self,
        request_id: RequestId,
        status: EndRequestStatus,
        decided_by: str | None,
        decided_by_role: str | None,
        reason: str | None,
        at: datetime,
    ) -> bool:
        """Record the outcome only if the request is still pending."""
        ...

    @abstractmethod
    def discard(self, request_id: RequestId) -> None:
        """Remove a request that never became the session's pending request."""
        ...


class CancellationStore(ABC):
    """Interface for cancellation requests."""

    @abstractmethod
    def create(
        self,
        session_id: SessionId,
        requester_id: str,
        requester_role: Role,
        reason: str,
        cancellation_type: CancellationType,
        at: datetime,
    ) -> CancellationRequest:
        ...

    @abstractmethod
    def get(self, request_id: RequestId) -> CancellationRequest | None:
        ...

    @abstractmethod
    def has_open_request(self, session_id: SessionId, requester_id: str) -> bool:
        """True if requester_id has a request on this session that is not finalized."""
        ...

    @abstractmethod
    def apply_decision(
        self,
        request_id: RequestId,
        plan: AdvancePlan,
        approver_id: str,
        reason: str | None,
        at: datetime,
    ) -> bool:
        """Write one level's decision only if the status still equals plan.expected_status."""
        ...

    @abstractmethod
    def list_requests(
        self,
        scope: RequestScope,
        session_id: SessionId | None = None,
        status: CancellationStatus | None = None,
        limit: int = 200,
    ) -> list[CancellationRequest]:
        """Return requests newest first."""
        ...


class ChangeRequestStore(ABC):
    """Interface for reschedule/cancel change requests."""

    @abstractmethod
    def create(
        self,
        session_id: SessionId,
        request_type: ChangeRequestType,
        requester_id: str,
        requester_role: Role,
        reason: str,
        proposed_start: datetime | None,
        at: datetime,
    ) -> SessionChangeRequest:
        ...

    @abstractmethod
    def get(self, request_id: RequestId) -> SessionChangeRequest | None:
        ...

    @abstractmethod
    def has_pending(self, session_id: SessionId, requester_id: str) -> bool:
        ...

    @abstractmethod
    def review(
        self,
        request_id: RequestId,
        status: ChangeRequestStatus,
        reviewer_id: str,
        reason: str | None,
        at: datetime,
    ) -> bool:
        """Approve or reject only if the request is still pending."""
        ...

    @abstractmethod
    def withdraw(self, request_id: RequestId, requester_id: str) -> bool:
        """Withdraw only a pending request owned by requester_id."""
        ...

    @abstractmethod
    def list_requests(self, scope: RequestScope, limit: int = 200) -> list[SessionChangeRequest]:
        """Return requests newest first."""
        ...


class AttendanceStore(ABC):
    """Interface for attendance summaries and the presence timeline."""

    @abstractmethod
    def get_summary(self, session_id: SessionId, participant_id: str) -> AttendanceSummary | None:
        ...

    @abstractmethod
    def create_first_join(
        self,
        session_id: SessionId,
        participant_id: str,
        role: str,
        classification: FirstJoinClassification,
        at: datetime,
    ) -> bool:
        """Create the summary with join_count=1; False if a row already existed."""
        ...

    @abstractmethod
    def register_rejoin(
        self,
        session_id: SessionId,
        participant_id: str,
        classification: FirstJoinClassification,
        at: datetime,
    ) -> bool:
        """Increment join_count on an existing row.

        A row that never saw a join (an absentee fill-in) takes the
        classification and first_join_at; returns True in that case only.
        """
        ...

    @abstractmethod
    def accrue_leave(
        self, session_id: SessionId, participant_id: str, seconds: int, at: datetime
    ) -> None:
        ...

    @abstractmethod
    def approve_leave(self, session_id: SessionId, participant_id: str) -> bool:
        ...

    @abstractmethod
    def insert_absent_if_missing(self, session_id: SessionId, participant_id: str, role: str) -> bool:
        """Insert an absent row; no-op returning False if any row exists."""
        ...

    @abstractmethod
    def append_event(self, event: AttendanceEvent) -> None:
        ...

    @abstractmethod
    def latest_join_at(self, session_id: SessionId, participant_id: str) -> datetime | None:
        """Timestamp of the most recent join or rejoin event."""
        ...

    @abstractmethod
    def list_summaries(self, session_id: SessionId) -> list[AttendanceSummary]:
        ...

    @abstractmethod
    def list_events(self, session_id: SessionId) -> list[AttendanceEvent]:
        ...


class NotificationStore(ABC):
    """Interface for the notification outbox."""

    @abstractmethod
    def enqueue(self, notifications: list[Notification], at: datetime) -> None:
        ...

    @abstractmethod
    def pending(self, limit: int) -> list[OutboxEntry]:
        ...

    @abstractmethod
    def mark_sent(self, entry_id: int, at: datetime) -> None:
        ...

    @abstractmethod
    def mark_failed_attempt(self, entry_id: int, error: str, max_attempts: int) -> None:
        """Count a failed attempt; give up once max_attempts is reached."""
        ...
