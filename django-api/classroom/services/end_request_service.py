"""Early end-of-session approval.

Ending before the scheduled end needs an admin's decision. The session holds
a nullable pointer to its one pending request; claiming and releasing that
pointer are conditional writes, which is what rejects duplicate requests and
double decisions.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from django.utils import timezone

from classroom.domain import (
    Actor,
    Capability,
    EndRequestStatus,
    EndSessionRequest,
    Role,
    Session,
    SessionEventType,
    SessionStatus,
    Stakeholder,
)
from classroom.domain.errors import (
    ConflictError,
    DuplicatePendingRequestError,
    RequestNotFoundError,
    UnauthorizedError,
)
from classroom.services.common import Clock, parse_session_id, require_session
from classroom.services.event_log import EventLogService
from classroom.services.notifications import NotificationService
from classroom.services.session_service import END_VIA_EARLY_APPROVAL, SessionService
from classroom.services.stakeholders import StakeholderResolver
from classroom.stores import EndRequestStore, SessionStore
from portal.logging import get_logger

logger = get_logger(__name__)

OUTCOME_ENDED = "ended"
OUTCOME_PENDING = "pending"


@dataclass(frozen=True)
class EndRequestOutcome:
    outcome: str
    session: Session
    request: EndSessionRequest | None = None


@dataclass(frozen=True)
class EndRequestStatusView:
    """What a polling teacher sees."""

    status: EndRequestStatus
    request: EndSessionRequest | None
    poll_interval_sec: int
    force_end_after_sec: int
    force_end_available_at: datetime | None


class EndRequestService:
    """Request, decide and poll early-end requests."""

    def __init__(
        self,
        store: EndRequestStore,
        sessions: SessionStore,
        session_service: SessionService,
        events: EventLogService,
        notifications: NotificationService,
        stakeholders: StakeholderResolver,
        poll_interval_sec: int = 5,
        force_end_after_sec: int = 180,
        now: Clock = timezone.now,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._session_service = session_service
        self._events = events
        self._notifications = notifications
        self._stakeholders = stakeholders
        self._poll_interval_sec = poll_interval_sec
        self._force_end_after_sec = force_end_after_sec
        self._now = now

    def request_end(self, session_id: str, actor: Actor, reason: str = "") -> EndRequestOutcome:
        """Ask to end a live session.

        After the scheduled end this simply ends the session. Before it, a
        pending request is recorded for an admin to decide.

        Raises:
            UnauthorizedError: Actor is not the assigned teacher.
            ConflictError: Session is not live.
            DuplicatePendingRequestError: A request is already pending.
        """
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        if not session.is_assigned_teacher(actor):
            raise UnauthorizedError("Only the assigned teacher can request to end this session")
        if session.status is not SessionStatus.LIVE:
            raise ConflictError(f"Session is {session.status.value}, not live")

        now = self._now()
        if not session.is_early(now):
            ended = self._session_service.end_session(str(sid), actor)
            return EndRequestOutcome(outcome=OUTCOME_ENDED, session=ended)

        if session.pending_end_request_id is not None:
            raise DuplicatePendingRequestError("An end request is already pending for this session")

        request = self._store.create(sid, actor.participant_id, reason, session.scheduled_end, now)
        if not self._sessions.claim_pending_end_request(sid, request.id):
            self._store.discard(request.id)
            current = require_session(self._sessions, sid)
            if current.status is not SessionStatus.LIVE:
                raise ConflictError(f"Session is {current.status.value}, not live")
            raise DuplicatePendingRequestError("An end request is already pending for this session")

        self._events.append(
            sid,
            SessionEventType.END_CLASS_REQUESTED,
            actor,
            {
                "request_id": str(request.id),
                "reason": reason,
                "requested_at": now.isoformat(),
                "scheduled_end": session.scheduled_end.isoformat(),
            },
        )
        self._notifications.notify(
            self._stakeholders.with_capability(session, Capability.DECIDE_END_REQUEST),
            "end_request_pending",
            sid,
            {"title": session.title, "requested_by": actor.participant_id, "reason": reason},
        )
        logger.info("end_request_created", session_id=str(sid), request_id=str(request.id))
        return EndRequestOutcome(
            outcome=OUTCOME_PENDING,
            session=require_session(self._sessions, sid),
            request=request,
        )

    def decide(
        self, session_id: str, actor: Actor, approve: bool, reason: str | None = None
    ) -> EndSessionRequest:
        """Approve or deny the pending request.

        Approval ends the session as the approver. If the session stopped
        being live in the meantime, the decision stands and the end is skipped.

        Raises:
            UnauthorizedError: Actor cannot decide end requests.
            RequestNotFoundError: Nothing is pending, or another decision or a
                direct end closed the request first.
        """
        if not actor.can(Capability.DECIDE_END_REQUEST):
            raise UnauthorizedError(f"Your role ({actor.role.value}) cannot decide end requests")
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        request_id = session.pending_end_request_id
        if request_id is None or not self._sessions.release_pending_end_request(sid, request_id):
            raise RequestNotFoundError("No pending end request for this session")

        status = EndRequestStatus.APPROVED if approve else EndRequestStatus.DENIED
        closed = self._store.close(
            request_id, status, actor.participant_id, actor.role.value, reason, self._now()
        )
        if not closed:
            # A direct end superseded the request between release and close.
            logger.warning(
                "end_request_decision_lost",
                session_id=str(sid),
                request_id=str(request_id),
                decision=status.value,
            )
            raise RequestNotFoundError("The end request was already closed")
        event_type = (
            SessionEventType.END_CLASS_APPROVED if approve else SessionEventType.END_CLASS_DENIED
        )
        self._events.append(
            sid,
            event_type,
            actor,
            {
                "request_id": str(request_id),
                "decided_by": actor.participant_id,
                "decided_by_role": actor.role.value,
                "reason": reason,
            },
        )
        logger.info(
            "end_request_decided",
            session_id=str(sid),
            request_id=str(request_id),
            decision=status.value,
            actor_id=actor.participant_id,
        )

        if approve:
            try:
                self._session_service.end_session(str(sid), actor, via=END_VIA_EARLY_APPROVAL)
            except ConflictError as exc:
                logger.warning(
                    "end_request_approved_session_not_live",
                    session_id=str(sid),
                    error=exc.message,
                )

        self._notifications.notify(
            [Stakeholder(session.assigned_teacher_id, Role.TEACHER)],
            "end_request_decided",
            sid,
            {"decision": status.value, "decided_by": actor.participant_id, "reason": reason},
        )
        return self._store.get(request_id)

    def ensure_can_view(self, session_id: str, actor: Actor) -> Session:
        """Only the assigned teacher and end-request deciders may poll."""
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        if not (session.is_assigned_teacher(actor) or actor.can(Capability.DECIDE_END_REQUEST)):
            raise UnauthorizedError(f"Your role ({actor.role.value}) cannot view this end request")
        return session

    def status(self, session_id: str, actor: Actor) -> EndRequestStatusView:
        """Latest request state plus the client polling policy.

        Force-ending is the client calling end_session once
        force_end_available_at has passed; the server never enforces it.
        """
        session = self.ensure_can_view(session_id, actor)
        latest = self._store.latest_for_session(session.id)
        force_end_available_at = None
        if latest is not None and latest.status is EndRequestStatus.PENDING:
            force_end_available_at = latest.created_at + timedelta(seconds=self._force_end_after_sec)
        return EndRequestStatusView(
            status=latest.status if latest else EndRequestStatus.NONE,
            request=latest,
            poll_interval_sec=self._poll_interval_sec,
            force_end_after_sec=self._force_end_after_sec,
            force_end_available_at=force_end_available_at,
        )
