"""Student/parent session change requests (reschedule or cancel).

Single-step review by an academic-operator-class role. This runs alongside
the multi-level cancellation workflow and shares the state machine with it.
"""

from dataclasses import dataclass
from datetime import datetime

from django.utils import timezone

from classroom.domain import (
    Actor,
    Capability,
    ChangeRequestStatus,
    ChangeRequestType,
    Role,
    Session,
    SessionChangeRequest,
    SessionEventType,
    SessionStatus,
    Stakeholder,
)
from classroom.domain.errors import (
    ConflictError,
    DuplicatePendingRequestError,
    RequestNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from classroom.domain.lifecycle import TERMINAL_STATUSES
from classroom.services.common import (
    Clock,
    best_effort,
    parse_request_id,
    parse_session_id,
    require_session,
)
from classroom.services.event_log import EventLogService
from classroom.services.notifications import NotificationService
from classroom.services.session_service import SessionService
from classroom.services.stakeholders import StakeholderResolver, change_request_scope_for
from classroom.stores import ChangeRequestStore, SessionStore
from portal.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REJECTION_REASON = "Rejected by reviewer"
LIST_LIMIT = 200


@dataclass(frozen=True)
class ChangeRequestListing:
    requests: list[SessionChangeRequest]
    counts: dict[str, int]


class ChangeRequestService:
    """Submit, review and withdraw session change requests."""

    def __init__(
        self,
        store: ChangeRequestStore,
        sessions: SessionStore,
        session_service: SessionService,
        events: EventLogService,
        notifications: NotificationService,
        stakeholders: StakeholderResolver,
        now: Clock = timezone.now,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._session_service = session_service
        self._events = events
        self._notifications = notifications
        self._stakeholders = stakeholders
        self._now = now

    def submit(
        self,
        session_id: str,
        actor: Actor,
        request_type: str,
        reason: str,
        proposed_start: datetime | None = None,
    ) -> SessionChangeRequest:
        """Open a change request on a session the actor is enrolled in.

        Raises:
            UnauthorizedError: Actor is not an enrolled student or their guardian.
            ValidationError: Bad type, missing reason, or reschedule without a new start.
            ConflictError: Session is closed, or a request of theirs is pending.
        """
        if not actor.can(Capability.SUBMIT_SESSION_CHANGE):
            raise UnauthorizedError("Only students or parents can submit session change requests")
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        if not self._stakeholders.is_enrolled_party(session, actor):
            raise UnauthorizedError("You are not enrolled in this session")
        try:
            rtype = ChangeRequestType(request_type)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown request type: {request_type}", field="request_type"
            ) from exc
        if not reason or not reason.strip():
            raise ValidationError("Reason is required", field="reason")
        if rtype is ChangeRequestType.RESCHEDULE and proposed_start is None:
            raise ValidationError(
                "proposed_start is required for reschedule requests", field="proposed_start"
            )
        if session.status in TERMINAL_STATUSES:
            raise ConflictError(f"Session is already {session.status.value}")
        if self._store.has_pending(sid, actor.participant_id):
            raise DuplicatePendingRequestError("You already have a pending request for this session")

        request = self._store.create(
            sid,
            rtype,
            actor.participant_id,
            actor.role,
            reason.strip(),
            proposed_start if rtype is ChangeRequestType.RESCHEDULE else None,
            self._now(),
        )
        self._events.append(
            sid,
            SessionEventType.SESSION_CHANGE_REQUESTED,
            actor,
            {
                "request_id": str(request.id),
                "request_type": rtype.value,
                "proposed_start": request.proposed_start.isoformat() if request.proposed_start else None,
            },
        )
        self._notifications.notify(
            [s for s in self._stakeholders.resolve(session) if s.role is Role.ACADEMIC_OPERATOR],
            "session_change_requested",
            sid,
            {"request_id": str(request.id), "request_type": rtype.value, "reason": request.reason},
        )
        logger.info("session_change_requested", session_id=str(sid), request_id=str(request.id))
        return request

    def approve(self, request_id: str, actor: Actor, reason: str | None = None) -> SessionChangeRequest:
        """Apply the change: move the start of a scheduled session, or cancel it.

        Raises:
            UnauthorizedError: Actor cannot review change requests.
            RequestNotFoundError: Unknown request.
            ConflictError: Request not pending, or the session cannot take the change.
        """
        self._require_reviewer(actor)
        request = self._require_request(request_id)
        if request.status is not ChangeRequestStatus.PENDING:
            raise ConflictError(f"Request is already {request.status.value}")
        session = require_session(self._sessions, request.session_id)
        if request.request_type is ChangeRequestType.RESCHEDULE:
            if session.status is not SessionStatus.SCHEDULED:
                raise ConflictError(f"A {session.status.value} session cannot be rescheduled")
        elif session.status in TERMINAL_STATUSES:
            raise ConflictError(f"Session is already {session.status.value}")

        if not self._store.review(
            request.id, ChangeRequestStatus.APPROVED, actor.participant_id, None, self._now()
        ):
            raise ConflictError("Request is no longer pending")

        if request.request_type is ChangeRequestType.RESCHEDULE:
            self._apply_reschedule(session, request, actor)
        else:
            try:
                self._session_service.cancel_session(
                    str(session.id), actor, source="session_change_request", reason=request.reason
                )
            except ConflictError as exc:
                logger.warning(
                    "session_change_cancel_skipped",
                    session_id=str(session.id),
                    request_id=str(request.id),
                    error=exc.message,
                )

        self._events.append(
            session.id,
            SessionEventType.SESSION_CHANGE_APPROVED,
            actor,
            {"request_id": str(request.id), "request_type": request.request_type.value, "note": reason},
        )
        recipients = self._stakeholders.resolve(session)
        recipients.append(Stakeholder(request.requester_id, request.requester_role))
        self._notifications.notify(
            recipients,
            "session_change_approved",
            session.id,
            {
                "request_id": str(request.id),
                "request_type": request.request_type.value,
                "title": session.title,
                "proposed_start": request.proposed_start.isoformat() if request.proposed_start else None,
            },
        )
        return self._store.get(request.id)

    def reject(self, request_id: str, actor: Actor, reason: str | None = None) -> SessionChangeRequest:
        self._require_reviewer(actor)
        request = self._require_request(request_id)
        if request.status is not ChangeRequestStatus.PENDING:
            raise ConflictError(f"Request is already {request.status.value}")
        reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
        if not self._store.review(
            request.id, ChangeRequestStatus.REJECTED, actor.participant_id, reason, self._now()
        ):
            raise ConflictError("Request is no longer pending")

        self._events.append(
            request.session_id,
            SessionEventType.SESSION_CHANGE_REJECTED,
            actor,
            {"request_id": str(request.id), "reason": reason},
        )
        self._notifications.notify(
            [Stakeholder(request.requester_id, request.requester_role)],
            "session_change_rejected",
            request.session_id,
            {"request_id": str(request.id), "reason": reason},
        )
        logger.info("session_change_rejected", request_id=str(request.id), actor_id=actor.participant_id)
        return self._store.get(request.id)

    def withdraw(self, request_id: str, actor: Actor) -> SessionChangeRequest:
        request = self._require_request(request_id)
        if request.requester_id != actor.participant_id:
            raise UnauthorizedError("Only the requester can withdraw this request")
        if request.status is not ChangeRequestStatus.PENDING:
            raise ConflictError(f"Request is already {request.status.value}")
        if not self._store.withdraw(request.id, actor.participant_id):
            raise ConflictError("Request is no longer pending")
        self._events.append(
            request.session_id,
            SessionEventType.SESSION_CHANGE_WITHDRAWN,
            actor,
            {"request_id": str(request.id)},
        )
        logger.info("session_change_withdrawn", request_id=str(request.id))
        return self._store.get(request.id)

    def list_requests(self, actor: Actor) -> ChangeRequestListing:
        requests = self._store.list_requests(change_request_scope_for(actor), limit=LIST_LIMIT)
        counts = {status.value: 0 for status in ChangeRequestStatus}
        for request in requests:
            counts[request.status.value] += 1
        counts["total"] = len(requests)
        return ChangeRequestListing(requests=requests, counts=counts)

    def _apply_reschedule(
        self, session: Session, request: SessionChangeRequest, actor: Actor
    ) -> None:
        new_start = request.proposed_start
        if not self._sessions.reschedule(session.id, new_start):
            logger.warning(
                "session_reschedule_skipped",
                session_id=str(session.id),
                request_id=str(request.id),
            )
            return
        self._events.append(
            session.id,
            SessionEventType.SESSION_RESCHEDULED,
            actor,
            {
                "request_id": str(request.id),
                "previous_start": session.scheduled_start.isoformat(),
                "new_start": new_start.isoformat(),
            },
        )
        best_effort(
            "mirror_sync",
            self._sessions.sync_mirror,
            session.id,
            SessionStatus.SCHEDULED,
            self._now(),
            new_start,
            session_id=str(session.id),
        )
        logger.info("session_rescheduled", session_id=str(session.id), new_start=new_start.isoformat())

    def _require_reviewer(self, actor: Actor) -> None:
        if not actor.can(Capability.REVIEW_SESSION_CHANGE):
            raise UnauthorizedError(f"Your role ({actor.role.value}) cannot review session change requests")

    def _require_request(self, request_id: str) -> SessionChangeRequest:
        request = self._store.get(parse_request_id(request_id))
        if request is None:
            raise RequestNotFoundError("Session change request not found")
        return request
