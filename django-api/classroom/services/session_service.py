"""Session state machine: the only writer of Session.status.

Every transition is one conditional write keyed on the current status, so
concurrent callers race in the database and exactly one wins. Side effects
(room teardown, mirror sync, attendance finalization, notifications) run
after the write and are logged on failure, never rolled back.
"""

from dataclasses import dataclass

from django.utils import timezone

from classroom.domain import (
    Actor,
    Capability,
    EndRequestStatus,
    Session,
    SessionEventType,
    SessionId,
    SessionStatus,
)
from classroom.domain.errors import InvalidTransitionError, UnauthorizedError
from classroom.domain.lifecycle import can_transition, sources_for
from classroom.integrations.transport import RoomTransport
from classroom.services.attendance_service import AttendanceService
from classroom.services.common import Clock, best_effort, parse_session_id, require_session
from classroom.services.event_log import EventLogService
from classroom.services.notifications import NotificationService
from classroom.services.stakeholders import StakeholderResolver
from classroom.stores import EndRequestStore, SessionStore
from portal.logging import get_logger

logger = get_logger(__name__)

END_VIA_TEACHER = "teacher"
END_VIA_EARLY_APPROVAL = "early_approval"
END_VIA_TRANSPORT = "transport"

# Recorded as decider of requests closed by a transport-driven end.
SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class GoLiveResult:
    session: Session
    already_live: bool


@dataclass(frozen=True)
class SessionView:
    """A session as presented to read paths."""

    session: Session
    effective_status: SessionStatus


class SessionService:
    """Guarded transitions between scheduled, live, ended and cancelled."""

    def __init__(
        self,
        sessions: SessionStore,
        end_requests: EndRequestStore,
        events: EventLogService,
        attendance: AttendanceService,
        notifications: NotificationService,
        stakeholders: StakeholderResolver,
        transport: RoomTransport,
        now: Clock = timezone.now,
    ) -> None:
        self._sessions = sessions
        self._end_requests = end_requests
        self._events = events
        self._attendance = attendance
        self._notifications = notifications
        self._stakeholders = stakeholders
        self._transport = transport
        self._now = now

    def get_session(self, session_id: str) -> SessionView:
        """Return the session with its effective status.

        A session still stored as live after its scheduled end is presented as
        ended; storage is not touched.
        """
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        return SessionView(session=session, effective_status=session.effective_status(self._now()))

    def go_live(self, session_id: str, actor: Actor) -> GoLiveResult:
        """Move scheduled -> live.

        Every caller whose session ends up live gets a result; only the caller
        whose write won appends room_started and sends go-live notifications.

        Raises:
            UnauthorizedError: Actor is neither the assigned teacher nor an admin.
            InvalidTransitionError: Session is ended or cancelled.
        """
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        if not (session.is_assigned_teacher(actor) or actor.can(Capability.START_SESSION)):
            raise UnauthorizedError("Only the assigned teacher or an admin can start this session")
        if session.status is SessionStatus.LIVE:
            return GoLiveResult(session=session, already_live=True)
        if not can_transition(session.status, SessionStatus.LIVE):
            raise InvalidTransitionError(session.status.value, SessionStatus.LIVE.value)

        now = self._now()
        won = self._sessions.transition(
            sid, frozenset({SessionStatus.SCHEDULED}), SessionStatus.LIVE, now
        )
        current = require_session(self._sessions, sid)
        if not won:
            if current.status is SessionStatus.LIVE:
                return GoLiveResult(session=current, already_live=True)
            raise InvalidTransitionError(current.status.value, SessionStatus.LIVE.value)

        self._events.append(sid, SessionEventType.ROOM_STARTED, actor, {"went_live_at": now.isoformat()})
        self._notifications.notify(
            self._stakeholders.resolve(current),
            "session_live",
            sid,
            {"title": current.title, "went_live_at": now.isoformat()},
        )
        logger.info("session_went_live", session_id=str(sid), actor_id=actor.participant_id)
        return GoLiveResult(session=current, already_live=False)

    def end_session(self, session_id: str, actor: Actor, via: str = END_VIA_TEACHER) -> Session:
        """Move live -> ended.

        This is also the force-end path: it ignores any pending early-end
        request and marks it superseded.

        Raises:
            UnauthorizedError: Actor is neither the assigned teacher nor an admin.
            InvalidTransitionError: Session is not live.
        """
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        if not (session.is_assigned_teacher(actor) or actor.can(Capability.END_SESSION)):
            raise UnauthorizedError("Only the assigned teacher or an admin can end this session")
        if session.status is not SessionStatus.LIVE:
            raise InvalidTransitionError(session.status.value, SessionStatus.ENDED.value)

        now = self._now()
        if not self._sessions.transition(
            sid, frozenset({SessionStatus.LIVE}), SessionStatus.ENDED, now
        ):
            current = require_session(self._sessions, sid)
            raise InvalidTransitionError(current.status.value, SessionStatus.ENDED.value)

        self._after_end(session, actor, via)
        return require_session(self._sessions, sid)

    def record_transport_room_finished(self, session_id: str) -> bool:
        """The transport closed the room; end the session if it is still live."""
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        if session.status is not SessionStatus.LIVE:
            logger.info(
                "room_finished_ignored", session_id=str(sid), status=session.status.value
            )
            return False
        if not self._sessions.transition(
            sid, frozenset({SessionStatus.LIVE}), SessionStatus.ENDED, self._now()
        ):
            return False
        self._after_end(session, None, END_VIA_TRANSPORT)
        return True

    def cancel_session(
        self, session_id: str, actor: Actor, source: str, reason: str | None = None
    ) -> Session:
        """Move scheduled|live -> cancelled.

        Only reached from an approved cancellation or session change request;
        there is no direct end-user entry point.

        Raises:
            InvalidTransitionError: Session is already ended or cancelled.
        """
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        sources = sources_for(SessionStatus.CANCELLED)
        if session.status not in sources:
            raise InvalidTransitionError(session.status.value, SessionStatus.CANCELLED.value)

        now = self._now()
        if not self._sessions.transition(sid, sources, SessionStatus.CANCELLED, now):
            current = require_session(self._sessions, sid)
            raise InvalidTransitionError(current.status.value, SessionStatus.CANCELLED.value)

        self._events.append(
            sid,
            SessionEventType.ROOM_CANCELLED,
            actor,
            {"source": source, "reason": reason, "previous_status": session.status.value},
        )
        self._supersede_pending_end_request(sid, actor)
        if session.status is SessionStatus.LIVE:
            best_effort("transport_delete_room", self._transport.delete_room, sid, session_id=str(sid))
        best_effort(
            "mirror_sync",
            self._sessions.sync_mirror,
            sid,
            SessionStatus.CANCELLED,
            now,
            session_id=str(sid),
        )
        logger.info("session_cancelled", session_id=str(sid), source=source)
        return require_session(self._sessions, sid)

    def _after_end(self, session: Session, actor: Actor | None, via: str) -> None:
        """Audit and side effects of an end; a None actor is the transport itself."""
        sid = session.id
        now = self._now()
        self._events.append(sid, SessionEventType.ROOM_ENDED, actor, {"via": via, "ended_at": now.isoformat()})
        if via == END_VIA_EARLY_APPROVAL:
            self._events.append(
                sid,
                SessionEventType.ROOM_ENDED_BY_APPROVAL,
                actor,
                {"scheduled_end": session.scheduled_end.isoformat()},
            )
        self._supersede_pending_end_request(sid, actor)

        if via != END_VIA_TRANSPORT:
            best_effort("transport_delete_room", self._transport.delete_room, sid, session_id=str(sid))
        best_effort(
            "mirror_sync", self._sessions.sync_mirror, sid, SessionStatus.ENDED, now, session_id=str(sid)
        )
        best_effort("attendance_finalize", self._attendance.finalize, str(sid), session_id=str(sid))
        self._notifications.notify(
            self._stakeholders.resolve(session),
            "session_ended",
            sid,
            {"title": session.title, "via": via},
        )
        logger.info(
            "session_ended",
            session_id=str(sid),
            via=via,
            actor_id=actor.participant_id if actor else None,
        )

    def _supersede_pending_end_request(self, session_id: SessionId, actor: Actor | None) -> None:
        latest = self._end_requests.latest_for_session(session_id)
        if latest is None or latest.status is not EndRequestStatus.PENDING:
            return
        if self._end_requests.close(
            latest.id,
            EndRequestStatus.SUPERSEDED,
            actor.participant_id if actor else SYSTEM_ACTOR,
            actor.role.value if actor else SYSTEM_ACTOR,
            "Session closed before a decision",
            self._now(),
        ):
            logger.info(
                "end_request_superseded", session_id=str(session_id), request_id=str(latest.id)
            )
