"""Attendance tracking fed by transport connect/disconnect signals.

Lateness is decided exactly once, at a student's first join. Rejoins only
bump join_count, and the only status move after that is to left_early on an
approved leave. Absentees are filled in at finalization with
insert-if-missing, so a participant who joined is never finalized absent.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.utils import timezone

from classroom.domain import (
    Actor,
    AttendanceAggregate,
    AttendanceEvent,
    AttendanceEventType,
    AttendanceSummary,
    Capability,
    Role,
    SessionEventType,
)
from classroom.domain.errors import ConflictError, UnauthorizedError, ValidationError
from classroom.domain.models import LEAVE_ACTIONS, classify_first_join
from classroom.services.common import Clock, parse_session_id, require_session
from classroom.services.event_log import EventLogService
from classroom.services.stakeholders import StakeholderResolver
from classroom.stores import AttendanceStore, SessionStore
from portal.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AttendanceReport:
    summaries: list[AttendanceSummary]
    events: list[AttendanceEvent]
    aggregate: AttendanceAggregate


class AttendanceService:
    """Per-session presence summaries and timeline."""

    def __init__(
        self,
        store: AttendanceStore,
        sessions: SessionStore,
        events: EventLogService,
        stakeholders: StakeholderResolver,
        now: Clock = timezone.now,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._events = events
        self._stakeholders = stakeholders
        self._now = now

    def record_join(
        self,
        session_id: str,
        participant_id: str,
        role: str,
        scheduled_start: datetime | None = None,
    ) -> AttendanceSummary:
        """Record a connect.

        The first join creates the summary and classifies lateness; later
        joins increment join_count. The timeline label is decided from the
        row read before the write, so a reconnect race can only mislabel the
        event, never the counters.
        """
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        if scheduled_start is None:
            scheduled_start = session.scheduled_start
        now = self._now()

        existing = self._store.get_summary(sid, participant_id)
        is_rejoin = existing is not None and existing.join_count > 0
        classification = classify_first_join(role, scheduled_start, now)

        if existing is None:
            classified = self._store.create_first_join(
                sid, participant_id, role, classification, now
            )
            if not classified:
                classified = self._store.register_rejoin(sid, participant_id, classification, now)
        else:
            classified = self._store.register_rejoin(sid, participant_id, classification, now)

        event_type = AttendanceEventType.REJOIN if is_rejoin else AttendanceEventType.JOIN
        self._store.append_event(
            AttendanceEvent(sid, participant_id, role, event_type, now)
        )
        if classified and classification.late:
            self._store.append_event(
                AttendanceEvent(
                    sid,
                    participant_id,
                    role,
                    AttendanceEventType.LATE_JOIN,
                    now,
                    {"late_by_sec": classification.late_by_sec},
                )
            )
        logger.info(
            "attendance_join_recorded",
            session_id=str(sid),
            participant_id=participant_id,
            event_type=event_type.value,
            late=classified and classification.late,
        )
        return self._store.get_summary(sid, participant_id)

    def record_leave(self, session_id: str, participant_id: str, role: str) -> AttendanceSummary | None:
        """Record a disconnect, accruing time since the most recent join or rejoin."""
        sid = parse_session_id(session_id)
        require_session(self._sessions, sid)
        now = self._now()
        summary = self._store.get_summary(sid, participant_id)

        seconds = 0
        if summary is not None:
            since = self._store.latest_join_at(sid, participant_id) or summary.first_join_at
            if since is not None:
                seconds = max(int((now - since).total_seconds()), 0)
            self._store.accrue_leave(sid, participant_id, seconds, now)

        self._store.append_event(
            AttendanceEvent(
                sid, participant_id, role, AttendanceEventType.LEAVE, now, {"duration_sec": seconds}
            )
        )
        logger.info(
            "attendance_leave_recorded",
            session_id=str(sid),
            participant_id=participant_id,
            duration_sec=seconds,
        )
        return self._store.get_summary(sid, participant_id)

    def record_leave_action(
        self,
        session_id: str,
        participant_id: str,
        action: str,
        actor: Actor,
        payload: dict[str, Any] | None = None,
    ) -> AttendanceSummary | None:
        """Log a leave request or its decision.

        Participants request leave for themselves; the assigned teacher or an
        admin decides. An approved leave marks the participant left_early.
        """
        try:
            event_type = AttendanceEventType(action)
        except ValueError:
            event_type = None
        if event_type not in LEAVE_ACTIONS:
            raise ValidationError(f"Unsupported leave action: {action}", field="action")

        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)

        if event_type is AttendanceEventType.LEAVE_REQUEST:
            if actor.participant_id != participant_id:
                raise UnauthorizedError("Leave can only be requested for yourself")
        elif not (session.is_assigned_teacher(actor) or actor.can(Capability.DECIDE_LEAVE)):
            raise UnauthorizedError(f"Your role ({actor.role.value}) cannot decide leave requests")

        summary = self._store.get_summary(sid, participant_id)
        if event_type is AttendanceEventType.LEAVE_APPROVED:
            if summary is None or summary.first_join_at is None:
                raise ConflictError("Participant has not joined this session")
            self._store.approve_leave(sid, participant_id)

        role = summary.participant_role if summary else actor.role.value
        self._store.append_event(
            AttendanceEvent(
                sid,
                participant_id,
                role,
                event_type,
                self._now(),
                {**(payload or {}), "actor_id": actor.participant_id},
            )
        )
        logger.info(
            "attendance_leave_action",
            session_id=str(sid),
            participant_id=participant_id,
            action=event_type.value,
            actor_id=actor.participant_id,
        )
        return self._store.get_summary(sid, participant_id)

    def finalize(self, session_id: str) -> AttendanceAggregate:
        """Fill in absent rows for enrolled students who never joined. Idempotent."""
        sid = parse_session_id(session_id)
        require_session(self._sessions, sid)
        inserted = 0
        for enrollment in self._sessions.enrollments(sid):
            if self._store.insert_absent_if_missing(sid, enrollment.student_id, Role.STUDENT.value):
                inserted += 1

        aggregate = AttendanceAggregate.from_summaries(self._store.list_summaries(sid))
        self._events.append(
            sid,
            SessionEventType.ATTENDANCE_FINALIZED,
            None,
            {
                "absent_inserted": inserted,
                "total_students": aggregate.total_students,
                "present": aggregate.present,
                "late": aggregate.late,
                "absent": aggregate.absent,
                "left_early": aggregate.left_early,
            },
        )
        logger.info("attendance_finalized", session_id=str(sid), absent_inserted=inserted)
        return aggregate

    def report(self, session_id: str, viewer: Actor) -> AttendanceReport:
        """Summaries, timeline and aggregate visible to viewer.

        Students see themselves, parents see their children, staff see all.
        """
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        summaries = self._store.list_summaries(sid)
        events = self._store.list_events(sid)

        if not viewer.can(Capability.VIEW_ALL_ATTENDANCE):
            if viewer.role is Role.STUDENT:
                visible = {viewer.participant_id}
            elif viewer.role is Role.PARENT:
                visible = self._stakeholders.children_of(session, viewer.participant_id)
            else:
                raise UnauthorizedError(f"Your role ({viewer.role.value}) cannot view attendance")
            summaries = [s for s in summaries if s.participant_id in visible]
            events = [e for e in events if e.participant_id in visible]

        return AttendanceReport(
            summaries=summaries,
            events=events,
            aggregate=AttendanceAggregate.from_summaries(summaries),
        )
