"""Django ORM implementation of the classroom stores.

Each conditional write is a filter(<expected state>).update(...) so that the
database decides the winner between concurrent callers.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from django.db import IntegrityError
from django.db.models import F, Q, QuerySet

from classroom import models as orm
from classroom.domain import (
    AttendanceEvent,
    AttendanceEventType,
    AttendanceStatus,
    AttendanceSummary,
    BatchType,
    CancellationRequest,
    CancellationStatus,
    CancellationType,
    ChangeRequestStatus,
    ChangeRequestType,
    EndRequestStatus,
    EndSessionRequest,
    Enrollment,
    LevelDecision,
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
from classroom.domain.approval_chain import LEVEL_NAMES, AdvancePlan
from classroom.domain.models import FirstJoinClassification
from classroom.stores.interfaces import (
    AttendanceStore,
    CancellationStore,
    ChangeRequestStore,
    EndRequestStore,
    EventLogStore,
    NotificationStore,
    RequestScope,
    SessionStore,
)


def _scope_filter(scope: RequestScope) -> Q:
    condition = Q()
    if scope.requester_id:
        condition |= Q(requester_id=scope.requester_id)
    if scope.teacher_id:
        condition |= Q(session__assigned_teacher_id=scope.teacher_id)
    if scope.coordinator_id:
        condition |= Q(session__coordinator_id=scope.coordinator_id)
    if scope.academic_operator_id:
        condition |= Q(session__academic_operator_id=scope.academic_operator_id)
    return condition


def _to_session(row: orm.Session) -> Session:
    return Session(
        id=SessionId(row.id),
        title=row.title,
        status=SessionStatus(row.status),
        scheduled_start=row.scheduled_start,
        duration_minutes=row.duration_minutes,
        batch_type=BatchType(row.batch_type),
        assigned_teacher_id=row.assigned_teacher_id,
        coordinator_id=row.coordinator_id,
        academic_operator_id=row.academic_operator_id,
        went_live_at=row.went_live_at,
        ended_at=row.ended_at,
        pending_end_request_id=(
            RequestId(row.pending_end_request_id) if row.pending_end_request_id else None
        ),
    )


class DjangoSessionStore(SessionStore):
    """PostgreSQL/SQLite-backed session store using Django ORM."""

    def get(self, session_id: SessionId) -> Session | None:
        row = orm.Session.objects.filter(pk=session_id.value).first()
        return _to_session(row) if row else None

    def transition(
        self,
        session_id: SessionId,
        from_statuses: frozenset[SessionStatus],
        to_status: SessionStatus,
        at: datetime,
    ) -> bool:
        changes: dict[str, Any] = {"status": to_status.value, "updated_at": at}
        if to_status is SessionStatus.LIVE:
            changes["went_live_at"] = at
        else:
            changes["pending_end_request_id"] = None
        if to_status is SessionStatus.ENDED:
            changes["ended_at"] = at
        updated = orm.Session.objects.filter(
            pk=session_id.value,
            status__in=[status.value for status in from_statuses],
        ).update(**changes)
        return updated == 1

    def claim_pending_end_request(self, session_id: SessionId, request_id: RequestId) -> bool:
        updated = orm.Session.objects.filter(
            pk=session_id.value,
            status=SessionStatus.LIVE.value,
            pending_end_request__isnull=True,
        ).update(pending_end_request_id=request_id.value)
        return updated == 1

    def release_pending_end_request(self, session_id: SessionId, request_id: RequestId) -> bool:
        updated = orm.Session.objects.filter(
            pk=session_id.value,
            pending_end_request_id=request_id.value,
        ).update(pending_end_request_id=None)
        return updated == 1

    def reschedule(self, session_id: SessionId, new_start: datetime) -> bool:
        updated = orm.Session.objects.filter(
            pk=session_id.value,
            status=SessionStatus.SCHEDULED.value,
        ).update(scheduled_start=new_start)
        return updated == 1

    def enrollments(self, session_id: SessionId) -> list[Enrollment]:
        rows = orm.Enrollment.objects.filter(session_id=session_id.value).order_by("student_id")
        return [Enrollment(student_id=row.student_id, guardian_id=row.guardian_id) for row in rows]

    def sync_mirror(
        self,
        session_id: SessionId,
        status: SessionStatus,
        at: datetime,
        scheduled_start: datetime | None = None,
    ) -> None:
        changes: dict[str, Any] = {"status": status.value, "updated_at": at}
        if status is SessionStatus.ENDED:
            changes["ended_at"] = at
        if scheduled_start is not None:
            changes["scheduled_start"] = scheduled_start
        orm.ScheduleMirror.objects.filter(session_id=session_id.value).update(**changes)


def _to_event(row: orm.SessionEvent) -> SessionEvent:
    return SessionEvent(
        id=row.id,
        session_id=SessionId(row.session_id),
        event_type=SessionEventType(row.event_type),
        actor_id=row.actor_id,
        actor_role=row.actor_role,
        payload=row.payload or {},
        created_at=row.created_at,
    )


class DjangoEventLogStore(EventLogStore):
    """Session event ledger backed by Django ORM."""

    def append(
        self,
        session_id: SessionId,
        event_type: SessionEventType,
        actor_id: str | None,
        actor_role: str | None,
        payload: dict[str, Any],
        at: datetime,
    ) -> SessionEvent:
        row = orm.SessionEvent.objects.create(
            session_id=session_id.value,
            event_type=event_type.value,
            actor_id=actor_id,
            actor_role=actor_role,
            payload=payload,
            created_at=at,
        )
        return _to_event(row)

    def list_for_session(
        self,
        session_id: SessionId,
        event_types: Iterable[SessionEventType] | None = None,
    ) -> list[SessionEvent]:
        rows = orm.SessionEvent.objects.filter(session_id=session_id.value)
        if event_types is not None:
            rows = rows.filter(event_type__in=[event_type.value for event_type in event_types])
        return [_to_event(row) for row in rows.order_by("created_at", "id")]


def _to_end_request(row: orm.EndSessionRequest) -> EndSessionRequest:
    return EndSessionRequest(
        id=RequestId(row.id),
        session_id=SessionId(row.session_id),
        requested_by=row.requested_by,
        reason=row.reason,
        scheduled_end=row.scheduled_end,
        status=EndRequestStatus(row.status),
        created_at=row.created_at,
        decided_by=row.decided_by,
        decided_by_role=row.decided_by_role,
        decision_reason=row.decision_reason,
        decided_at=row.decided_at,
    )


class DjangoEndRequestStore(EndRequestStore):
    """Early end-of-session requests backed by Django ORM."""

    def create(
        self,
        session_id: SessionId,
        requested_by: str,
        reason: str,
        scheduled_end: datetime,
        at: datetime,
    ) -> EndSessionRequest:
        row = orm.EndSessionRequest.objects.create(
            session_id=session_id.value,
            requested_by=requested_by,
            reason=reason,
            scheduled_end=scheduled_end,
            created_at=at,
        )
        return _to_end_request(row)

    def get(self, request_id: RequestId) -> EndSessionRequest | None:
        row = orm.EndSessionRequest.objects.filter(pk=request_id.value).first()
        return _to_end_request(row) if row else None

    def latest_for_session(self, session_id: SessionId) -> EndSessionRequest | None:
        row = (
            orm.EndSessionRequest.objects.filter(session_id=session_id.value)
            .order_by("-created_at")
            .first()
        )
        return _to_end_request(row) if row else None

    def close(
        self,
        request_id: RequestId,
        status: EndRequestStatus,
        decided_by: str | None,
        decided_by_role: str | None,
        reason: str | None,
        at: datetime,
    ) -> bool:
        updated = orm.EndSessionRequest.objects.filter(
            pk=request_id.value,
            status=EndRequestStatus.PENDING.value,
        ).update(
            status=status.value,
            decided_by=decided_by,
            decided_by_role=decided_by_role,
            decision_reason=reason,
            decided_at=at,
        )
        return updated == 1

    def discard(self, request_id: RequestId) -> None:
        orm.EndSessionRequest.objects.filter(pk=request_id.value).delete()


def _to_cancellation(row: orm.CancellationRequest) -> CancellationRequest:
    decisions = {}
    for level in LEVEL_NAMES:
        decision = getattr(row, f"{level}_decision")
        if decision:
            decisions[level] = LevelDecision(
                decision=decision,
                approver_id=getattr(row, f"{level}_approver_id"),
                decided_at=getattr(row, f"{level}_decided_at"),
            )
    return CancellationRequest(
        id=RequestId(row.id),
        session_id=SessionId(row.session_id),
        requester_id=row.requester_id,
        requester_role=Role.parse(row.requester_role),
        reason=row.reason,
        cancellation_type=CancellationType(row.cancellation_type),
        status=CancellationStatus(row.status),
        created_at=row.created_at,
        decisions=decisions,
        rejection_reason=row.rejection_reason,
        rejected_at_level=row.rejected_at_level,
    )


class DjangoCancellationStore(CancellationStore):
    """Cancellation requests backed by Django ORM."""

    def create(
        self,
        session_id: SessionId,
        requester_id: str,
        requester_role: Role,
        reason: str,
        cancellation_type: CancellationType,
        at: datetime,
    ) -> CancellationRequest:
        row = orm.CancellationRequest.objects.create(
            session_id=session_id.value,
            requester_id=requester_id,
            requester_role=requester_role.value,
            reason=reason,
            cancellation_type=cancellation_type.value,
            created_at=at,
            updated_at=at,
        )
        return _to_cancellation(row)

    def get(self, request_id: RequestId) -> CancellationRequest | None:
        row = orm.CancellationRequest.objects.filter(pk=request_id.value).first()
        return _to_cancellation(row) if row else None

    def has_open_request(self, session_id: SessionId, requester_id: str) -> bool:
        return (
            orm.CancellationRequest.objects.filter(
                session_id=session_id.value,
                requester_id=requester_id,
            )
            .exclude(
                status__in=[CancellationStatus.APPROVED.value, CancellationStatus.REJECTED.value]
            )
            .exists()
        )

    def apply_decision(
        self,
        request_id: RequestId,
        plan: AdvancePlan,
        approver_id: str,
        reason: str | None,
        at: datetime,
    ) -> bool:
        level = plan.level
        changes: dict[str, Any] = {
            "status": plan.new_status.value,
            level.decision_field: plan.decision,
            level.approver_field: approver_id,
            level.decided_at_field: at,
            "updated_at": at,
        }
        if not plan.approve:
            changes["rejection_reason"] = reason
            changes["rejected_at_level"] = level.name
        updated = orm.CancellationRequest.objects.filter(
            pk=request_id.value,
            status=plan.expected_status.value,
        ).update(**changes)
        return updated == 1

    def list_requests(
        self,
        scope: RequestScope,
        session_id: SessionId | None = None,
        status: CancellationStatus | None = None,
        limit: int = 200,
    ) -> list[CancellationRequest]:
        rows: QuerySet = orm.CancellationRequest.objects.all()
        if not scope.is_unrestricted:
            rows = rows.filter(_scope_filter(scope))
        if session_id is not None:
            rows = rows.filter(session_id=session_id.value)
        if status is not None:
            rows = rows.filter(status=status.value)
        return [_to_cancellation(row) for row in rows.order_by("-created_at")[:limit]]


def _to_change_request(row: orm.SessionChangeRequest) -> SessionChangeRequest:
    return SessionChangeRequest(
        id=RequestId(row.id),
        session_id=SessionId(row.session_id),
        request_type=ChangeRequestType(row.request_type),
        requester_id=row.requester_id,
        requester_role=Role.parse(row.requester_role),
        reason=row.reason,
        status=ChangeRequestStatus(row.status),
        created_at=row.created_at,
        proposed_start=row.proposed_start,
        reviewed_by=row.reviewed_by,
        reviewed_at=row.reviewed_at,
        rejection_reason=row.rejection_reason,
    )


class DjangoChangeRequestStore(ChangeRequestStore):
    """Reschedule/cancel change requests backed by Django ORM."""

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
        row = orm.SessionChangeRequest.objects.create(
            session_id=session_id.value,
            request_type=request_type.value,
            requester_id=requester_id,
            requester_role=requester_role.value,
            reason=reason,
            proposed_start=proposed_start,
            created_at=at,
        )
        return _to_change_request(row)

    def get(self, request_id: RequestId) -> SessionChangeRequest | None:
        row = orm.SessionChangeRequest.objects.filter(pk=request_id.value).first()
        return _to_change_request(row) if row else None

    def has_pending(self, session_id: SessionId, requester_id: str) -> bool:
        return orm.SessionChangeRequest.objects.filter(
            session_id=session_id.value,
            requester_id=requester_id,
            status=ChangeRequestStatus.PENDING.value,
        ).exists()

    def review(
        self,
        request_id: RequestId,
        status: ChangeRequestStatus,
        reviewer_id: str,
        reason: str | None,
        at: datetime,
    ) -> bool:
        updated = orm.SessionChangeRequest.objects.filter(
            pk=request_id.value,
            status=ChangeRequestStatus.PENDING.value,
        ).update(
            status=status.value,
            reviewed_by=reviewer_id,
            reviewed_at=at,
            rejection_reason=reason,
        )
        return updated == 1

    def withdraw(self, request_id: RequestId, requester_id: str) -> bool:
        updated = orm.SessionChangeRequest.objects.filter(
            pk=request_id.value,
            requester_id=requester_id,
            status=ChangeRequestStatus.PENDING.value,
        ).update(status=ChangeRequestStatus.WITHDRAWN.value)
        return updated == 1

    def list_requests(self, scope: RequestScope, limit: int = 200) -> list[SessionChangeRequest]:
        rows: QuerySet = orm.SessionChangeRequest.objects.all()
        if not scope.is_unrestricted:
            rows = rows.filter(_scope_filter(scope))
        return [_to_change_request(row) for row in rows.order_by("-created_at")[:limit]]


def _to_summary(row: orm.AttendanceSummary) -> AttendanceSummary:
    return AttendanceSummary(
        session_id=SessionId(row.session_id),
        participant_id=row.participant_id,
        participant_role=row.participant_role,
        status=AttendanceStatus(row.status),
        first_join_at=row.first_join_at,
        last_leave_at=row.last_leave_at,
        total_duration_sec=row.total_duration_sec,
        join_count=row.join_count,
        late=row.late,
        late_by_sec=row.late_by_sec,
        leave_approved=row.leave_approved,
    )


def _to_attendance_event(row: orm.AttendanceEvent) -> AttendanceEvent:
    return AttendanceEvent(
        session_id=SessionId(row.session_id),
        participant_id=row.participant_id,
        participant_role=row.participant_role,
        event_type=AttendanceEventType(row.event_type),
        occurred_at=row.occurred_at,
        payload=row.payload,
    )


class DjangoAttendanceStore(AttendanceStore):
    """Attendance summaries and timeline backed by Django ORM."""

    def _summary_rows(self, session_id: SessionId, participant_id: str) -> QuerySet:
        return orm.AttendanceSummary.objects.filter(
            session_id=session_id.value, participant_id=participant_id
        )

    def get_summary(self, session_id: SessionId, participant_id: str) -> AttendanceSummary | None:
        row = self._summary_rows(session_id, participant_id).first()
        return _to_summary(row) if row else None

    def create_first_join(
        self,
        session_id: SessionId,
        participant_id: str,
        role: str,
        classification: FirstJoinClassification,
        at: datetime,
    ) -> bool:
        try:
            _, created = orm.AttendanceSummary.objects.get_or_create(
                session_id=session_id.value,
                participant_id=participant_id,
                defaults={
                    "participant_role": role,
                    "status": classification.status.value,
                    "first_join_at": at,
                    "join_count": 1,
                    "late": classification.late,
                    "late_by_sec": classification.late_by_sec,
                },
            )
        except IntegrityError:
            return False
        return created

    def register_rejoin(
        self,
        session_id: SessionId,
        participant_id: str,
        classification: FirstJoinClassification,
        at: datetime,
    ) -> bool:
        revived = self._summary_rows(session_id, participant_id).filter(
            first_join_at__isnull=True
        ).update(
            first_join_at=at,
            status=classification.status.value,
            late=classification.late,
            late_by_sec=classification.late_by_sec,
            join_count=F("join_count") + 1,
            updated_at=at,
        )
        if revived:
            return True
        self._summary_rows(session_id, participant_id).update(
            join_count=F("join_count") + 1,
            updated_at=at,
        )
        return False

    def accrue_leave(
        self, session_id: SessionId, participant_id: str, seconds: int, at: datetime
    ) -> None:
        self._summary_rows(session_id, participant_id).update(
            total_duration_sec=F("total_duration_sec") + max(seconds, 0),
            last_leave_at=at,
            updated_at=at,
        )

    def approve_leave(self, session_id: SessionId, participant_id: str) -> bool:
        updated = self._summary_rows(session_id, participant_id).update(
            leave_approved=True,
            status=AttendanceStatus.LEFT_EARLY.value,
        )
        return updated == 1

    def insert_absent_if_missing(self, session_id: SessionId, participant_id: str, role: str) -> bool:
        try:
            _, created = orm.AttendanceSummary.objects.get_or_create(
                session_id=session_id.value,
                participant_id=participant_id,
                defaults={
                    "participant_role": role,
                    "status": AttendanceStatus.ABSENT.value,
                },
            )
        except IntegrityError:
            return False
        return created

    def append_event(self, event: AttendanceEvent) -> None:
        orm.AttendanceEvent.objects.create(
            session_id=event.session_id.value,
            participant_id=event.participant_id,
            participant_role=event.participant_role,
            event_type=event.event_type.value,
            occurred_at=event.occurred_at,
            payload=event.payload,
        )

    def latest_join_at(self, session_id: SessionId, participant_id: str) -> datetime | None:
        row = (
            orm.AttendanceEvent.objects.filter(
                session_id=session_id.value,
                participant_id=participant_id,
                event_type__in=[AttendanceEventType.JOIN.value, AttendanceEventType.REJOIN.value],
            )
            .order_by("-occurred_at", "-id")
            .first()
        )
        return row.occurred_at if row else None

    def list_summaries(self, session_id: SessionId) -> list[AttendanceSummary]:
        rows = orm.AttendanceSummary.objects.filter(session_id=session_id.value).order_by(
            F("first_join_at").asc(nulls_last=True), "participant_id"
        )
        return [_to_summary(row) for row in rows]

    def list_events(self, session_id: SessionId) -> list[AttendanceEvent]:
        rows = orm.AttendanceEvent.objects.filter(session_id=session_id.value).order_by(
            "occurred_at", "id"
        )
        return [_to_attendance_event(row) for row in rows]


class DjangoNotificationStore(NotificationStore):
    """Notification outbox backed by Django ORM."""

    def enqueue(self, notifications: list[Notification], at: datetime) -> None:
        orm.NotificationOutbox.objects.bulk_create(
            [
                orm.NotificationOutbox(
                    recipient_id=notification.recipient_id,
                    recipient_role=notification.recipient_role.value,
                    kind=notification.kind,
                    session_id=notification.session_id.value if notification.session_id else None,
                    payload=notification.payload,
                    created_at=at,
                )
                for notification in notifications
            ]
        )

    def pending(self, limit: int) -> list[OutboxEntry]:
        rows = orm.NotificationOutbox.objects.filter(
            status=orm.NotificationOutbox.Status.PENDING
        ).order_by("created_at", "id")[:limit]
        return [
            OutboxEntry(
                id=row.id,
                notification=Notification(
                    recipient_id=row.recipient_id,
                    recipient_role=Role.parse(row.recipient_role),
                    kind=row.kind,
                    session_id=SessionId(row.session_id) if row.session_id else None,
                    payload=row.payload or {},
                ),
                attempts=row.attempts,
                created_at=row.created_at,
            )
            for row in rows
        ]

    def mark_sent(self, entry_id: int, at: datetime) -> None:
        orm.NotificationOutbox.objects.filter(pk=entry_id).update(
            status=orm.NotificationOutbox.Status.SENT,
            attempts=F("attempts") + 1,
            sent_at=at,
            last_error=None,
        )

    def mark_failed_attempt(self, entry_id: int, error: str, max_attempts: int) -> None:
        orm.NotificationOutbox.objects.filter(pk=entry_id).update(
            attempts=F("attempts") + 1,
            last_error=error,
        )
        orm.NotificationOutbox.objects.filter(
            pk=entry_id,
            attempts__gte=max_attempts,
        ).update(status=orm.NotificationOutbox.Status.FAILED)
