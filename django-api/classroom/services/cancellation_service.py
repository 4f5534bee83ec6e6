"""Cancellation workflow.

Which levels a request must pass depends only on its type, and the chain for
every type lives in domain/approval_chain.py. advance() is the one code path
that moves any request forward, whatever its type.
"""

from django.utils import timezone

from classroom.domain import (
    Actor,
    BatchType,
    CancellationRequest,
    CancellationStatus,
    CancellationType,
    Capability,
    Role,
    Session,
    SessionEventType,
    SessionStatus,
    Stakeholder,
)
from classroom.domain.approval_chain import AdvancePlan, ApprovalLevel, level_for, plan_advance
from classroom.domain.errors import (
    AlreadyFinalizedError,
    ConflictError,
    DuplicatePendingRequestError,
    RequestNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from classroom.domain.lifecycle import TERMINAL_STATUSES, sources_for
from classroom.services.common import Clock, parse_request_id, parse_session_id, require_session
from classroom.services.event_log import EventLogService
from classroom.services.notifications import NotificationService
from classroom.services.session_service import SessionService
from classroom.services.stakeholders import StakeholderResolver, cancellation_scope_for
from classroom.stores import CancellationStore, SessionStore
from portal.logging import get_logger

logger = get_logger(__name__)

LIST_LIMIT = 200


class CancellationService:
    """Submit cancellation requests and walk them through their approval chain."""

    def __init__(
        self,
        store: CancellationStore,
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

    def request_cancel(
        self, session_id: str, actor: Actor, reason: str | None = None
    ) -> CancellationRequest:
        """Open a cancellation request; its type is derived from the requester.

        The reason is optional and stored trimmed.

        Raises:
            SessionNotFoundError: Unknown session.
            UnauthorizedError: Requester has no standing on this session.
            ConflictError: Session is already ended or cancelled.
            DuplicatePendingRequestError: Requester already has an open request here.
        """
        sid = parse_session_id(session_id)
        session = require_session(self._sessions, sid)
        cancellation_type = self._type_for(session, actor)
        if session.status in TERMINAL_STATUSES:
            raise ConflictError(f"Session is already {session.status.value}")
        if self._store.has_open_request(sid, actor.participant_id):
            raise DuplicatePendingRequestError(
                "You already have a pending cancellation request for this session"
            )

        request = self._store.create(
            sid, actor.participant_id, actor.role, (reason or "").strip(), cancellation_type, self._now()
        )
        self._events.append(
            sid,
            SessionEventType.CANCELLATION_REQUESTED,
            actor,
            {
                "request_id": str(request.id),
                "cancellation_type": cancellation_type.value,
                "reason": request.reason,
            },
        )
        first_level = level_for(cancellation_type, CancellationStatus.PENDING)
        self._notify_level(session, first_level, request, "cancellation_requested")
        logger.info(
            "cancellation_requested",
            session_id=str(sid),
            request_id=str(request.id),
            cancellation_type=cancellation_type.value,
        )
        return request

    def approve(self, request_id: str, actor: Actor, notes: str | None = None) -> CancellationRequest:
        return self.advance(request_id, actor, approve=True, notes=notes)

    def reject(self, request_id: str, actor: Actor, notes: str | None = None) -> CancellationRequest:
        return self.advance(request_id, actor, approve=False, notes=notes)

    def advance(
        self, request_id: str, actor: Actor, approve: bool, notes: str | None = None
    ) -> CancellationRequest:
        """Record one level's decision.

        The write only lands if the request is still at the status the plan
        was computed from, so two approvers at the same level cannot both win.
        A rejection ends the chain at that level.

        Raises:
            RequestNotFoundError: Unknown request.
            AlreadyFinalizedError: Request is approved or rejected.
            UnauthorizedError: Actor's role cannot act at the current level.
            ConflictError: No level acts on the current status, the session can
                no longer be cancelled, or another approver got there first.
        """
        rid = parse_request_id(request_id)
        request = self._store.get(rid)
        if request is None:
            raise RequestNotFoundError("Cancellation request not found")
        plan = plan_advance(request, actor, approve)
        session = require_session(self._sessions, request.session_id)
        if plan.approve and plan.is_terminal and session.status not in sources_for(SessionStatus.CANCELLED):
            raise ConflictError(f"Session is already {session.status.value}")

        if not self._store.apply_decision(rid, plan, actor.participant_id, notes, self._now()):
            current = self._store.get(rid)
            if current is not None and current.status.is_final:
                raise AlreadyFinalizedError()
            raise ConflictError("Request was updated by another approver")

        logger.info(
            "cancellation_level_decided",
            request_id=str(rid),
            level=plan.level.name,
            decision=plan.decision,
            new_status=plan.new_status.value,
            actor_id=actor.participant_id,
        )
        if not plan.approve:
            self._on_rejected(session, request, plan, actor, notes)
        elif not plan.is_terminal:
            self._on_level_approved(session, request, plan, actor)
        else:
            self._on_approved(session, request, plan, actor)
        return self._store.get(rid)

    def list_requests(
        self,
        actor: Actor,
        session_id: str | None = None,
        status: str | None = None,
    ) -> list[CancellationRequest]:
        """Requests visible to actor, newest first."""
        scope = cancellation_scope_for(actor)
        sid = parse_session_id(session_id) if session_id else None
        status_filter = None
        if status:
            try:
                status_filter = CancellationStatus(status)
            except ValueError as exc:
                raise ValidationError(f"Unknown status: {status}", field="status") from exc
        return self._store.list_requests(scope, session_id=sid, status=status_filter, limit=LIST_LIMIT)

    def _type_for(self, session: Session, actor: Actor) -> CancellationType:
        if actor.role is Role.TEACHER:
            if not session.is_assigned_teacher(actor):
                raise UnauthorizedError("Only the assigned teacher can cancel this session")
            return CancellationType.TEACHER_INITIATED
        if actor.role in (Role.STUDENT, Role.PARENT):
            if not self._stakeholders.is_enrolled_party(session, actor):
                raise UnauthorizedError("You are not enrolled in this session")
            if session.batch_type is BatchType.ONE_TO_ONE:
                return CancellationType.PARENT_INITIATED
            return CancellationType.GROUP_REQUEST
        if actor.can(Capability.REQUEST_POLICY_CANCELLATION):
            return CancellationType.POLICY
        raise UnauthorizedError(f"Your role ({actor.role.value}) cannot request cancellations")

    def _on_rejected(
        self,
        session: Session,
        request: CancellationRequest,
        plan: AdvancePlan,
        actor: Actor,
        notes: str | None,
    ) -> None:
        self._events.append(
            session.id,
            SessionEventType.CANCELLATION_REJECTED,
            actor,
            {"request_id": str(request.id), "level": plan.level.name, "reason": notes},
        )
        self._notifications.notify(
            [Stakeholder(request.requester_id, request.requester_role)],
            "cancellation_rejected",
            session.id,
            {"request_id": str(request.id), "level": plan.level.name, "reason": notes},
        )

    def _on_level_approved(
        self, session: Session, request: CancellationRequest, plan: AdvancePlan, actor: Actor
    ) -> None:
        self._events.append(
            session.id,
            SessionEventType.CANCELLATION_LEVEL_APPROVED,
            actor,
            {
                "request_id": str(request.id),
                "level": plan.level.name,
                "next_status": plan.new_status.value,
            },
        )
        next_level = level_for(request.cancellation_type, plan.new_status)
        self._notify_level(session, next_level, request, "cancellation_level_approved")

    def _on_approved(
        self, session: Session, request: CancellationRequest, plan: AdvancePlan, actor: Actor
    ) -> None:
        cancelled = True
        try:
            self._session_service.cancel_session(
                str(session.id), actor, source="cancellation_request", reason=request.reason
            )
        except ConflictError as exc:
            cancelled = False
            logger.warning(
                "cancellation_approved_session_not_cancellable",
                session_id=str(session.id),
                request_id=str(request.id),
                error=exc.message,
            )
        self._events.append(
            session.id,
            SessionEventType.CANCELLATION_APPROVED,
            actor,
            {
                "request_id": str(request.id),
                "cancellation_type": request.cancellation_type.value,
                "final_level": plan.level.name,
                "session_cancelled": cancelled,
            },
        )
        recipients = self._stakeholders.resolve(session)
        recipients.append(Stakeholder(request.requester_id, request.requester_role))
        self._notifications.notify(
            recipients,
            "cancellation_approved",
            session.id,
            {"request_id": str(request.id), "title": session.title, "reason": request.reason},
        )

    def _notify_level(
        self,
        session: Session,
        level: ApprovalLevel | None,
        request: CancellationRequest,
        kind: str,
    ) -> None:
        if level is None:
            return
        approvers = self._stakeholders.with_capability(session, level.capability)
        if not approvers:
            logger.debug("no_session_approvers", session_id=str(session.id), level=level.name)
            return
        self._notifications.notify(
            approvers,
            kind,
            session.id,
            {
                "request_id": str(request.id),
                "level": level.name,
                "cancellation_type": request.cancellation_type.value,
            },
        )
