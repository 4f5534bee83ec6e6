"""Who has a legitimate interest in a session, and who may see which requests."""

from classroom.domain import Actor, Capability, Role, Session, Stakeholder
from classroom.domain.errors import UnauthorizedError
from classroom.stores import RequestScope, SessionStore


class StakeholderResolver:
    """Walks the roster and guardian links of a session."""

    def __init__(self, sessions: SessionStore) -> None:
        self._sessions = sessions

    def resolve(self, session: Session) -> list[Stakeholder]:
        """Return teacher, coordinator, academic operator, students and guardians.

        Deduplicated by (participant id, role), in that order.
        """
        candidates = [
            Stakeholder(session.assigned_teacher_id, Role.TEACHER),
        ]
        if session.coordinator_id:
            candidates.append(Stakeholder(session.coordinator_id, Role.BATCH_COORDINATOR))
        if session.academic_operator_id:
            candidates.append(Stakeholder(session.academic_operator_id, Role.ACADEMIC_OPERATOR))
        enrollments = self._sessions.enrollments(session.id)
        candidates.extend(Stakeholder(e.student_id, Role.STUDENT) for e in enrollments)
        candidates.extend(
            Stakeholder(e.guardian_id, Role.PARENT) for e in enrollments if e.guardian_id
        )
        return list(dict.fromkeys(candidates))

    def with_capability(self, session: Session, capability: Capability) -> list[Stakeholder]:
        return [
            s for s in self.resolve(session) if Actor(s.participant_id, s.role).can(capability)
        ]

    def is_enrolled_party(self, session: Session, actor: Actor) -> bool:
        """True for an enrolled student, or the guardian of one."""
        for enrollment in self._sessions.enrollments(session.id):
            if actor.role is Role.STUDENT and enrollment.student_id == actor.participant_id:
                return True
            if actor.role is Role.PARENT and enrollment.guardian_id == actor.participant_id:
                return True
        return False

    def children_of(self, session: Session, guardian_id: str) -> set[str]:
        return {
            e.student_id
            for e in self._sessions.enrollments(session.id)
            if e.guardian_id == guardian_id
        }


def cancellation_scope_for(actor: Actor) -> RequestScope:
    """Visibility of cancellation requests for one actor."""
    if actor.can(Capability.VIEW_ALL_REQUESTS):
        return RequestScope()
    me = actor.participant_id
    if actor.role in (Role.STUDENT, Role.PARENT):
        return RequestScope(requester_id=me)
    if actor.role is Role.TEACHER:
        return RequestScope(requester_id=me, teacher_id=me)
    if actor.role is Role.BATCH_COORDINATOR:
        return RequestScope(requester_id=me, coordinator_id=me)
    raise UnauthorizedError(f"Your role ({actor.role.value}) cannot view requests")


def change_request_scope_for(actor: Actor) -> RequestScope:
    """Visibility of session change requests for one actor.

    Academic operators see the sessions they operate; the other reviewers see
    everything and everyone else sees only what they submitted.
    """
    me = actor.participant_id
    if actor.role is Role.ACADEMIC_OPERATOR:
        return RequestScope(academic_operator_id=me)
    if actor.can(Capability.REVIEW_SESSION_CHANGE):
        return RequestScope()
    if actor.role is Role.GHOST:
        raise UnauthorizedError(f"Your role ({actor.role.value}) cannot view requests")
    return RequestScope(requester_id=me)
