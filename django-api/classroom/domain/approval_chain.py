"""Cancellation approval chains as data.

Each cancellation type maps its current status to the level allowed to act
on it. One generic plan_advance() consumes the table; there is no per-type
branching anywhere else.
"""

from dataclasses import dataclass

from classroom.domain.errors import AlreadyFinalizedError, ConflictError, UnauthorizedError
from classroom.domain.models import CancellationRequest, CancellationStatus, CancellationType
from classroom.domain.value_objects import Actor, Capability


@dataclass(frozen=True)
class ApprovalLevel:
    """One role-gated step of an approval chain."""

    name: str
    capability: Capability
    decision_field: str
    approver_field: str
    decided_at_field: str
    next_status: CancellationStatus


def _level(name: str, capability: Capability, next_status: CancellationStatus) -> ApprovalLevel:
    return ApprovalLevel(
        name=name,
        capability=capability,
        decision_field=f"{name}_decision",
        approver_field=f"{name}_approver_id",
        decided_at_field=f"{name}_decided_at",
        next_status=next_status,
    )


COORDINATOR_FINAL = _level("coordinator", Capability.APPROVE_COORDINATOR_LEVEL, CancellationStatus.APPROVED)

APPROVAL_CHAINS: dict[CancellationType, dict[CancellationStatus, ApprovalLevel]] = {
    CancellationType.PARENT_INITIATED: {
        CancellationStatus.PENDING: COORDINATOR_FINAL,
    },
    CancellationType.GROUP_REQUEST: {
        CancellationStatus.PENDING: COORDINATOR_FINAL,
    },
    CancellationType.TEACHER_INITIATED: {
        CancellationStatus.PENDING: _level(
            "coordinator", Capability.APPROVE_COORDINATOR_LEVEL, CancellationStatus.COORDINATOR_APPROVED
        ),
        CancellationStatus.COORDINATOR_APPROVED: _level(
            "admin", Capability.APPROVE_ADMIN_LEVEL, CancellationStatus.ADMIN_APPROVED
        ),
        CancellationStatus.ADMIN_APPROVED: _level(
            "academic", Capability.APPROVE_ACADEMIC_LEVEL, CancellationStatus.ACADEMIC_APPROVED
        ),
        CancellationStatus.ACADEMIC_APPROVED: _level(
            "hr", Capability.APPROVE_HR_LEVEL, CancellationStatus.APPROVED
        ),
    },
    CancellationType.POLICY: {
        CancellationStatus.PENDING: _level(
            "academic", Capability.APPROVE_ACADEMIC_LEVEL, CancellationStatus.APPROVED
        ),
    },
}

LEVEL_NAMES = ("coordinator", "admin", "academic", "hr")


def level_for(
    cancellation_type: CancellationType, status: CancellationStatus
) -> ApprovalLevel | None:
    return APPROVAL_CHAINS[cancellation_type].get(status)


@dataclass(frozen=True)
class AdvancePlan:
    """Outcome of applying one decision to a request, before it is written."""

    level: ApprovalLevel
    expected_status: CancellationStatus
    new_status: CancellationStatus
    approve: bool

    @property
    def decision(self) -> str:
        return "approved" if self.approve else "rejected"

    @property
    def is_terminal(self) -> bool:
        return self.new_status.is_final


def plan_advance(request: CancellationRequest, actor: Actor, approve: bool) -> AdvancePlan:
    """Validate a decision against the chain table and compute the next status.

    Raises:
        AlreadyFinalizedError: If the request is approved or rejected.
        ConflictError: If no level of this chain acts on the current status.
        UnauthorizedError: If the actor's role cannot act at this level.
    """
    if request.status.is_final:
        raise AlreadyFinalizedError()
    level = level_for(request.cancellation_type, request.status)
    if level is None:
        raise ConflictError(f"Cannot process at status: {request.status.value}")
    if not actor.can(level.capability):
        raise UnauthorizedError(
            f"Your role ({actor.role.value}) cannot approve at this stage"
        )
    new_status = level.next_status if approve else CancellationStatus.REJECTED
    return AdvancePlan(
        level=level,
        expected_status=request.status,
        new_status=new_status,
        approve=approve,
    )
