from classroom.domain.models import (
    AttendanceAggregate,
    AttendanceEvent,
    AttendanceEventType,
    AttendanceStatus,
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
    Session,
    SessionChangeRequest,
    SessionEvent,
    SessionEventType,
    SessionStatus,
    Stakeholder,
    AttendanceSummary,
)
from classroom.domain.value_objects import Actor, Capability, RequestId, Role, SessionId

__all__ = [
    "Actor",
    "AttendanceAggregate",
    "AttendanceEvent",
    "AttendanceEventType",
    "AttendanceStatus",
    "AttendanceSummary",
    "BatchType",
    "CancellationRequest",
    "CancellationStatus",
    "CancellationType",
    "Capability",
    "ChangeRequestStatus",
    "ChangeRequestType",
    "EndRequestStatus",
    "EndSessionRequest",
    "Enrollment",
    "LevelDecision",
    "Notification",
    "OutboxEntry",
    "RequestId",
    "Role",
    "Session",
    "SessionChangeRequest",
    "SessionEvent",
    "SessionEventType",
    "SessionId",
    "SessionStatus",
    "Stakeholder",
]
