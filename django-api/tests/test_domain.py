"""Unit tests for domain primitives.

These test invariants that must hold at construction time, plus the pure
rules (status edges, lateness, approval chains) the services build on.
Run with: pytest tests/test_domain.py -v
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from fakes import ACADEMIC, COORDINATOR, HR, OWNER, PARENT, STUDENT, TEACHER, new_session

from classroom.domain import (
    Actor,
    AttendanceAggregate,
    AttendanceStatus,
    AttendanceSummary,
    CancellationRequest,
    CancellationStatus,
    CancellationType,
    Capability,
    Role,
    SessionId,
    SessionStatus,
)
from classroom.domain.approval_chain import APPROVAL_CHAINS, plan_advance
from classroom.domain.errors import (
    AlreadyFinalizedError,
    ConflictError,
    ErrorCode,
    InvalidIdError,
    UnauthorizedError,
)
from classroom.domain.lifecycle import TERMINAL_STATUSES, can_transition, sources_for
from classroom.domain.models import classify_first_join

START = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class TestSessionId:
    """Tests for SessionId value object."""

    def test_from_string_valid_uuid(self):
        """SessionId.from_string parses valid UUID."""
        raw = "5f0c6a43-7c38-4c1e-9a51-3a8f7f3c2b10"
        assert str(SessionId.from_string(raw)) == raw

    def test_from_string_invalid_uuid(self):
        """SessionId.from_string raises ValueError for invalid UUID."""
        with pytest.raises(ValueError):
            SessionId.from_string("not-a-uuid")

    def test_equal_ids_compare_equal(self):
        """Two SessionIds built from the same UUID are equal and hash alike."""
        value = uuid.uuid4()
        assert SessionId(value) == SessionId.from_string(str(value))
        assert len({SessionId(value), SessionId(value)}) == 1


class TestRole:
    """Tests for Role parsing and capabilities."""

    def test_parse_is_case_insensitive(self):
        """Role.parse accepts mixed case and surrounding spaces."""
        assert Role.parse("  Teacher ") is Role.TEACHER

    @pytest.mark.parametrize(
        "alias, role",
        [("academic", Role.ACADEMIC_OPERATOR), ("coordinator", Role.BATCH_COORDINATOR)],
    )
    def test_parse_accepts_legacy_aliases(self, alias, role):
        """Legacy role names map onto the closed enum."""
        assert Role.parse(alias) is role

    def test_parse_rejects_unknown_role(self):
        """Unknown role names raise ValueError."""
        with pytest.raises(ValueError):
            Role.parse("janitor")

    def test_admin_class_can_start_sessions(self):
        """Coordinators, academic operators and owners hold START_SESSION; teachers do not."""
        assert COORDINATOR.can(Capability.START_SESSION)
        assert ACADEMIC.can(Capability.START_SESSION)
        assert OWNER.can(Capability.START_SESSION)
        assert not TEACHER.can(Capability.START_SESSION)

    def test_only_hr_and_owner_approve_hr_level(self):
        """The final teacher-cancellation level belongs to hr-class roles."""
        assert HR.can(Capability.APPROVE_HR_LEVEL)
        assert OWNER.can(Capability.APPROVE_HR_LEVEL)
        assert not ACADEMIC.can(Capability.APPROVE_HR_LEVEL)
        assert not COORDINATOR.can(Capability.APPROVE_HR_LEVEL)


class TestErrors:
    """Tests for the domain error taxonomy."""

    def test_invalid_id_error_has_its_own_code(self):
        """InvalidIdError is a ValidationError with the INVALID_ID code."""
        error = InvalidIdError(field="session_id")
        assert error.code is ErrorCode.INVALID_ID
        assert error.field == "session_id"
        assert str(error) == "INVALID_ID: Invalid ID format"

    def test_already_finalized_is_a_conflict(self):
        """AlreadyFinalizedError is caught by ConflictError handlers."""
        assert isinstance(AlreadyFinalizedError(), ConflictError)


class TestLifecycle:
    """Tests for the allowed session status edges."""

    @pytest.mark.parametrize(
        "current, target",
        [
            (SessionStatus.SCHEDULED, SessionStatus.LIVE),
            (SessionStatus.SCHEDULED, SessionStatus.CANCELLED),
            (SessionStatus.LIVE, SessionStatus.ENDED),
            (SessionStatus.LIVE, SessionStatus.CANCELLED),
        ],
    )
    def test_allowed_edges(self, current, target):
        """The four lifecycle edges are allowed."""
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (SessionStatus.SCHEDULED, SessionStatus.ENDED),
            (SessionStatus.LIVE, SessionStatus.SCHEDULED),
            (SessionStatus.ENDED, SessionStatus.LIVE),
            (SessionStatus.CANCELLED, SessionStatus.SCHEDULED),
            (SessionStatus.ENDED, SessionStatus.CANCELLED),
        ],
    )
    def test_forbidden_edges(self, current, target):
        """Every other edge is refused."""
        assert not can_transition(current, target)

    def test_terminal_statuses(self):
        """Ended and cancelled have no outgoing edges."""
        assert TERMINAL_STATUSES == {SessionStatus.ENDED, SessionStatus.CANCELLED}

    def test_sources_for_cancelled(self):
        """A session can be cancelled from scheduled or live."""
        assert sources_for(SessionStatus.CANCELLED) == {SessionStatus.SCHEDULED, SessionStatus.LIVE}


class TestSessionTiming:
    """Tests for time-derived session properties."""

    def test_is_early_before_scheduled_end(self):
        """A 60 minute session starting 10:00 is early at 10:30 and not at 11:00."""
        session = new_session(START, status=SessionStatus.LIVE)
        assert session.is_early(START + timedelta(minutes=30))
        assert not session.is_early(START + timedelta(minutes=60))

    def test_live_session_past_end_is_presented_ended(self):
        """Effective status of an overrun live session is ended."""
        session = new_session(START, status=SessionStatus.LIVE)
        assert session.effective_status(START + timedelta(minutes=61)) is SessionStatus.ENDED
        assert session.status is SessionStatus.LIVE

    def test_scheduled_session_past_end_keeps_status(self):
        """Only live sessions get the display safety net."""
        session = new_session(START)
        assert session.effective_status(START + timedelta(hours=3)) is SessionStatus.SCHEDULED


class TestFirstJoinClassification:
    """Tests for lateness classification."""

    def test_student_after_start_is_late(self):
        """A student joining at 10:07 is late by 420 seconds."""
        result = classify_first_join("student", START, START + timedelta(minutes=7))
        assert result.status is AttendanceStatus.LATE
        assert result.late is True
        assert result.late_by_sec == 420

    def test_student_on_time_is_present(self):
        """A student joining before the start is present."""
        result = classify_first_join("student", START, START - timedelta(minutes=1))
        assert result.status is AttendanceStatus.PRESENT
        assert result.late_by_sec == 0

    def test_teacher_is_never_late(self):
        """Lateness only applies to students."""
        result = classify_first_join("teacher", START, START + timedelta(minutes=20))
        assert result.status is AttendanceStatus.PRESENT
        assert result.late is False


class TestAttendanceAggregate:
    """Tests for the read-side attendance aggregate."""

    def test_counts_only_students(self):
        """Teacher rows are excluded from counts and averages."""
        sid = SessionId(uuid.uuid4())
        summaries = [
            AttendanceSummary(sid, "s1", "student", AttendanceStatus.PRESENT, total_duration_sec=100),
            AttendanceSummary(sid, "s2", "student", AttendanceStatus.LATE, total_duration_sec=201),
            AttendanceSummary(sid, "s3", "student", AttendanceStatus.ABSENT),
            AttendanceSummary(sid, "t1", "teacher", AttendanceStatus.PRESENT, total_duration_sec=999),
        ]
        aggregate = AttendanceAggregate.from_summaries(summaries)
        assert aggregate.total_students == 3
        assert (aggregate.present, aggregate.late, aggregate.absent) == (1, 1, 1)
        assert aggregate.avg_duration_sec == 100

    def test_empty_roster(self):
        """No students yields zeros, not a division error."""
        aggregate = AttendanceAggregate.from_summaries([])
        assert aggregate.total_students == 0
        assert aggregate.avg_duration_sec == 0


def _request(cancellation_type, status=CancellationStatus.PENDING):
    return CancellationRequest(
        id=None,
        session_id=SessionId(uuid.uuid4()),
        requester_id="someone@school.test",
        requester_role=Role.TEACHER,
        reason="Sick",
        cancellation_type=cancellation_type,
        status=status,
        created_at=START,
    )


class TestApprovalChain:
    """Tests for the cancellation approval-chain table."""

    def test_every_type_has_a_chain(self):
        """All four cancellation types are in the table."""
        assert set(APPROVAL_CHAINS) == set(CancellationType)

    def test_teacher_chain_walks_four_levels(self):
        """teacher_initiated goes coordinator, admin, academic, hr."""
        approvers = [COORDINATOR, OWNER, ACADEMIC, HR]
        status = CancellationStatus.PENDING
        levels = []
        for approver in approvers:
            plan = plan_advance(_request(CancellationType.TEACHER_INITIATED, status), approver, True)
            levels.append(plan.level.name)
            status = plan.new_status
        assert levels == ["coordinator", "admin", "academic", "hr"]
        assert status is CancellationStatus.APPROVED

    def test_parent_request_is_single_step(self):
        """A coordinator's approval finalizes a parent_initiated request."""
        plan = plan_advance(_request(CancellationType.PARENT_INITIATED), COORDINATOR, True)
        assert plan.is_terminal
        assert plan.new_status is CancellationStatus.APPROVED
        assert plan.level.decision_field == "coordinator_decision"

    def test_policy_request_needs_academic_level(self):
        """A policy cancellation is decided at the academic level."""
        plan = plan_advance(_request(CancellationType.POLICY), ACADEMIC, True)
        assert plan.level.name == "academic"
        assert plan.is_terminal

    def test_rejection_is_terminal_at_any_level(self):
        """Rejecting at the admin level ends the chain."""
        request = _request(CancellationType.TEACHER_INITIATED, CancellationStatus.COORDINATOR_APPROVED)
        plan = plan_advance(request, OWNER, False)
        assert plan.new_status is CancellationStatus.REJECTED
        assert plan.decision == "rejected"
        assert plan.is_terminal

    def test_wrong_role_for_level_is_unauthorized(self):
        """An academic operator cannot act at the hr level."""
        request = _request(CancellationType.TEACHER_INITIATED, CancellationStatus.ACADEMIC_APPROVED)
        with pytest.raises(UnauthorizedError):
            plan_advance(request, ACADEMIC, True)

    @pytest.mark.parametrize("status", [CancellationStatus.APPROVED, CancellationStatus.REJECTED])
    def test_finalized_request_raises(self, status):
        """Acting on a finalized request raises AlreadyFinalizedError."""
        with pytest.raises(AlreadyFinalizedError):
            plan_advance(_request(CancellationType.GROUP_REQUEST, status), COORDINATOR, True)

    def test_status_outside_chain_conflicts(self):
        """A group request never sits at coordinator_approved; acting on it conflicts."""
        request = _request(CancellationType.GROUP_REQUEST, CancellationStatus.COORDINATOR_APPROVED)
        with pytest.raises(ConflictError):
            plan_advance(request, COORDINATOR, True)

    def test_students_and_parents_approve_nothing(self):
        """Requesters cannot approve at any level."""
        for actor in (STUDENT, PARENT, TEACHER, Actor("ghost@school.test", Role.GHOST)):
            with pytest.raises(UnauthorizedError):
                plan_advance(_request(CancellationType.TEACHER_INITIATED), actor, True)
