"""Tests for the cancellation approval workflow.

Run with: pytest tests/test_cancellations.py -v
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from fakes import (
    ACADEMIC,
    COORDINATOR,
    GHOST,
    HR,
    OTHER_STUDENT,
    OTHER_TEACHER,
    OUTSIDER,
    OWNER,
    PARENT,
    STUDENT,
    TEACHER,
)

from classroom.domain import BatchType, CancellationStatus, CancellationType, SessionStatus
from classroom.domain.errors import (
    AlreadyFinalizedError,
    ConflictError,
    DuplicatePendingRequestError,
    RequestNotFoundError,
    UnauthorizedError,
    ValidationError,
)


class TestRequestCancel:
    """Tests for CancellationService.request_cancel."""

    def test_parent_of_one_to_one_session(self, harness, make_session):
        """A parent on a one-to-one session opens a parent_initiated request."""
        session = make_session(batch_type=BatchType.ONE_TO_ONE)

        request = harness.cancellations.request_cancel(str(session.id), PARENT, " Family trip ")

        assert request.cancellation_type is CancellationType.PARENT_INITIATED
        assert request.status is CancellationStatus.PENDING
        assert request.reason == "Family trip"
        assert harness.event_types(session) == ["cancellation_requested"]
        assert harness.notification_store.kinds_for("coordinator@school.test") == [
            "cancellation_requested"
        ]

    def test_student_in_group_session(self, harness, make_session):
        """A student in a group session opens a group_request."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), OTHER_STUDENT, "Exams")
        assert request.cancellation_type is CancellationType.GROUP_REQUEST

    def test_assigned_teacher(self, harness, make_session):
        """The assigned teacher opens a teacher_initiated request."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), TEACHER, "Sick")
        assert request.cancellation_type is CancellationType.TEACHER_INITIATED

    def test_academic_operator_opens_policy_request(self, harness, make_session):
        """Admin-initiated cancellations are policy requests."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), ACADEMIC, "Holiday")
        assert request.cancellation_type is CancellationType.POLICY

    @pytest.mark.parametrize("actor", [OTHER_TEACHER, OUTSIDER, GHOST, HR])
    def test_requester_without_standing(self, harness, make_session, actor):
        """Unassigned teachers, unenrolled students, ghosts and hr cannot request."""
        session = make_session()
        with pytest.raises(UnauthorizedError):
            harness.cancellations.request_cancel(str(session.id), actor, "Because")

    def test_reason_is_optional(self, harness, make_session):
        """A request without a reason is accepted and stores an empty reason."""
        session = make_session()

        request = harness.cancellations.request_cancel(str(session.id), STUDENT, "   ")

        assert request.reason == ""
        assert request.status is CancellationStatus.PENDING

    @pytest.mark.parametrize("status", [SessionStatus.ENDED, SessionStatus.CANCELLED])
    def test_terminal_session_conflicts(self, harness, make_session, status):
        """Finished sessions cannot be cancelled."""
        session = make_session(status=status)
        with pytest.raises(ConflictError):
            harness.cancellations.request_cancel(str(session.id), STUDENT, "Late")

    def test_duplicate_open_request(self, harness, make_session):
        """A requester may hold only one open request per session."""
        session = make_session()
        harness.cancellations.request_cancel(str(session.id), STUDENT, "Exams")
        with pytest.raises(DuplicatePendingRequestError):
            harness.cancellations.request_cancel(str(session.id), STUDENT, "Exams again")

    def test_rejected_request_allows_a_new_one(self, harness, make_session):
        """Once rejected, the requester can ask again."""
        session = make_session()
        first = harness.cancellations.request_cancel(str(session.id), STUDENT, "Exams")
        harness.cancellations.reject(str(first.id), COORDINATOR, "No")

        second = harness.cancellations.request_cancel(str(session.id), STUDENT, "Really")
        assert second.id != first.id


class TestSingleStepChain:
    """Tests for parent_initiated and group_request chains."""

    def test_coordinator_approval_cancels_session(self, harness, make_session):
        """One coordinator approval finalizes and cancels."""
        session = make_session(batch_type=BatchType.ONE_TO_ONE)
        request = harness.cancellations.request_cancel(str(session.id), PARENT, "Trip")

        approved = harness.cancellations.approve(str(request.id), COORDINATOR)

        assert approved.status is CancellationStatus.APPROVED
        assert approved.decisions["coordinator"].approver_id == "coordinator@school.test"
        assert harness.session_store.get(session.id).status is SessionStatus.CANCELLED
        assert harness.event_types(session) == [
            "cancellation_requested",
            "room_cancelled",
            "cancellation_approved",
        ]
        assert "cancellation_approved" in harness.notification_store.kinds_for("parent1@school.test")

    def test_approving_again_is_already_finalized(self, harness, make_session):
        """A second approval raises and adds no events."""
        session = make_session(batch_type=BatchType.ONE_TO_ONE)
        request = harness.cancellations.request_cancel(str(session.id), PARENT, "Trip")
        harness.cancellations.approve(str(request.id), COORDINATOR)

        with pytest.raises(AlreadyFinalizedError):
            harness.cancellations.approve(str(request.id), COORDINATOR)
        assert harness.event_types(session).count("cancellation_approved") == 1

    def test_teacher_cannot_approve(self, harness, make_session):
        """The coordinator level is closed to teachers."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), STUDENT, "Exams")
        with pytest.raises(UnauthorizedError):
            harness.cancellations.approve(str(request.id), TEACHER)

    def test_concurrent_approvals_have_one_winner(self, harness, make_session):
        """Racing coordinators produce one cancellation_approved event."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), STUDENT, "Exams")

        def attempt(_):
            try:
                return harness.cancellations.approve(str(request.id), COORDINATOR)
            except ConflictError:
                return None

        with ThreadPoolExecutor(max_workers=5) as pool:
            results = list(pool.map(attempt, range(5)))

        assert sum(1 for r in results if r is not None) == 1
        assert harness.event_types(session).count("cancellation_approved") == 1
        assert harness.event_types(session).count("room_cancelled") == 1


class TestTeacherChain:
    """Tests for the four-level teacher_initiated chain."""

    def test_full_chain_cancels_once(self, harness, make_session):
        """coordinator, admin, academic and hr approvals end in one cancellation."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), TEACHER, "Sick")
        statuses = []
        for approver in (COORDINATOR, OWNER, ACADEMIC, HR):
            statuses.append(harness.cancellations.approve(str(request.id), approver).status)

        assert statuses == [
            CancellationStatus.COORDINATOR_APPROVED,
            CancellationStatus.ADMIN_APPROVED,
            CancellationStatus.ACADEMIC_APPROVED,
            CancellationStatus.APPROVED,
        ]
        types = harness.event_types(session)
        assert types.count("cancellation_level_approved") == 3
        assert types.count("cancellation_approved") == 1
        assert harness.session_store.get(session.id).status is SessionStatus.CANCELLED

    def test_session_stays_scheduled_until_final_level(self, harness, make_session):
        """Intermediate approvals do not cancel the session."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), TEACHER, "Sick")
        harness.cancellations.approve(str(request.id), COORDINATOR)
        harness.cancellations.approve(str(request.id), OWNER)

        assert harness.session_store.get(session.id).status is SessionStatus.SCHEDULED

    def test_next_level_is_notified(self, harness, make_session):
        """After the coordinator approves, admin-level approvers are told."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), TEACHER, "Sick")
        harness.cancellations.approve(str(request.id), COORDINATOR)

        assert "cancellation_level_approved" in harness.notification_store.kinds_for(
            "academic@school.test"
        )

    def test_rejection_stops_the_chain(self, harness, make_session):
        """A rejection at the admin level is final and records where it happened."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), TEACHER, "Sick")
        harness.cancellations.approve(str(request.id), COORDINATOR)

        rejected = harness.cancellations.reject(str(request.id), OWNER, "Find a substitute")

        assert rejected.status is CancellationStatus.REJECTED
        assert rejected.rejected_at_level == "admin"
        assert rejected.rejection_reason == "Find a substitute"
        with pytest.raises(AlreadyFinalizedError):
            harness.cancellations.approve(str(request.id), ACADEMIC)
        assert harness.session_store.get(session.id).status is SessionStatus.SCHEDULED
        assert "cancellation_rejected" in harness.notification_store.kinds_for("teacher@school.test")

    def test_wrong_role_for_level(self, harness, make_session):
        """The hr level refuses an academic operator."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), TEACHER, "Sick")
        for approver in (COORDINATOR, OWNER, ACADEMIC):
            harness.cancellations.approve(str(request.id), approver)

        with pytest.raises(UnauthorizedError):
            harness.cancellations.approve(str(request.id), ACADEMIC)

    def test_final_approval_on_ended_session_conflicts(self, harness, make_session):
        """The last level cannot approve once the session is over."""
        session = make_session(status=SessionStatus.LIVE)
        request = harness.cancellations.request_cancel(str(session.id), TEACHER, "Sick")
        for approver in (COORDINATOR, OWNER, ACADEMIC):
            harness.cancellations.approve(str(request.id), approver)
        harness.sessions.end_session(str(session.id), TEACHER)

        with pytest.raises(ConflictError):
            harness.cancellations.approve(str(request.id), HR)
        assert harness.cancellation_store.get(request.id).status is CancellationStatus.ACADEMIC_APPROVED


class TestPolicyChain:
    """Tests for admin-initiated cancellations."""

    def test_academic_approval_cancels(self, harness, make_session):
        """A policy request is finalized at the academic level."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), OWNER, "Building closed")

        with pytest.raises(UnauthorizedError):
            harness.cancellations.approve(str(request.id), COORDINATOR)
        approved = harness.cancellations.approve(str(request.id), ACADEMIC)

        assert approved.status is CancellationStatus.APPROVED
        assert harness.session_store.get(session.id).status is SessionStatus.CANCELLED


class TestAdvanceErrors:
    """Tests for malformed and unknown request ids."""

    def test_unknown_request(self, harness):
        """A well-formed unknown id is not found."""
        with pytest.raises(RequestNotFoundError):
            harness.cancellations.approve("5f0c6a43-7c38-4c1e-9a51-3a8f7f3c2b10", COORDINATOR)

    def test_malformed_request_id(self, harness):
        """A malformed id is a validation error."""
        with pytest.raises(ValidationError):
            harness.cancellations.approve("request-1", COORDINATOR)


class TestListRequests:
    """Tests for request visibility."""

    def test_scoping_by_role(self, harness, make_session):
        """Students see their own, teachers see their sessions, admins see all."""
        session = make_session()
        mine = harness.cancellations.request_cancel(str(session.id), STUDENT, "Exams")
        theirs = harness.cancellations.request_cancel(str(session.id), OTHER_STUDENT, "Trip")

        assert [r.id for r in harness.cancellations.list_requests(STUDENT)] == [mine.id]
        assert {r.id for r in harness.cancellations.list_requests(TEACHER)} == {mine.id, theirs.id}
        assert {r.id for r in harness.cancellations.list_requests(ACADEMIC)} == {mine.id, theirs.id}
        assert harness.cancellations.list_requests(OTHER_TEACHER) == []

    def test_status_filter(self, harness, make_session):
        """Filtering by status narrows the list; unknown statuses are rejected."""
        session = make_session()
        request = harness.cancellations.request_cancel(str(session.id), STUDENT, "Exams")
        harness.cancellations.reject(str(request.id), COORDINATOR)

        assert harness.cancellations.list_requests(OWNER, status="pending") == []
        assert len(harness.cancellations.list_requests(OWNER, status="rejected")) == 1
        with pytest.raises(ValidationError):
            harness.cancellations.list_requests(OWNER, status="sort_of")

    def test_ghost_cannot_list(self, harness):
        """Observers have no request visibility."""
        with pytest.raises(UnauthorizedError):
            harness.cancellations.list_requests(GHOST)
