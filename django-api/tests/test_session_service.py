"""Tests for the session state machine.

Covers guarded transitions, the single winner of concurrent go-live calls,
and side effects that must not undo a committed transition.
Run with: pytest tests/test_session_service.py -v
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from fakes import COORDINATOR, OTHER_TEACHER, SCHEDULED_START, STUDENT, TEACHER

from classroom.domain import EndRequestStatus, SessionStatus
from classroom.domain.errors import (
    InvalidIdError,
    InvalidTransitionError,
    SessionNotFoundError,
    UnauthorizedError,
)
from classroom.domain.lifecycle import can_transition


class TestGoLive:
    """Tests for scheduled -> live."""

    def test_assigned_teacher_goes_live(self, harness, make_session):
        """The assigned teacher starts the session and room_started is logged once."""
        session = make_session()

        result = harness.sessions.go_live(str(session.id), TEACHER)

        assert result.already_live is False
        assert result.session.status is SessionStatus.LIVE
        assert result.session.went_live_at == harness.clock()
        assert harness.event_types(session) == ["room_started"]

    def test_admin_can_go_live(self, harness, make_session):
        """A coordinator may start any session."""
        session = make_session()
        assert harness.sessions.go_live(str(session.id), COORDINATOR).session.status is SessionStatus.LIVE

    @pytest.mark.parametrize("actor", [OTHER_TEACHER, STUDENT])
    def test_other_actors_are_refused(self, harness, make_session, actor):
        """Unassigned teachers and students cannot start a session."""
        session = make_session()
        with pytest.raises(UnauthorizedError):
            harness.sessions.go_live(str(session.id), actor)
        assert harness.session_store.get(session.id).status is SessionStatus.SCHEDULED

    def test_already_live_is_idempotent(self, harness, make_session):
        """A second go-live reports already_live and appends nothing."""
        session = make_session()
        harness.sessions.go_live(str(session.id), TEACHER)

        again = harness.sessions.go_live(str(session.id), TEACHER)

        assert again.already_live is True
        assert harness.event_types(session) == ["room_started"]

    @pytest.mark.parametrize("status", [SessionStatus.ENDED, SessionStatus.CANCELLED])
    def test_terminal_session_cannot_go_live(self, harness, make_session, status):
        """Ended and cancelled sessions refuse to start."""
        session = make_session(status=status)
        with pytest.raises(InvalidTransitionError):
            harness.sessions.go_live(str(session.id), TEACHER)

    def test_concurrent_go_live_has_one_winner(self, harness, make_session):
        """Eight simultaneous calls all succeed but only one logs room_started."""
        session = make_session()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(lambda _: harness.sessions.go_live(str(session.id), TEACHER), range(8))
            )

        assert all(r.session.status is SessionStatus.LIVE for r in results)
        assert sum(1 for r in results if not r.already_live) == 1
        assert harness.event_types(session).count("room_started") == 1
        assert harness.session_store.transitions == [(SessionStatus.SCHEDULED, SessionStatus.LIVE)]

    def test_go_live_notifies_stakeholders(self, harness, make_session):
        """Teacher, coordinator, academic operator, students and the guardian are notified."""
        session = make_session()
        harness.sessions.go_live(str(session.id), TEACHER)

        recipients = {r["notification"].recipient_id for r in harness.notification_store.rows}
        assert recipients == {
            "teacher@school.test",
            "coordinator@school.test",
            "academic@school.test",
            "student1@school.test",
            "student2@school.test",
            "parent1@school.test",
        }

    def test_malformed_id_is_invalid(self, harness):
        """A non-UUID session id raises InvalidIdError."""
        with pytest.raises(InvalidIdError):
            harness.sessions.go_live("nope", TEACHER)

    def test_unknown_session_not_found(self, harness):
        """A well-formed but unknown id raises SessionNotFoundError."""
        with pytest.raises(SessionNotFoundError):
            harness.sessions.go_live("5f0c6a43-7c38-4c1e-9a51-3a8f7f3c2b10", TEACHER)


class TestEndSession:
    """Tests for live -> ended and its side effects."""

    def test_end_runs_side_effects(self, harness, make_session, clock):
        """Ending deletes the room, syncs the mirror and finalizes attendance."""
        session = make_session(status=SessionStatus.LIVE)
        clock.set(SCHEDULED_START + timedelta(minutes=61))

        ended = harness.sessions.end_session(str(session.id), TEACHER)

        assert ended.status is SessionStatus.ENDED
        assert ended.ended_at == clock()
        assert harness.transport.deleted == [session.id]
        assert harness.session_store.mirror[session.id.value]["status"] is SessionStatus.ENDED
        assert harness.event_types(session) == ["room_ended", "attendance_finalized"]
        assert "session_ended" in harness.notification_store.kinds_for("parent1@school.test")

    def test_side_effect_failures_do_not_undo_the_end(self, harness, make_session):
        """Transport, mirror and outbox failures are logged, the session stays ended."""
        session = make_session(status=SessionStatus.LIVE)
        harness.transport.fail = True
        harness.session_store.fail_mirror = True
        harness.notification_store.fail_enqueue = True

        ended = harness.sessions.end_session(str(session.id), TEACHER)

        assert ended.status is SessionStatus.ENDED
        assert harness.notification_store.rows == []
        assert "room_ended" in harness.event_types(session)

    def test_student_cannot_end(self, harness, make_session):
        """Students are refused."""
        session = make_session(status=SessionStatus.LIVE)
        with pytest.raises(UnauthorizedError):
            harness.sessions.end_session(str(session.id), STUDENT)

    def test_scheduled_session_cannot_end(self, harness, make_session):
        """scheduled -> ended is not an allowed edge."""
        session = make_session()
        with pytest.raises(InvalidTransitionError):
            harness.sessions.end_session(str(session.id), TEACHER)

    def test_second_end_conflicts(self, harness, make_session):
        """Ending twice raises and leaves one room_ended event."""
        session = make_session(status=SessionStatus.LIVE)
        harness.sessions.end_session(str(session.id), TEACHER)

        with pytest.raises(InvalidTransitionError):
            harness.sessions.end_session(str(session.id), COORDINATOR)
        assert harness.event_types(session).count("room_ended") == 1


class TestTransportRoomFinished:
    """Tests for ends reported by the transport."""

    def test_live_session_is_ended_without_deleting_room(self, harness, make_session):
        """The room is already gone, so no delete is issued."""
        session = make_session(status=SessionStatus.LIVE)

        assert harness.sessions.record_transport_room_finished(str(session.id)) is True

        assert harness.session_store.get(session.id).status is SessionStatus.ENDED
        assert harness.transport.deleted == []
        room_ended = harness.event_store.rows[0]
        assert (room_ended.actor_id, room_ended.actor_role) == (None, None)
        assert room_ended.payload["via"] == "transport"

    def test_pending_end_request_is_superseded_by_system(self, harness, make_session, clock):
        """No role is attributed to a request closed by the transport."""
        session = make_session(status=SessionStatus.LIVE)
        clock.set(SCHEDULED_START + timedelta(minutes=20))
        outcome = harness.end_requests.request_end(str(session.id), TEACHER)

        harness.sessions.record_transport_room_finished(str(session.id))

        request = harness.end_request_store.get(outcome.request.id)
        assert request.status is EndRequestStatus.SUPERSEDED
        assert (request.decided_by, request.decided_by_role) == ("system", "system")

    def test_non_live_session_is_ignored(self, harness, make_session):
        """A finished signal for a cancelled session changes nothing."""
        session = make_session(status=SessionStatus.CANCELLED)
        assert harness.sessions.record_transport_room_finished(str(session.id)) is False
        assert harness.event_types(session) == []


class TestCancelSession:
    """Tests for scheduled|live -> cancelled."""

    def test_cancel_scheduled_session(self, harness, make_session):
        """A scheduled session is cancelled without a room delete."""
        session = make_session()

        cancelled = harness.sessions.cancel_session(str(session.id), COORDINATOR, "cancellation")

        assert cancelled.status is SessionStatus.CANCELLED
        assert harness.transport.deleted == []
        assert harness.event_types(session) == ["room_cancelled"]
        assert harness.session_store.mirror[session.id.value]["status"] is SessionStatus.CANCELLED

    def test_cancel_live_session_deletes_room(self, harness, make_session):
        """Cancelling a live session tears the room down."""
        session = make_session(status=SessionStatus.LIVE)
        harness.sessions.cancel_session(str(session.id), COORDINATOR, "cancellation")
        assert harness.transport.deleted == [session.id]

    def test_cancel_ended_session_conflicts(self, harness, make_session):
        """Terminal sessions cannot be cancelled."""
        session = make_session(status=SessionStatus.ENDED)
        with pytest.raises(InvalidTransitionError):
            harness.sessions.cancel_session(str(session.id), COORDINATOR, "cancellation")


class TestEffectiveStatus:
    """Tests for the read-time status view."""

    def test_overrun_live_session_reads_as_ended(self, harness, make_session, clock):
        """Past the scheduled end a live session is presented ended, storage untouched."""
        session = make_session(status=SessionStatus.LIVE)
        clock.set(SCHEDULED_START + timedelta(hours=2))

        view = harness.sessions.get_session(str(session.id))

        assert view.effective_status is SessionStatus.ENDED
        assert view.session.status is SessionStatus.LIVE
        assert harness.event_types(session) == []


class TestTransitionHistory:
    """Every recorded transition is an allowed edge."""

    def test_full_lifecycle_only_uses_allowed_edges(self, harness, make_session):
        """go-live, end and a refused cancel leave only allowed edges behind."""
        session = make_session()
        harness.sessions.go_live(str(session.id), TEACHER)
        harness.sessions.end_session(str(session.id), TEACHER)
        with pytest.raises(InvalidTransitionError):
            harness.sessions.cancel_session(str(session.id), COORDINATOR, "cancellation")

        transitions = harness.session_store.transitions
        assert transitions == [
            (SessionStatus.SCHEDULED, SessionStatus.LIVE),
            (SessionStatus.LIVE, SessionStatus.ENDED),
        ]
        assert all(can_transition(a, b) for a, b in transitions)
