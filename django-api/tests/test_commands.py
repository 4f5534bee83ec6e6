"""Tests for the management commands.

Run with: pytest tests/test_commands.py -v
"""

import uuid
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from classroom import models as orm
from classroom.domain import SessionStatus


def run(command, *args):
    out = StringIO()
    call_command(command, *args, stdout=out)
    return out.getvalue().strip()


@pytest.mark.django_db
class TestDispatchNotifications:
    """Tests for dispatch_notifications."""

    def test_delivers_pending_rows(self, mailoutbox):
        """Addressable rows are mailed; others fail permanently."""
        orm.NotificationOutbox.objects.create(
            recipient_id="parent1@school.test", recipient_role="parent", kind="session_ended"
        )
        orm.NotificationOutbox.objects.create(
            recipient_id="u-42", recipient_role="student", kind="session_ended"
        )

        output = run("dispatch_notifications", "--retry-wait", "0")

        assert output == "sent=1 failed=1"
        assert [m.to for m in mailoutbox] == [["parent1@school.test"]]
        statuses = dict(orm.NotificationOutbox.objects.values_list("recipient_id", "status"))
        assert statuses == {"parent1@school.test": "sent", "u-42": "failed"}

    def test_batch_size(self, mailoutbox):
        """--batch-size caps one run."""
        for i in range(3):
            orm.NotificationOutbox.objects.create(
                recipient_id=f"s{i}@school.test", recipient_role="student", kind="session_live"
            )

        assert run("dispatch_notifications", "--batch-size", "2") == "sent=2 failed=0"
        assert orm.NotificationOutbox.objects.filter(status="pending").count() == 1


@pytest.mark.django_db
class TestFinalizeAttendance:
    """Tests for finalize_attendance."""

    def test_sweeps_unfinalized_ended_sessions(self, create_db_session):
        """Ended sessions without a finalization event get absentees filled in."""
        ended = create_db_session(status=SessionStatus.ENDED)
        done = create_db_session(status=SessionStatus.ENDED)
        orm.SessionEvent.objects.create(session=done, event_type="attendance_finalized")
        create_db_session(status=SessionStatus.LIVE)

        assert run("finalize_attendance") == "finalized=1"

        assert orm.AttendanceSummary.objects.filter(session=ended, status="absent").count() == 2
        assert not orm.AttendanceSummary.objects.filter(session=done).exists()
        assert orm.SessionEvent.objects.filter(
            session=ended, event_type="attendance_finalized"
        ).exists()

    def test_single_session(self, create_db_session):
        """--session-id finalizes one session regardless of status."""
        row = create_db_session(status=SessionStatus.LIVE, scheduled_start=timezone.now())
        assert run("finalize_attendance", "--session-id", str(row.id)) == "finalized=1"
        assert orm.AttendanceSummary.objects.filter(session=row).count() == 2

    def test_unknown_session_is_a_command_error(self):
        """Domain errors surface as CommandError."""
        with pytest.raises(CommandError):
            run("finalize_attendance", "--session-id", str(uuid.uuid4()))
