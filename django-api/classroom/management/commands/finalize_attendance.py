"""Fill in absentees for ended sessions that were never finalized."""

from django.core.management.base import BaseCommand, CommandError

from classroom import models as orm
from classroom.domain import SessionEventType, SessionStatus
from classroom.domain.errors import DomainError
from classroom.handlers.dependencies import get_services
from portal.logging import get_logger

logger = get_logger(__name__)


class Command(BaseCommand):
    help = (
        "Finalize attendance for ended sessions without an attendance_finalized event, "
        "or for one session given by --session-id."
    )

    def add_arguments(self, parser):
        parser.add_argument("--session-id", help="Finalize only this session")

    def handle(self, *args, **options):
        attendance = get_services().attendance
        if options["session_id"]:
            session_ids = [options["session_id"]]
        else:
            session_ids = [
                str(pk)
                for pk in orm.Session.objects.filter(status=SessionStatus.ENDED.value)
                .exclude(events__event_type=SessionEventType.ATTENDANCE_FINALIZED.value)
                .values_list("id", flat=True)
            ]

        for session_id in session_ids:
            try:
                aggregate = attendance.finalize(session_id)
            except DomainError as exc:
                raise CommandError(f"{session_id}: {exc.message}") from exc
            logger.info(
                "session_attendance_finalized",
                session_id=session_id,
                absent=aggregate.absent,
                total_students=aggregate.total_students,
            )
        self.stdout.write(f"finalized={len(session_ids)}")
