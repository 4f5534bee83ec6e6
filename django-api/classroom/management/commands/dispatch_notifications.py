"""Drain the notification outbox."""

from django.conf import settings
from django.core.management.base import BaseCommand

from classroom.integrations.notifications import EmailNotificationSender
from classroom.services import NotificationDispatcher
from classroom.stores.django_store import DjangoNotificationStore
from portal.config import get_config
from portal.logging import get_logger

logger = get_logger(__name__)


class Command(BaseCommand):
    help = "Deliver pending notifications from the outbox, retrying transient failures."

    def add_arguments(self, parser):
        config = get_config()
        parser.add_argument(
            "--batch-size",
            type=int,
            default=config.notification_batch_size,
            help="Maximum outbox rows to deliver in this run",
        )
        parser.add_argument(
            "--max-attempts",
            type=int,
            default=config.notification_max_attempts,
            help="Attempts after which a row is marked failed",
        )
        parser.add_argument(
            "--retry-wait",
            type=float,
            default=1.0,
            help="Seconds between in-process retries of a transient failure",
        )

    def handle(self, *args, **options):
        dispatcher = NotificationDispatcher(
            store=DjangoNotificationStore(),
            sender=EmailNotificationSender(from_email=settings.DEFAULT_FROM_EMAIL),
            max_attempts=options["max_attempts"],
            retry_wait_sec=options["retry_wait"],
        )
        result = dispatcher.drain(batch_size=options["batch_size"])
        logger.info("dispatch_notifications_finished", sent=result.sent, failed=result.failed)
        self.stdout.write(f"sent={result.sent} failed={result.failed}")
