"""Notification outbox: enqueue from workflows, drain from a command.

Workflows only ever write outbox rows, so a slow or failing mail server can
never block or fail a decision. Delivery happens in NotificationDispatcher.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from django.utils import timezone
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from classroom.domain import Notification, OutboxEntry, SessionId, Stakeholder
from classroom.integrations.errors import DeliveryError, TransientDeliveryError
from classroom.integrations.notifications import NotificationSender
from classroom.services.common import Clock
from classroom.stores import NotificationStore
from portal.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Queues notifications for stakeholders."""

    def __init__(self, store: NotificationStore, now: Clock = timezone.now) -> None:
        self._store = store
        self._now = now

    def notify(
        self,
        recipients: Iterable[Stakeholder],
        kind: str,
        session_id: SessionId | None,
        payload: dict[str, Any] | None = None,
    ) -> int:
        """Queue one notification per distinct recipient.

        Never raises; returns the number of rows queued (0 on failure).
        """
        notifications = [
            Notification(
                recipient_id=recipient.participant_id,
                recipient_role=recipient.role,
                kind=kind,
                session_id=session_id,
                payload=payload or {},
            )
            for recipient in dict.fromkeys(recipients)
        ]
        if not notifications:
            return 0
        try:
            self._store.enqueue(notifications, self._now())
        except Exception as exc:
            logger.warning(
                "notification_enqueue_failed",
                kind=kind,
                session_id=str(session_id) if session_id else None,
                recipients=len(notifications),
                error=str(exc),
            )
            return 0
        logger.info(
            "notifications_queued",
            kind=kind,
            session_id=str(session_id) if session_id else None,
            recipients=len(notifications),
        )
        return len(notifications)


@dataclass(frozen=True)
class DispatchResult:
    sent: int
    failed: int


class NotificationDispatcher:
    """Drains pending outbox rows through a sender.

    Transient failures are retried in-process with tenacity; an entry that
    still fails has its attempt counted and is marked failed once it reaches
    max_attempts. Permanent failures are marked failed immediately.
    """

    def __init__(
        self,
        store: NotificationStore,
        sender: NotificationSender,
        max_attempts: int = 5,
        retry_attempts: int = 3,
        retry_wait_sec: float = 1.0,
        now: Clock = timezone.now,
    ) -> None:
        self._store = store
        self._sender = sender
        self._max_attempts = max_attempts
        self._now = now
        self._retrying = Retrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_fixed(retry_wait_sec),
            retry=retry_if_exception_type(TransientDeliveryError),
            reraise=True,
        )

    def drain(self, batch_size: int = 100) -> DispatchResult:
        sent = failed = 0
        for entry in self._store.pending(batch_size):
            if self._deliver(entry):
                sent += 1
            else:
                failed += 1
        logger.info("notification_drain_complete", sent=sent, failed=failed)
        return DispatchResult(sent=sent, failed=failed)

    def _deliver(self, entry: OutboxEntry) -> bool:
        try:
            self._retrying(self._sender.send, entry.notification)
        except TransientDeliveryError as e:
            logger.warning("notification_delivery_retry_exhausted", entry_id=entry.id, error=str(e))
            self._store.mark_failed_attempt(entry.id, str(e), self._max_attempts)
            return False
        except DeliveryError as e:
            logger.error("notification_delivery_rejected", entry_id=entry.id, error=str(e))
            self._store.mark_failed_attempt(entry.id, str(e), max_attempts=0)
            return False
        self._store.mark_sent(entry.id, self._now())
        return True
