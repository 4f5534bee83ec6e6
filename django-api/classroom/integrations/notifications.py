"""Notification senders used by the outbox dispatcher."""

import smtplib
from abc import ABC, abstractmethod

from django.core.mail import send_mail

from classroom.domain import Notification
from classroom.integrations.errors import PermanentDeliveryError, TransientDeliveryError
from portal.logging import get_logger

logger = get_logger(__name__)


class NotificationSender(ABC):
    """Delivers one notification to one recipient."""

    @abstractmethod
    def send(self, notification: Notification) -> None:
        ...


class EmailNotificationSender(NotificationSender):
    """Sends a plain-text message through Django's configured email backend.

    Participant ids are e-mail addresses; anything else cannot be delivered.
    """

    def __init__(self, from_email: str) -> None:
        self._from_email = from_email

    def send(self, notification: Notification) -> None:
        if "@" not in notification.recipient_id:
            raise PermanentDeliveryError(
                f"Recipient {notification.recipient_id!r} is not an e-mail address"
            )
        subject = notification.kind.replace("_", " ").capitalize()
        lines = [f"session: {notification.session_id}"] if notification.session_id else []
        lines.extend(f"{key}: {value}" for key, value in sorted(notification.payload.items()))
        try:
            send_mail(
                subject=subject,
                message="\n".join(lines),
                from_email=self._from_email,
                recipient_list=[notification.recipient_id],
            )
        except (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError, OSError) as e:
            raise TransientDeliveryError(f"Mail transport unavailable: {e}") from e
        except smtplib.SMTPException as e:
            raise PermanentDeliveryError(f"Mail rejected: {e}") from e
        logger.debug(
            "notification_sent",
            kind=notification.kind,
            recipient_id=notification.recipient_id,
        )
