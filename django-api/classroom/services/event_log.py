"""Append-only session event ledger."""

from collections.abc import Iterable
from typing import Any

from django.utils import timezone

from classroom.domain import Actor, SessionEvent, SessionEventType, SessionId
from classroom.services.common import Clock
from classroom.stores import EventLogStore
from portal.logging import get_logger

logger = get_logger(__name__)


class EventLogService:
    """Writes and reads the per-session audit trail. Rows are never updated."""

    def __init__(self, store: EventLogStore, now: Clock = timezone.now) -> None:
        self._store = store
        self._now = now

    def append(
        self,
        session_id: SessionId,
        event_type: SessionEventType,
        actor: Actor | None,
        payload: dict[str, Any] | None = None,
    ) -> SessionEvent:
        """Append one event; a None actor records a system event."""
        event = self._store.append(
            session_id=session_id,
            event_type=event_type,
            actor_id=actor.participant_id if actor else None,
            actor_role=actor.role.value if actor else None,
            payload=payload or {},
            at=self._now(),
        )
        logger.info(
            "session_event_appended",
            session_id=str(session_id),
            event_type=event_type.value,
            actor_id=event.actor_id,
        )
        return event

    def history(
        self,
        session_id: SessionId,
        event_types: Iterable[SessionEventType] | None = None,
    ) -> list[SessionEvent]:
        return self._store.list_for_session(session_id, event_types)

    def count(self, session_id: SessionId, event_type: SessionEventType) -> int:
        return len(self._store.list_for_session(session_id, [event_type]))
