"""Helpers shared by the classroom services."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from classroom.domain import RequestId, Session, SessionId
from classroom.domain.errors import InvalidIdError, SessionNotFoundError
from classroom.stores import SessionStore
from portal.logging import get_logger

Clock = Callable[[], datetime]

logger = get_logger(__name__)


def parse_session_id(value: str | SessionId, field: str = "session_id") -> SessionId:
    if isinstance(value, SessionId):
        return value
    try:
        return SessionId.from_string(value)
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidIdError(field=field) from exc


def parse_request_id(value: str | RequestId, field: str = "request_id") -> RequestId:
    if isinstance(value, RequestId):
        return value
    try:
        return RequestId.from_string(value)
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidIdError(field=field) from exc


def require_session(sessions: SessionStore, session_id: SessionId) -> Session:
    session = sessions.get(session_id)
    if session is None:
        raise SessionNotFoundError(str(session_id))
    return session


def best_effort(step: str, fn: Callable[..., Any], *args: Any, **context: Any) -> bool:
    """Run a side effect whose failure must not undo the caller's write.

    Returns True when the call completed.
    """
    try:
        fn(*args)
    except Exception as exc:
        logger.warning(
            "side_effect_failed",
            step=step,
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )
        return False
    return True
