"""Control surface of the realtime audio/video transport.

The classroom core only ever tears rooms down; room creation and media
signalling belong to the transport itself.
"""

from abc import ABC, abstractmethod

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from classroom.domain import SessionId
from classroom.integrations.errors import PermanentDeliveryError, TransientDeliveryError
from portal.config import PortalConfig
from portal.logging import get_logger

logger = get_logger(__name__)


class RoomTransport(ABC):
    """Interface for the room control API."""

    @abstractmethod
    def delete_room(self, session_id: SessionId) -> None:
        """Stop the room for a session. A room that is already gone is not an error."""
        ...


class NullRoomTransport(RoomTransport):
    """Used when no room control API is configured."""

    def delete_room(self, session_id: SessionId) -> None:
        logger.debug("room_delete_skipped", session_id=str(session_id), reason="not_configured")


class HttpRoomTransport(RoomTransport):
    """Room control over HTTP with a bearer API key."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_sec: float = 5.0,
        http: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_sec = timeout_sec
        self._http = http or requests.Session()
        self._http.headers.update({"Authorization": f"Bearer {api_key}"})

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(1),
        retry=retry_if_exception_type(TransientDeliveryError),
        reraise=True,
    )
    def delete_room(self, session_id: SessionId) -> None:
        """Delete the room named after the session.

        Raises:
            TransientDeliveryError: Network failure or 5xx, after retries.
            PermanentDeliveryError: Any other non-success response.
        """
        url = f"{self._base_url}/rooms/{session_id}"
        try:
            resp = self._http.delete(url, timeout=self._timeout_sec)
        except requests.RequestException as e:
            logger.warning("room_delete_error", session_id=str(session_id), error=str(e))
            raise TransientDeliveryError(f"Room delete failed: {e}") from e

        if resp.status_code == 404:
            logger.info("room_already_gone", session_id=str(session_id))
            return
        if resp.status_code >= 500:
            raise TransientDeliveryError(f"Room delete returned {resp.status_code}")
        if not resp.ok:
            raise PermanentDeliveryError(f"Room delete returned {resp.status_code}")
        logger.info("room_deleted", session_id=str(session_id))


def build_room_transport(config: PortalConfig) -> RoomTransport:
    if not config.transport_base_url:
        return NullRoomTransport()
    return HttpRoomTransport(
        base_url=config.transport_base_url,
        api_key=config.transport_api_key,
        timeout_sec=config.transport_timeout_sec,
    )
