"""Cache keys shared by the handlers and the invalidation signals."""

END_REQUEST_STATUS_KEY = "classroom:end_request_status:{session_id}"


def end_request_status_key(session_id: str) -> str:
    return END_REQUEST_STATUS_KEY.format(session_id=session_id)
