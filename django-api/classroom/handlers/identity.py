"""Caller identity as asserted by the authenticating gateway."""

from rest_framework.request import Request

from classroom.domain import Actor, Role
from classroom.domain.errors import AuthenticationRequiredError

PARTICIPANT_HEADER = "HTTP_X_PARTICIPANT_ID"
ROLE_HEADER = "HTTP_X_PARTICIPANT_ROLE"


def resolve_actor(request: Request) -> Actor:
    """Build the Actor from X-Participant-Id and X-Participant-Role.

    Raises:
        AuthenticationRequiredError: Either header is missing or the role is unknown.
    """
    participant_id = request.META.get(PARTICIPANT_HEADER, "").strip()
    role_name = request.META.get(ROLE_HEADER, "").strip()
    if not participant_id or not role_name:
        raise AuthenticationRequiredError()
    try:
        role = Role.parse(role_name)
    except ValueError as exc:
        raise AuthenticationRequiredError(f"Unknown role: {role_name}") from exc
    return Actor(participant_id=participant_id, role=role)
