"""HTTP handlers (views) - handle HTTP concerns only.

Handlers:
- Resolve the caller's identity and validate input format
- Call services for business logic
- Map domain errors to HTTP responses
- Never contain business logic
- Never expose internal error details
"""

import hmac
from typing import Any

from django.core.cache import cache
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from classroom.cache import end_request_status_key
from classroom.domain import Role
from classroom.domain.errors import AuthenticationRequiredError, DomainError, ErrorCode
from classroom.handlers.dependencies import get_services
from classroom.handlers.identity import resolve_actor
from classroom.handlers.serializers import (
    AttendanceAggregateSerializer,
    AttendanceEventSerializer,
    AttendanceSummarySerializer,
    CancellationActionSerializer,
    CancellationRequestSerializer,
    EndRequestCreateSerializer,
    EndRequestDecisionSerializer,
    EndSessionRequestSerializer,
    LeaveActionSerializer,
    SessionChangeRequestSerializer,
    SessionRequestActionSerializer,
    SessionSerializer,
    TransportWebhookSerializer,
    validated,
)
from classroom.services import EndRequestStatusView, SessionView
from portal.config import get_config
from portal.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE = {
    ErrorCode.AUTHENTICATION_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.REQUEST_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_FINALIZED: status.HTTP_409_CONFLICT,
    ErrorCode.DUPLICATE_PENDING_REQUEST: status.HTTP_409_CONFLICT,
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_ID: status.HTTP_400_BAD_REQUEST,
}

TRACKED_TRANSPORT_ROLES = frozenset({Role.TEACHER, Role.STUDENT})


def success(data: Any, status_code: int = status.HTTP_200_OK) -> Response:
    return Response({"success": True, "data": data}, status=status_code)


def failure(message: str, code: str, status_code: int) -> Response:
    return Response({"success": False, "error": message, "code": code}, status=status_code)


def session_payload(view: SessionView) -> dict[str, Any]:
    data = dict(SessionSerializer(view.session).data)
    data["stored_status"] = data["status"]
    data["status"] = view.effective_status.value
    return data


def end_request_status_payload(view: EndRequestStatusView) -> dict[str, Any]:
    request = view.request
    return {
        "status": view.status.value,
        "request_id": str(request.id) if request else None,
        "reason": request.reason if request else None,
        "requested_by": request.requested_by if request else None,
        "requested_at": request.created_at.isoformat() if request else None,
        "decided_by": request.decided_by if request else None,
        "decision_reason": request.decision_reason if request else None,
        "poll_interval_sec": view.poll_interval_sec,
        "force_end_after_sec": view.force_end_after_sec,
        "force_end_available_at": (
            view.force_end_available_at.isoformat() if view.force_end_available_at else None
        ),
    }


class ClassroomAPIView(APIView):
    """Base view that turns every failure into a {success: false} envelope."""

    def handle_exception(self, exc: Exception) -> Response:
        if isinstance(exc, DomainError):
            logger.info(
                "request_rejected",
                path=self.request.path,
                method=self.request.method,
                code=exc.code.value,
            )
            return failure(exc.message, exc.code.value, STATUS_BY_CODE[exc.code])
        if isinstance(exc, APIException):
            response = super().handle_exception(exc)
            detail = exc.detail if isinstance(exc.detail, str) else "Invalid request"
            response.data = {"success": False, "error": str(detail), "code": exc.default_code.upper()}
            return response
        logger.exception("unhandled_error", path=self.request.path, method=self.request.method)
        return failure("Internal server error", "INTERNAL_ERROR", status.HTTP_500_INTERNAL_SERVER_ERROR)


class SessionDetailView(ClassroomAPIView):
    """Handler for GET|DELETE /api/v1/session/{session_id}"""

    def get(self, request: Request, session_id: str) -> Response:
        resolve_actor(request)
        view = get_services().sessions.get_session(session_id)
        return success(session_payload(view))

    def delete(self, request: Request, session_id: str) -> Response:
        actor = resolve_actor(request)
        services = get_services()
        services.sessions.end_session(session_id, actor)
        return success(session_payload(services.sessions.get_session(session_id)))


class GoLiveView(ClassroomAPIView):
    """Handler for POST /api/v1/session/{session_id}/go-live"""

    def post(self, request: Request, session_id: str) -> Response:
        actor = resolve_actor(request)
        result = get_services().sessions.go_live(session_id, actor)
        return success(
            {"session": SessionSerializer(result.session).data, "already_live": result.already_live}
        )


class EndRequestView(ClassroomAPIView):
    """Handler for POST|GET|PATCH /api/v1/session/{session_id}/end-request"""

    def post(self, request: Request, session_id: str) -> Response:
        actor = resolve_actor(request)
        data = validated(EndRequestCreateSerializer, request.data)
        outcome = get_services().end_requests.request_end(session_id, actor, data["reason"])
        payload = {
            "outcome": outcome.outcome,
            "session": SessionSerializer(outcome.session).data,
            "request": EndSessionRequestSerializer(outcome.request).data if outcome.request else None,
        }
        code = status.HTTP_201_CREATED if outcome.request else status.HTTP_200_OK
        return success(payload, code)

    def get(self, request: Request, session_id: str) -> Response:
        actor = resolve_actor(request)
        end_requests = get_services().end_requests
        session = end_requests.ensure_can_view(session_id, actor)

        key = end_request_status_key(str(session.id))
        payload = cache.get(key)
        if payload is None:
            payload = end_request_status_payload(end_requests.status(session_id, actor))
            cache.set(key, payload, get_config().cache_ttl_sec)
        return success(payload)

    def patch(self, request: Request, session_id: str) -> Response:
        actor = resolve_actor(request)
        data = validated(EndRequestDecisionSerializer, request.data)
        decided = get_services().end_requests.decide(
            session_id, actor, approve=data["action"] == "approve", reason=data.get("reason")
        )
        return success({"request": EndSessionRequestSerializer(decided).data})


class AttendanceReportView(ClassroomAPIView):
    """Handler for GET /api/v1/session/{session_id}/attendance"""

    def get(self, request: Request, session_id: str) -> Response:
        actor = resolve_actor(request)
        report = get_services().attendance.report(session_id, actor)
        return success(
            {
                "summaries": AttendanceSummarySerializer(report.summaries, many=True).data,
                "events": AttendanceEventSerializer(report.events, many=True).data,
                "aggregate": AttendanceAggregateSerializer(report.aggregate).data,
            }
        )


class LeaveActionView(ClassroomAPIView):
    """Handler for POST /api/v1/session/{session_id}/attendance/leave"""

    def post(self, request: Request, session_id: str) -> Response:
        actor = resolve_actor(request)
        data = validated(LeaveActionSerializer, request.data)
        summary = get_services().attendance.record_leave_action(
            session_id,
            data.get("participant_id") or actor.participant_id,
            data["action"],
            actor,
            data["payload"],
        )
        return success({"summary": AttendanceSummarySerializer(summary).data if summary else None})


class CancellationView(ClassroomAPIView):
    """Handler for GET|POST /api/v1/cancellations"""

    def get(self, request: Request) -> Response:
        actor = resolve_actor(request)
        requests = get_services().cancellations.list_requests(
            actor,
            session_id=request.query_params.get("session_id"),
            status=request.query_params.get("status"),
        )
        return success(
            {
                "requests": CancellationRequestSerializer(requests, many=True).data,
                "count": len(requests),
            }
        )

    def post(self, request: Request) -> Response:
        actor = resolve_actor(request)
        data = validated(CancellationActionSerializer, request.data)
        cancellations = get_services().cancellations
        action = data["action"]
        if action == "request_cancel":
            created = cancellations.request_cancel(data["session_id"], actor, data["reason"])
            return success(
                {"request": CancellationRequestSerializer(created).data}, status.HTTP_201_CREATED
            )
        notes = data.get("notes") or data.get("reason") or None
        if action == "approve":
            updated = cancellations.approve(data["request_id"], actor, notes)
        else:
            updated = cancellations.reject(data["request_id"], actor, notes)
        return success({"request": CancellationRequestSerializer(updated).data})


class SessionChangeRequestView(ClassroomAPIView):
    """Handler for GET|POST /api/v1/session-requests"""

    def get(self, request: Request) -> Response:
        actor = resolve_actor(request)
        listing = get_services().change_requests.list_requests(actor)
        return success(
            {
                "requests": SessionChangeRequestSerializer(listing.requests, many=True).data,
                "counts": listing.counts,
            }
        )

    def post(self, request: Request) -> Response:
        actor = resolve_actor(request)
        data = validated(SessionRequestActionSerializer, request.data)
        change_requests = get_services().change_requests
        action = data["action"]
        if action == "submit":
            created = change_requests.submit(
                data["session_id"],
                actor,
                data["request_type"],
                data.get("reason") or "",
                data.get("proposed_start"),
            )
            return success(
                {"request": SessionChangeRequestSerializer(created).data}, status.HTTP_201_CREATED
            )
        if action == "approve":
            updated = change_requests.approve(data["request_id"], actor, data.get("reason"))
        elif action == "reject":
            updated = change_requests.reject(data["request_id"], actor, data.get("reason"))
        else:
            updated = change_requests.withdraw(data["request_id"], actor)
        return success({"request": SessionChangeRequestSerializer(updated).data})


class TransportWebhookView(ClassroomAPIView):
    """Handler for POST /api/v1/transport/webhook

    Authenticated by the shared X-Transport-Key header rather than a
    participant identity.
    """

    def post(self, request: Request) -> Response:
        expected = get_config().transport_webhook_key
        provided = request.META.get("HTTP_X_TRANSPORT_KEY", "")
        if not expected or not hmac.compare_digest(expected.encode(), provided.encode()):
            raise AuthenticationRequiredError("Invalid transport key")

        data = validated(TransportWebhookSerializer, request.data)
        services = get_services()
        event = data["event"]
        session_id = data["session_id"]

        if event == "room_finished":
            ended = services.sessions.record_transport_room_finished(session_id)
            return success({"event": event, "ended": ended})

        if event not in ("participant_joined", "participant_left"):
            logger.debug("transport_event_ignored", transport_event=event)
            return success({"event": event, "ignored": True})

        participant_id = data.get("participant_id")
        try:
            role = Role.parse(data.get("participant_role") or "")
        except ValueError:
            role = None
        if not participant_id or role not in TRACKED_TRANSPORT_ROLES:
            return success({"event": event, "ignored": True})

        if event == "participant_joined":
            summary = services.attendance.record_join(session_id, participant_id, role.value)
        else:
            summary = services.attendance.record_leave(session_id, participant_id, role.value)
        return success(
            {
                "event": event,
                "summary": AttendanceSummarySerializer(summary).data if summary else None,
            }
        )
