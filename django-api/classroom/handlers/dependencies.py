"""Wires services to the Django stores and configured collaborators."""

from dataclasses import dataclass

from classroom.integrations.transport import build_room_transport
from classroom.services import (
    AttendanceService,
    CancellationService,
    ChangeRequestService,
    EndRequestService,
    EventLogService,
    NotificationService,
    SessionService,
    StakeholderResolver,
)
from classroom.stores.django_store import (
    DjangoAttendanceStore,
    DjangoCancellationStore,
    DjangoChangeRequestStore,
    DjangoEndRequestStore,
    DjangoEventLogStore,
    DjangoNotificationStore,
    DjangoSessionStore,
)
from portal.config import get_config


@dataclass(frozen=True)
class Services:
    sessions: SessionService
    end_requests: EndRequestService
    cancellations: CancellationService
    change_requests: ChangeRequestService
    attendance: AttendanceService


def get_services() -> Services:
    config = get_config()
    session_store = DjangoSessionStore()
    end_request_store = DjangoEndRequestStore()
    events = EventLogService(DjangoEventLogStore())
    notifications = NotificationService(DjangoNotificationStore())
    stakeholders = StakeholderResolver(session_store)
    attendance = AttendanceService(DjangoAttendanceStore(), session_store, events, stakeholders)
    sessions = SessionService(
        sessions=session_store,
        end_requests=end_request_store,
        events=events,
        attendance=attendance,
        notifications=notifications,
        stakeholders=stakeholders,
        transport=build_room_transport(config),
    )
    return Services(
        sessions=sessions,
        end_requests=EndRequestService(
            store=end_request_store,
            sessions=session_store,
            session_service=sessions,
            events=events,
            notifications=notifications,
            stakeholders=stakeholders,
            poll_interval_sec=config.end_request_poll_interval_sec,
            force_end_after_sec=config.force_end_after_sec,
        ),
        cancellations=CancellationService(
            DjangoCancellationStore(), session_store, sessions, events, notifications, stakeholders
        ),
        change_requests=ChangeRequestService(
            DjangoChangeRequestStore(), session_store, sessions, events, notifications, stakeholders
        ),
        attendance=attendance,
    )
