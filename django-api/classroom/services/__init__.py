from classroom.services.attendance_service import AttendanceReport, AttendanceService
from classroom.services.cancellation_service import CancellationService
from classroom.services.change_request_service import ChangeRequestListing, ChangeRequestService
from classroom.services.end_request_service import (
    EndRequestOutcome,
    EndRequestService,
    EndRequestStatusView,
)
from classroom.services.event_log import EventLogService
from classroom.services.notifications import (
    DispatchResult,
    NotificationDispatcher,
    NotificationService,
)
from classroom.services.session_service import GoLiveResult, SessionService, SessionView
from classroom.services.stakeholders import StakeholderResolver

__all__ = [
    "AttendanceReport",
    "AttendanceService",
    "CancellationService",
    "ChangeRequestListing",
    "ChangeRequestService",
    "DispatchResult",
    "EndRequestOutcome",
    "EndRequestService",
    "EndRequestStatusView",
    "EventLogService",
    "GoLiveResult",
    "NotificationDispatcher",
    "NotificationService",
    "SessionService",
    "SessionView",
    "StakeholderResolver",
]
