from classroom.handlers.views import (
    AttendanceReportView,
    CancellationView,
    EndRequestView,
    GoLiveView,
    LeaveActionView,
    SessionChangeRequestView,
    SessionDetailView,
    TransportWebhookView,
)

__all__ = [
    "AttendanceReportView",
    "CancellationView",
    "EndRequestView",
    "GoLiveView",
    "LeaveActionView",
    "SessionChangeRequestView",
    "SessionDetailView",
    "TransportWebhookView",
]
