from django.urls import path

from classroom.handlers import (
    AttendanceReportView,
    CancellationView,
    EndRequestView,
    GoLiveView,
    LeaveActionView,
    SessionChangeRequestView,
    SessionDetailView,
    TransportWebhookView,
)

urlpatterns = [
    path("session/<str:session_id>", SessionDetailView.as_view(), name="session-detail"),
    path("session/<str:session_id>/go-live", GoLiveView.as_view(), name="session-go-live"),
    path(
        "session/<str:session_id>/end-request",
        EndRequestView.as_view(),
        name="session-end-request",
    ),
    path(
        "session/<str:session_id>/attendance",
        AttendanceReportView.as_view(),
        name="session-attendance",
    ),
    path(
        "session/<str:session_id>/attendance/leave",
        LeaveActionView.as_view(),
        name="session-attendance-leave",
    ),
    path("cancellations", CancellationView.as_view(), name="cancellations"),
    path("session-requests", SessionChangeRequestView.as_view(), name="session-requests"),
    path("transport/webhook", TransportWebhookView.as_view(), name="transport-webhook"),
]
