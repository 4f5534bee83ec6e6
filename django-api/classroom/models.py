"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/models.py.
"""

import uuid
from enum import Enum

from django.db import models
from django.utils import timezone

from classroom.domain.models import (
    AttendanceEventType,
    AttendanceStatus,
    BatchType,
    CancellationStatus,
    CancellationType,
    ChangeRequestStatus,
    ChangeRequestType,
    EndRequestStatus,
    SessionEventType,
    SessionStatus,
)


def _choices(enum_cls: type[Enum]) -> list[tuple[str, str]]:
    return [(member.value, member.value.replace("_", " ")) for member in enum_cls]


class Session(models.Model):
    """Persistence model for scheduled class sessions."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    status = models.CharField(
        max_length=20, choices=_choices(SessionStatus), default=SessionStatus.SCHEDULED.value
    )
    scheduled_start = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField()
    batch_type = models.CharField(
        max_length=20, choices=_choices(BatchType), default=BatchType.GROUP.value
    )
    assigned_teacher_id = models.CharField(max_length=255)
    coordinator_id = models.CharField(max_length=255, blank=True, null=True)
    academic_operator_id = models.CharField(max_length=255, blank=True, null=True)
    went_live_at = models.DateTimeField(blank=True, null=True)
    ended_at = models.DateTimeField(blank=True, null=True)
    pending_end_request = models.ForeignKey(
        "EndSessionRequest",
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["scheduled_start"]
        indexes = [
            models.Index(fields=["status", "scheduled_start"]),
            models.Index(fields=["assigned_teacher_id"]),
            models.Index(fields=["coordinator_id"]),
        ]

    def __str__(self) -> str:
        return f"{self.title} - {self.scheduled_start}"


class Enrollment(models.Model):
    """Roster link between a session and a student (and their guardian)."""

    session = models.ForeignKey(Session, on_delete=models.CASCADE, related_name="enrollments")
    student_id = models.CharField(max_length=255)
    guardian_id = models.CharField(max_length=255, blank=True, null=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["session", "student_id"], name="uniq_enrollment_student"),
        ]
        indexes = [
            models.Index(fields=["guardian_id"]),
        ]

    def __str__(self) -> str:
        return f"{self.student_id} @ {self.session_id}"


class ScheduleMirror(models.Model):
    """Secondary scheduling record kept in sync on a best-effort basis."""

    session = models.OneToOneField(Session, on_delete=models.CASCADE, related_name="mirror")
    status = models.CharField(max_length=20, choices=_choices(SessionStatus))
    scheduled_start = models.DateTimeField()
    ended_at = models.DateTimeField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"mirror of {self.session_id} ({self.status})"


class SessionEvent(models.Model):
    """Append-only session event ledger."""

    session = models.ForeignKey(Session, on_delete=models.CASCADE, related_name="events")
    event_type = models.CharField(max_length=40, choices=_choices(SessionEventType))
    actor_id = models.CharField(max_length=255, blank=True, null=True)
    actor_role = models.CharField(max_length=40, blank=True, null=True)
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["session", "event_type", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} on {self.session_id}"


class EndSessionRequest(models.Model):
    """A request to end a live session before its scheduled end."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session = models.ForeignKey(Session, on_delete=models.CASCADE, related_name="end_requests")
    requested_by = models.CharField(max_length=255)
    reason = models.TextField(blank=True, default="")
    scheduled_end = models.DateTimeField()
    status = models.CharField(
        max_length=20, choices=_choices(EndRequestStatus), default=EndRequestStatus.PENDING.value
    )
    decided_by = models.CharField(max_length=255, blank=True, null=True)
    decided_by_role = models.CharField(max_length=40, blank=True, null=True)
    decision_reason = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)
    decided_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["session", "-created_at"]),
        ]

    def __str__(self) -> str:
        return f"end request {self.id} ({self.status})"


class CancellationRequest(models.Model):
    """Cancellation case with one decision triple per approval level."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session = models.ForeignKey(
        Session, on_delete=models.CASCADE, related_name="cancellation_requests"
    )
    requester_id = models.CharField(max_length=255)
    requester_role = models.CharField(max_length=40)
    reason = models.TextField(blank=True, default="")
    cancellation_type = models.CharField(max_length=30, choices=_choices(CancellationType))
    status = models.CharField(
        max_length=30,
        choices=_choices(CancellationStatus),
        default=CancellationStatus.PENDING.value,
    )

    coordinator_decision = models.CharField(max_length=20, blank=True, null=True)
    coordinator_approver_id = models.CharField(max_length=255, blank=True, null=True)
    coordinator_decided_at = models.DateTimeField(blank=True, null=True)

    admin_decision = models.CharField(max_length=20, blank=True, null=True)
    admin_approver_id = models.CharField(max_length=255, blank=True, null=True)
    admin_decided_at = models.DateTimeField(blank=True, null=True)

    academic_decision = models.CharField(max_length=20, blank=True, null=True)
    academic_approver_id = models.CharField(max_length=255, blank=True, null=True)
    academic_decided_at = models.DateTimeField(blank=True, null=True)

    hr_decision = models.CharField(max_length=20, blank=True, null=True)
    hr_approver_id = models.CharField(max_length=255, blank=True, null=True)
    hr_decided_at = models.DateTimeField(blank=True, null=True)

    rejection_reason = models.TextField(blank=True, null=True)
    rejected_at_level = models.CharField(max_length=20, blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["session", "status"]),
            models.Index(fields=["requester_id"]),
        ]

    def __str__(self) -> str:
        return f"{self.cancellation_type} cancellation {self.id} ({self.status})"


class SessionChangeRequest(models.Model):
    """Single-step reschedule/cancel request from a student or parent."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session = models.ForeignKey(Session, on_delete=models.CASCADE, related_name="change_requests")
    request_type = models.CharField(max_length=20, choices=_choices(ChangeRequestType))
    requester_id = models.CharField(max_length=255)
    requester_role = models.CharField(max_length=40)
    reason = models.TextField()
    proposed_start = models.DateTimeField(blank=True, null=True)
    status = models.CharField(
        max_length=20,
        choices=_choices(ChangeRequestStatus),
        default=ChangeRequestStatus.PENDING.value,
    )
    reviewed_by = models.CharField(max_length=255, blank=True, null=True)
    reviewed_at = models.DateTimeField(blank=True, null=True)
    rejection_reason = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["session", "status"]),
            models.Index(fields=["requester_id"]),
        ]

    def __str__(self) -> str:
        return f"{self.request_type} request {self.id} ({self.status})"


class AttendanceSummary(models.Model):
    """One presence summary row per (session, participant)."""

    session = models.ForeignKey(Session, on_delete=models.CASCADE, related_name="attendance")
    participant_id = models.CharField(max_length=255)
    participant_role = models.CharField(max_length=40)
    status = models.CharField(max_length=20, choices=_choices(AttendanceStatus))
    first_join_at = models.DateTimeField(blank=True, null=True)
    last_leave_at = models.DateTimeField(blank=True, null=True)
    total_duration_sec = models.PositiveIntegerField(default=0)
    join_count = models.PositiveIntegerField(default=0)
    late = models.BooleanField(default=False)
    late_by_sec = models.PositiveIntegerField(default=0)
    leave_approved = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["first_join_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["session", "participant_id"], name="uniq_attendance_participant"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.participant_id} {self.status} @ {self.session_id}"


class AttendanceEvent(models.Model):
    """Append-only join/leave timeline entry."""

    session = models.ForeignKey(Session, on_delete=models.CASCADE, related_name="attendance_events")
    participant_id = models.CharField(max_length=255)
    participant_role = models.CharField(max_length=40, blank=True, null=True)
    event_type = models.CharField(max_length=20, choices=_choices(AttendanceEventType))
    occurred_at = models.DateTimeField()
    payload = models.JSONField(blank=True, null=True)

    class Meta:
        ordering = ["occurred_at", "id"]
        indexes = [
            models.Index(fields=["session", "participant_id", "occurred_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.participant_id} {self.event_type} @ {self.occurred_at}"


class NotificationOutbox(models.Model):
    """Queued notification awaiting delivery by dispatch_notifications."""

    class Status(models.TextChoices):
        PENDING = "pending"
        SENT = "sent"
        FAILED = "failed"

    recipient_id = models.CharField(max_length=255)
    recipient_role = models.CharField(max_length=40)
    kind = models.CharField(max_length=60)
    session_id = models.UUIDField(blank=True, null=True)
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)
    sent_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["status", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.kind} -> {self.recipient_id} ({self.status})"
