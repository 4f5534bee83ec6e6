from django.contrib import admin

from classroom.models import (
    AttendanceSummary,
    CancellationRequest,
    EndSessionRequest,
    Enrollment,
    NotificationOutbox,
    Session,
    SessionChangeRequest,
    SessionEvent,
)


class EnrollmentInline(admin.TabularInline):
    model = Enrollment
    extra = 1


class SessionEventInline(admin.TabularInline):
    model = SessionEvent
    extra = 0
    readonly_fields = ["event_type", "actor_id", "actor_role", "payload", "created_at"]
    can_delete = False


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = ["title", "status", "scheduled_start", "duration_minutes", "assigned_teacher_id"]
    list_filter = ["status", "batch_type"]
    search_fields = ["title", "assigned_teacher_id", "coordinator_id"]
    inlines = [EnrollmentInline, SessionEventInline]


@admin.register(EndSessionRequest)
class EndSessionRequestAdmin(admin.ModelAdmin):
    list_display = ["session", "requested_by", "status", "created_at", "decided_by"]
    list_filter = ["status"]


@admin.register(CancellationRequest)
class CancellationRequestAdmin(admin.ModelAdmin):
    list_display = ["session", "cancellation_type", "status", "requester_id", "created_at"]
    list_filter = ["cancellation_type", "status"]
    search_fields = ["requester_id"]


@admin.register(SessionChangeRequest)
class SessionChangeRequestAdmin(admin.ModelAdmin):
    list_display = ["session", "request_type", "status", "requester_id", "created_at"]
    list_filter = ["request_type", "status"]


@admin.register(AttendanceSummary)
class AttendanceSummaryAdmin(admin.ModelAdmin):
    list_display = ["session", "participant_id", "participant_role", "status", "join_count"]
    list_filter = ["status", "participant_role"]


@admin.register(NotificationOutbox)
class NotificationOutboxAdmin(admin.ModelAdmin):
    list_display = ["kind", "recipient_id", "status", "attempts", "created_at"]
    list_filter = ["status", "kind"]
