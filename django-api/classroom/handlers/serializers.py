"""Serializers for request input and domain model output."""

from typing import Any

from rest_framework import serializers

from classroom.domain.errors import ValidationError


def validated(serializer_cls: type[serializers.Serializer], data: Any) -> dict[str, Any]:
    """Validate request input, raising the domain ValidationError on failure."""
    serializer = serializer_cls(data=data)
    if not serializer.is_valid():
        field, messages = next(iter(serializer.errors.items()))
        message = messages[0] if isinstance(messages, list) and messages else str(messages)
        if field == "non_field_errors":
            raise ValidationError(str(message))
        raise ValidationError(f"{field}: {message}", field=field)
    return serializer.validated_data


# Input


class EndRequestCreateSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=2000)


class EndRequestDecisionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["approve", "deny"])
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)


class LeaveActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["leave_request", "leave_approved", "leave_denied"])
    participant_id = serializers.CharField(required=False, max_length=255)
    payload = serializers.DictField(required=False, default=dict)


class CancellationActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["request_cancel", "approve", "reject"])
    session_id = serializers.CharField(required=False)
    request_id = serializers.CharField(required=False)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if attrs["action"] == "request_cancel":
            if not attrs.get("session_id"):
                raise serializers.ValidationError("session_id is required for request_cancel")
        elif not attrs.get("request_id"):
            raise serializers.ValidationError(f"request_id is required for {attrs['action']}")
        return attrs


class SessionRequestActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["submit", "approve", "reject", "withdraw"])
    session_id = serializers.CharField(required=False)
    request_id = serializers.CharField(required=False)
    request_type = serializers.CharField(required=False)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    proposed_start = serializers.DateTimeField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs["action"] == "submit":
            if not attrs.get("session_id"):
                raise serializers.ValidationError("session_id is required for submit")
            if not attrs.get("request_type"):
                raise serializers.ValidationError("request_type is required for submit")
        elif not attrs.get("request_id"):
            raise serializers.ValidationError(f"request_id is required for {attrs['action']}")
        return attrs


class TransportWebhookSerializer(serializers.Serializer):
    event = serializers.CharField(max_length=60)
    session_id = serializers.CharField()
    participant_id = serializers.CharField(required=False, max_length=255)
    participant_role = serializers.CharField(required=False, max_length=40)


# Output


class SessionSerializer(serializers.Serializer):
    """Serializer for Session domain model."""

    id = serializers.CharField()
    title = serializers.CharField()
    status = serializers.CharField(source="status.value")
    scheduled_start = serializers.DateTimeField()
    scheduled_end = serializers.DateTimeField()
    duration_minutes = serializers.IntegerField()
    batch_type = serializers.CharField(source="batch_type.value")
    assigned_teacher_id = serializers.CharField()
    coordinator_id = serializers.CharField(allow_null=True)
    academic_operator_id = serializers.CharField(allow_null=True)
    went_live_at = serializers.DateTimeField(allow_null=True)
    ended_at = serializers.DateTimeField(allow_null=True)
    pending_end_request_id = serializers.CharField(allow_null=True)


class EndSessionRequestSerializer(serializers.Serializer):
    """Serializer for EndSessionRequest domain model."""

    id = serializers.CharField()
    session_id = serializers.CharField()
    requested_by = serializers.CharField()
    reason = serializers.CharField()
    scheduled_end = serializers.DateTimeField()
    status = serializers.CharField(source="status.value")
    created_at = serializers.DateTimeField()
    decided_by = serializers.CharField(allow_null=True)
    decided_by_role = serializers.CharField(allow_null=True)
    decision_reason = serializers.CharField(allow_null=True)
    decided_at = serializers.DateTimeField(allow_null=True)


class CancellationRequestSerializer(serializers.Serializer):
    """Serializer for CancellationRequest domain model."""

    id = serializers.CharField()
    session_id = serializers.CharField()
    requester_id = serializers.CharField()
    requester_role = serializers.CharField(source="requester_role.value")
    reason = serializers.CharField()
    cancellation_type = serializers.CharField(source="cancellation_type.value")
    status = serializers.CharField(source="status.value")
    created_at = serializers.DateTimeField()
    decisions = serializers.SerializerMethodField()
    rejection_reason = serializers.CharField(allow_null=True)
    rejected_at_level = serializers.CharField(allow_null=True)

    def get_decisions(self, obj) -> dict[str, dict[str, Any]]:
        return {
            level: {
                "decision": decision.decision,
                "approver_id": decision.approver_id,
                "decided_at": decision.decided_at.isoformat() if decision.decided_at else None,
            }
            for level, decision in obj.decisions.items()
        }


class SessionChangeRequestSerializer(serializers.Serializer):
    """Serializer for SessionChangeRequest domain model."""

    id = serializers.CharField()
    session_id = serializers.CharField()
    request_type = serializers.CharField(source="request_type.value")
    requester_id = serializers.CharField()
    requester_role = serializers.CharField(source="requester_role.value")
    reason = serializers.CharField()
    status = serializers.CharField(source="status.value")
    created_at = serializers.DateTimeField()
    proposed_start = serializers.DateTimeField(allow_null=True)
    reviewed_by = serializers.CharField(allow_null=True)
    reviewed_at = serializers.DateTimeField(allow_null=True)
    rejection_reason = serializers.CharField(allow_null=True)


class AttendanceSummarySerializer(serializers.Serializer):
    """Serializer for AttendanceSummary domain model."""

    participant_id = serializers.CharField()
    participant_role = serializers.CharField()
    status = serializers.CharField(source="status.value")
    first_join_at = serializers.DateTimeField(allow_null=True)
    last_leave_at = serializers.DateTimeField(allow_null=True)
    total_duration_sec = serializers.IntegerField()
    join_count = serializers.IntegerField()
    late = serializers.BooleanField()
    late_by_sec = serializers.IntegerField()
    leave_approved = serializers.BooleanField()


class AttendanceEventSerializer(serializers.Serializer):
    """Serializer for AttendanceEvent domain model."""

    participant_id = serializers.CharField()
    participant_role = serializers.CharField(allow_null=True)
    event_type = serializers.CharField(source="event_type.value")
    occurred_at = serializers.DateTimeField()
    payload = serializers.DictField(allow_null=True)


class AttendanceAggregateSerializer(serializers.Serializer):
    total_students = serializers.IntegerField()
    present = serializers.IntegerField()
    late = serializers.IntegerField()
    absent = serializers.IntegerField()
    left_early = serializers.IntegerField()
    avg_duration_sec = serializers.IntegerField()
