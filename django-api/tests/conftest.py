"""Pytest configuration and shared fixtures."""

from datetime import timedelta

import pytest
from rest_framework.test import APIClient

from fakes import DEFAULT_ENROLLMENTS, SCHEDULED_START, FakeClock, Harness, new_session

from classroom.domain import BatchType, SessionStatus


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(SCHEDULED_START - timedelta(minutes=5))


@pytest.fixture
def harness(clock) -> Harness:
    return Harness(clock=clock)


@pytest.fixture
def make_session(harness):
    """Add a session to the in-memory store, enrolling the default roster."""

    def factory(
        status: SessionStatus = SessionStatus.SCHEDULED,
        batch_type: BatchType = BatchType.GROUP,
        enrollments=None,
    ):
        session = new_session(SCHEDULED_START, status=status, batch_type=batch_type)
        roster = DEFAULT_ENROLLMENTS if enrollments is None else enrollments
        return harness.session_store.add(session, roster)

    return factory


@pytest.fixture
def webhook_key(monkeypatch):
    """Configure the transport webhook key for the duration of a test."""
    from portal.config import get_config

    monkeypatch.setenv("PORTAL_TRANSPORT_WEBHOOK_KEY", "transport-secret")
    get_config.cache_clear()
    yield "transport-secret"
    get_config.cache_clear()


@pytest.fixture
def create_db_session(db):
    """Create a persisted session with the default roster and a schedule mirror."""
    from django.utils import timezone

    from classroom import models as orm

    def factory(
        status: SessionStatus = SessionStatus.SCHEDULED,
        batch_type: BatchType = BatchType.GROUP,
        scheduled_start=None,
        duration_minutes: int = 60,
    ) -> orm.Session:
        start = scheduled_start or timezone.now() - timedelta(minutes=10)
        row = orm.Session.objects.create(
            title="Algebra II",
            status=status.value,
            scheduled_start=start,
            duration_minutes=duration_minutes,
            batch_type=batch_type.value,
            assigned_teacher_id="teacher@school.test",
            coordinator_id="coordinator@school.test",
            academic_operator_id="academic@school.test",
            went_live_at=start if status is SessionStatus.LIVE else None,
        )
        for enrollment in DEFAULT_ENROLLMENTS:
            orm.Enrollment.objects.create(
                session=row, student_id=enrollment.student_id, guardian_id=enrollment.guardian_id
            )
        orm.ScheduleMirror.objects.create(session=row, status=row.status, scheduled_start=start)
        return row

    return factory
