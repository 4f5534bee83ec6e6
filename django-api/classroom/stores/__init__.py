from classroom.stores.interfaces import (
    AttendanceStore,
    CancellationStore,
    ChangeRequestStore,
    EndRequestStore,
    EventLogStore,
    NotificationStore,
    RequestScope,
    SessionStore,
)

__all__ = [
    "AttendanceStore",
    "CancellationStore",
    "ChangeRequestStore",
    "EndRequestStore",
    "EventLogStore",
    "NotificationStore",
    "RequestScope",
    "SessionStore",
]
