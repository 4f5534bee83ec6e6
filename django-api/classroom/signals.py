"""Django signals for cache invalidation.

Every end-request state change appends to the session event log, so one
receiver on SessionEvent keeps the cached polling payload honest.
"""

from django.core.cache import cache
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from classroom.cache import end_request_status_key
from classroom.models import SessionEvent


@receiver([post_save, post_delete], sender=SessionEvent)
def invalidate_end_request_status(sender, instance, **kwargs):
    """Invalidate the cached end-request status of the event's session."""
    cache.delete(end_request_status_key(str(instance.session_id)))
