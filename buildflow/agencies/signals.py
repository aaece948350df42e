"""
Connection cleanup for evicted agency database aliases
"""
from django.core.signals import request_finished
from django.dispatch import receiver

from .db import registry


@receiver(request_finished)
def close_stale_agency_connections(sender, **kwargs):
    """Close this thread's connections to aliases evicted by other threads"""
    registry.close_stale_connections()
