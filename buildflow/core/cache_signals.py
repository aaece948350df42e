"""
Cache invalidation signals
Any change to a tenant row drops the cached reports of its agency
"""
import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .cache_utils import invalidate_agency_cache

logger = logging.getLogger(__name__)


@receiver([post_save, post_delete])
def invalidate_tenant_reports_cache(sender, instance, **kwargs):
    """Invalidate an agency's report cache when one of its tenant rows changes"""
    if sender._meta.app_label not in settings.TENANT_APPS:
        return

    agency_id = getattr(instance, 'agency_id', None)
    if agency_id is None:
        return
    using = kwargs.get('using') or 'default'
    try:
        # after commit, so the cache is not refilled with stale rows
        transaction.on_commit(lambda: invalidate_agency_cache(agency_id), using=using)
    except Exception as e:
        logger.warning(f"Error in invalidate_tenant_reports_cache signal: {e}")
