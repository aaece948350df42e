"""Current agency database for the running request or task"""
from contextlib import contextmanager
from contextvars import ContextVar

from django.conf import settings

from .db import registry, validate_database_name

_current_database = ContextVar('buildflow_agency_database', default=None)


def get_current_database():
    """Name of the active agency database, or None"""
    return _current_database.get()


def get_current_alias():
    """Django alias for the active agency database, or None"""
    database_name = _current_database.get()
    if not database_name or settings.AGENCY_ISOLATION != 'database':
        return None
    return registry.get_alias(database_name)


def activate(database_name):
    """
    Make ``database_name`` current. Returns a token for ``deactivate``.

    Under database isolation the alias is held until ``deactivate`` so it is
    not evicted while the context uses it.
    """
    if database_name is not None:
        database_name = validate_database_name(database_name)
        if settings.AGENCY_ISOLATION == 'database':
            registry.acquire(database_name)
    return _current_database.set(database_name)


def deactivate(token):
    database_name = _current_database.get()
    _current_database.reset(token)
    if database_name is not None and settings.AGENCY_ISOLATION == 'database':
        registry.release(database_name)


@contextmanager
def use_agency_database(database_name):
    """Run a block of code against an agency database."""
    token = activate(database_name)
    try:
        yield get_current_alias() or 'default'
    finally:
        deactivate(token)


def tenant_alias():
    """Alias that tenant models currently read from and write to"""
    return get_current_alias() or 'default'


def scoped(model, request):
    """Rows of ``model`` that belong to the request's agency"""
    return model.objects.filter(agency_id=request.agency.id)
