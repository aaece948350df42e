from django.conf import settings

from .context import get_current_alias


def is_tenant_app(app_label):
    return app_label in settings.TENANT_APPS


class AgencyDatabaseRouter:
    """
    Sends models of tenant apps to the active agency database.

    With row isolation every model lives in ``default`` and this router stays
    out of the way.
    """

    def _database_isolation(self):
        return settings.AGENCY_ISOLATION == 'database'

    def db_for_read(self, model, **hints):
        if self._database_isolation() and is_tenant_app(model._meta.app_label):
            return get_current_alias() or 'default'
        return 'default'

    def db_for_write(self, model, **hints):
        return self.db_for_read(model, **hints)

    def allow_relation(self, obj1, obj2, **hints):
        if obj1._state.db and obj2._state.db:
            return obj1._state.db == obj2._state.db
        return None

    def allow_migrate(self, db, app_label, model_name=None, **hints):
        if not self._database_isolation():
            return db == 'default'
        if is_tenant_app(app_label):
            return db != 'default'
        return db == 'default'
