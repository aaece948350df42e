from django.apps import AppConfig


class AgenciesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'buildflow.agencies'
    label = 'agencies'

    def ready(self):
        """Import signals when app is ready"""
        import buildflow.agencies.signals  # noqa: F401
