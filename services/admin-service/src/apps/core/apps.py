from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Aurora Nova Administration'

    def ready(self):
        # Register in-process event subscribers
        from apps.core.events import handlers  # noqa: F401
