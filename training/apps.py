from django.apps import AppConfig


class TrainingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'training'
    verbose_name = 'Training'

    def ready(self):
        # Import signals to register them
        from . import signals  # noqa
