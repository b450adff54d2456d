from django.apps import AppConfig


class LightSearchConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.lightsearch'
    verbose_name = 'LightSearch'

    def ready(self):
        # Wire save/delete hooks for every model listed in AUTO_INDEX_MODELS.
        from apps.lightsearch import hooks
        hooks.register_configured_models()
