from django.apps import AppConfig


class SearchAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tests.searchapp'
    label = 'searchapp'
