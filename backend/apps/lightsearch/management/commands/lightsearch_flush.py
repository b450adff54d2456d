"""
Remove every posting of a model from the search index.

Usage:
    python manage.py lightsearch_flush blog.Article
"""
from django.core.management.base import BaseCommand

from apps.lightsearch.exceptions import ModelNotSearchable
from apps.lightsearch.hooks import resolve_model
from apps.lightsearch.services import get_search_service


class Command(BaseCommand):
    help = "Delete all search index postings for a model"

    def add_arguments(self, parser):
        parser.add_argument('model', help="Model label, e.g. blog.Article")

    def handle(self, *args, **options):
        name = options['model']
        try:
            name = resolve_model(name)._meta.label
        except ModelNotSearchable:
            # Postings can outlive their model class; flush by the raw name
            self.stdout.write(self.style.WARNING(f"{name} is not an installed model, flushing by name"))

        get_search_service().flush_model(name)
        self.stdout.write(self.style.SUCCESS(f"Flushed search index for {name}"))
