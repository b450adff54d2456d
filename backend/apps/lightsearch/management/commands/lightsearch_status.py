"""
Show which search engine is active and whether fuzzy search is available.

Usage:
    python manage.py lightsearch_status
    python manage.py lightsearch_status --refresh    # re-check pg_trgm
"""
from django.core.management.base import BaseCommand

from apps.lightsearch.capabilities import get_similarity_state, invalidate_similarity_cache
from apps.lightsearch.conf import get_index_settings
from apps.lightsearch.engines import get_engine


class Command(BaseCommand):
    help = "Show the active search engine and pg_trgm fuzzy search availability"

    def add_arguments(self, parser):
        parser.add_argument(
            '--refresh',
            action='store_true',
            help="Forget the cached pg_trgm check and probe again",
        )

    def handle(self, *args, **options):
        index_settings = get_index_settings()
        using = index_settings.database

        if options['refresh']:
            invalidate_similarity_cache(using)

        engine = get_engine(index_settings.table, using)
        if options['refresh'] and hasattr(engine, 'refresh_capability'):
            fuzzy = engine.refresh_capability()
        else:
            fuzzy = engine.supports_fuzzy_search()

        self.stdout.write(f"Database:  {using} ({engine.connection.vendor})")
        self.stdout.write(f"Table:     {index_settings.table}")
        self.stdout.write(f"Engine:    {engine.__class__.__name__}")
        if engine.connection.vendor == 'postgresql':
            self.stdout.write(f"pg_trgm:   {get_similarity_state(using).value}")

        if fuzzy:
            self.stdout.write(self.style.SUCCESS('Fuzzy search is available'))
        else:
            self.stdout.write(self.style.WARNING(
                'Fuzzy search is NOT available, using prefix search.\n'
                'On PostgreSQL enable it with: CREATE EXTENSION pg_trgm;'
            ))
