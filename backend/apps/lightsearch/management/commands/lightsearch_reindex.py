"""
Rebuild the search index for a model.

Usage:
    python manage.py lightsearch_reindex blog.Article
    python manage.py lightsearch_reindex blog.Article --batch-size 200
    python manage.py lightsearch_reindex blog.Article --no-flush    # keep postings of deleted rows
    python manage.py lightsearch_reindex blog.Article --async       # hand off to Celery
"""
from django.core.management.base import BaseCommand, CommandError

from apps.lightsearch.exceptions import ModelNotSearchable
from apps.lightsearch.hooks import resolve_model
from apps.lightsearch.tasks import reindex_model, reindex_model_task


class Command(BaseCommand):
    help = "Rebuild search index postings for every instance of a model"

    def add_arguments(self, parser):
        parser.add_argument('model', help="Model label, e.g. blog.Article")
        parser.add_argument(
            '--batch-size',
            type=int,
            default=None,
            help="Number of records per batch (default: LIGHTSEARCH['BATCH_SIZE'])",
        )
        parser.add_argument(
            '--no-flush',
            action='store_true',
            help="Don't delete the model's postings before reindexing",
        )
        parser.add_argument(
            '--async',
            action='store_true',
            dest='run_async',
            help="Queue the reindex as a Celery task",
        )

    def handle(self, *args, **options):
        try:
            model = resolve_model(options['model'])
        except ModelNotSearchable as e:
            raise CommandError(str(e)) from e

        label = model._meta.label
        batch_size = options['batch_size']
        if batch_size is not None and batch_size < 1:
            raise CommandError("--batch-size must be positive")

        if options['run_async']:
            reindex_model_task.delay(label, batch_size)
            self.stdout.write(self.style.SUCCESS(f"Queued reindex of {label}"))
            return

        self.stdout.write(f"Reindexing {label}...")
        stats = reindex_model(model, batch_size=batch_size, flush=not options['no_flush'])
        self.stdout.write(
            self.style.SUCCESS(
                f"{label} done: {stats['records']} records, {stats['postings']} postings"
            )
        )
