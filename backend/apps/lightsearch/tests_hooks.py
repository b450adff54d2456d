"""
Tests for model hooks, Celery tasks and management commands
"""
from io import StringIO
from unittest.mock import patch

from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings

from apps.lightsearch import hooks
from apps.lightsearch.engines import clear_engine_cache
from apps.lightsearch.exceptions import ModelNotSearchable
from apps.lightsearch.models import Posting
from apps.lightsearch.services import reset_search_service
from apps.lightsearch.tasks import (
    index_record_task,
    reindex_model,
    reindex_model_task,
    remove_record_task,
)
from tests.searchapp.models import Article, Note

LABEL = 'searchapp.Article'


class IndexStateMixin:

    def setUp(self):
        super().setUp()
        cache.clear()
        clear_engine_cache()
        reset_search_service()
        self.addCleanup(reset_search_service)

    def postings_for(self, obj):
        return Posting.objects.filter(record_id=str(obj.pk), model=obj._meta.label)


class HooksTest(IndexStateMixin, TestCase):
    """Test post_save / post_delete indexing"""

    def setUp(self):
        super().setUp()
        hooks.register(Article)
        self.addCleanup(hooks.unregister, Article)

    def test_save_indexes_and_resave_replaces(self):
        article = Article.objects.create(title='Lighthouse keeper')
        self.assertEqual(self.postings_for(article).count(), 2)

        article.title = 'Harbour'
        article.save()
        self.assertEqual(
            list(self.postings_for(article).values_list('token', flat=True)),
            ['harbour'],
        )

    def test_delete_removes_postings(self):
        article = Article.objects.create(title='Lighthouse keeper')
        pk = article.pk

        article.delete()

        self.assertFalse(Posting.objects.filter(record_id=str(pk)).exists())

    def test_register_is_idempotent(self):
        hooks.register(Article)
        article = Article.objects.create(title='Lighthouse')
        self.assertEqual(self.postings_for(article).count(), 1)

    def test_unregistered_model_is_not_indexed(self):
        note = Note.objects.create(heading='Unindexed heading')
        self.assertFalse(self.postings_for(note).exists())

    def test_unregister(self):
        hooks.unregister(Article)
        article = Article.objects.create(title='Lighthouse')
        self.assertFalse(self.postings_for(article).exists())

    @override_settings(LIGHTSEARCH={'QUEUE': True})
    def test_queue_mode_dispatches_after_commit(self):
        with patch('apps.lightsearch.tasks.index_record_task.delay') as index_delay, \
                patch('apps.lightsearch.tasks.remove_record_task.delay') as remove_delay:
            with self.captureOnCommitCallbacks(execute=True):
                article = Article.objects.create(title='Queued')
            pk = article.pk
            with self.captureOnCommitCallbacks(execute=True):
                article.delete()

        index_delay.assert_called_once_with(LABEL, pk)
        remove_delay.assert_called_once_with(LABEL, str(pk))
        self.assertFalse(Posting.objects.exists())

    @override_settings(LIGHTSEARCH={'AUTO_INDEX_MODELS': ['searchapp.Note']})
    def test_register_configured_models(self):
        hooks.register_configured_models()
        self.addCleanup(hooks.unregister, Note)

        note = Note.objects.create(heading='Auto indexed')

        self.assertEqual(self.postings_for(note).count(), 2)

    def test_resolve_model(self):
        self.assertIs(hooks.resolve_model(LABEL), Article)
        for label in ['searchapp.Missing', 'nonsense']:
            with self.subTest(label=label):
                with self.assertRaises(ModelNotSearchable):
                    hooks.resolve_model(label)


@override_settings(LIGHTSEARCH={'MODEL_FIELD_WEIGHTS': {LABEL: {'title': 2}}})
class TasksTest(IndexStateMixin, TestCase):
    """Test Celery task bodies (called directly)"""

    def test_index_record_task(self):
        article = Article.objects.create(title='Tidal pools')

        written = index_record_task(LABEL, article.pk)

        self.assertEqual(written, 4)
        self.assertEqual(self.postings_for(article).count(), 4)

    def test_index_record_task_for_deleted_record_removes_postings(self):
        article = Article.objects.create(title='Tidal pools')
        index_record_task(LABEL, article.pk)
        pk = article.pk
        Article.objects.filter(pk=pk).delete()

        self.assertEqual(index_record_task(LABEL, pk), 0)
        self.assertFalse(Posting.objects.filter(record_id=str(pk)).exists())

    def test_remove_record_task(self):
        article = Article.objects.create(title='Tidal pools')
        index_record_task(LABEL, article.pk)

        remove_record_task(LABEL, str(article.pk))

        self.assertFalse(self.postings_for(article).exists())

    def test_reindex_model_in_batches(self):
        articles = [Article.objects.create(title=f'Buoy number{n}') for n in range(5)]
        # Stale postings for a record that no longer exists
        Posting.objects.create(token='ghost', record_id='999', model=LABEL)

        stats = reindex_model(Article, batch_size=2)

        self.assertEqual(stats, {'records': 5, 'postings': 5 * 2 * 2})
        self.assertFalse(Posting.objects.filter(token='ghost').exists())
        for article in articles:
            self.assertEqual(self.postings_for(article).count(), 4)

    def test_reindex_without_flush_keeps_stale_postings(self):
        Article.objects.create(title='Buoy')
        Posting.objects.create(token='ghost', record_id='999', model=LABEL)

        reindex_model(Article, flush=False)

        self.assertTrue(Posting.objects.filter(token='ghost').exists())

    def test_reindex_model_task(self):
        Article.objects.create(title='Buoy')
        self.assertEqual(reindex_model_task(LABEL), {'records': 1, 'postings': 2})

    def test_unknown_label(self):
        with self.assertRaises(ModelNotSearchable):
            index_record_task('searchapp.Missing', 1)


@override_settings(LIGHTSEARCH={'MODEL_FIELD_WEIGHTS': {LABEL: {'title': 3}}})
class CommandsTest(IndexStateMixin, TestCase):
    """Test lightsearch_* management commands"""

    def test_reindex_command(self):
        Article.objects.create(title='Anchor', body='Chain')
        Article.objects.create(title='Sail', body='Mast')
        out = StringIO()

        call_command('lightsearch_reindex', LABEL, '--batch-size', '1', stdout=out)

        self.assertIn('2 records, 8 postings', out.getvalue())
        self.assertEqual(Posting.objects.filter(model=LABEL).count(), 8)

    def test_reindex_command_rejects_unknown_model(self):
        with self.assertRaises(CommandError):
            call_command('lightsearch_reindex', 'searchapp.Missing', stdout=StringIO())

    def test_reindex_command_rejects_bad_batch_size(self):
        with self.assertRaises(CommandError):
            call_command('lightsearch_reindex', LABEL, '--batch-size', '0', stdout=StringIO())

    def test_reindex_command_async(self):
        out = StringIO()
        with patch('apps.lightsearch.management.commands.lightsearch_reindex.reindex_model_task.delay') as delay:
            call_command('lightsearch_reindex', LABEL, '--async', stdout=out)

        delay.assert_called_once_with(LABEL, None)
        self.assertIn('Queued reindex', out.getvalue())

    def test_flush_command(self):
        Posting.objects.create(token='anchor', record_id='1', model=LABEL)
        Posting.objects.create(token='anchor', record_id='1', model='legacy.Removed')

        call_command('lightsearch_flush', LABEL, stdout=StringIO())
        self.assertFalse(Posting.objects.filter(model=LABEL).exists())

        out = StringIO()
        call_command('lightsearch_flush', 'legacy.Removed', stdout=out)
        self.assertFalse(Posting.objects.exists())
        self.assertIn('flushing by name', out.getvalue())

    def test_status_command(self):
        out = StringIO()
        call_command('lightsearch_status', stdout=out)

        output = out.getvalue()
        self.assertIn('Table:     lightsearch_index', output)
        self.assertIn('Engine:', output)
        self.assertIn('Fuzzy search', output)

    def test_status_command_refresh(self):
        with patch('apps.lightsearch.management.commands.lightsearch_status.invalidate_similarity_cache') as invalidate:
            call_command('lightsearch_status', '--refresh', stdout=StringIO())
        invalidate.assert_called_once_with('default')
