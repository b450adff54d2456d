"""
Tests for LightSearchService (indexing and search orchestration)
"""
from unittest.mock import MagicMock

from django.core.cache import cache
from django.test import TestCase

from apps.lightsearch.conf import build_index_settings
from apps.lightsearch.engines import FuzzyResult, clear_engine_cache
from apps.lightsearch.models import Posting
from apps.lightsearch.services import (
    LightSearchService,
    SearchDocument,
    SearchResults,
    document_for,
    reset_search_service,
)
from tests.searchapp.models import Article, Note

WEIGHTS = {
    'MODEL_FIELD_WEIGHTS': {
        'Article': {'title': 3, 'body': 1, 'internal': 0},
        'searchapp.Article': {'title': 2},
    },
}


class ServiceTestCase(TestCase):

    def setUp(self):
        cache.clear()
        clear_engine_cache()
        reset_search_service()
        self.service = LightSearchService(build_index_settings(WEIGHTS))

    def _postings(self, record_id, model='Article'):
        return list(
            Posting.objects.filter(record_id=str(record_id), model=model)
            .order_by('id')
            .values_list('token', flat=True)
        )


class IndexRecordsTest(ServiceTestCase):
    """Test index_records / remove_records / flush_model"""

    def test_weighted_postings(self):
        written = self.service.index_records([
            SearchDocument('1', 'Article', {'title': 'Ocean voyage', 'body': 'The ocean'}),
        ])

        self.assertEqual(written, 7)
        postings = self._postings(1)
        self.assertEqual(postings.count('ocean'), 4)
        self.assertEqual(postings.count('voyage'), 3)

    def test_zero_weight_field_is_not_indexed(self):
        self.service.index_records([
            SearchDocument('1', 'Article', {'title': 'visible', 'internal': 'hidden secret'}),
        ])
        self.assertEqual(self._postings(1), ['visible'] * 3)

    def test_reindex_replaces_postings(self):
        document = SearchDocument('1', 'Article', {'title': 'first draft'})
        self.service.index_records([document])
        self.service.index_records([document])
        self.assertEqual(len(self._postings(1)), 6)

        self.service.index_records([SearchDocument('1', 'Article', {'body': 'final copy'})])
        self.assertEqual(self._postings(1), ['final', 'copy'])

    def test_remove_records(self):
        document = SearchDocument('1', 'Article', {'title': 'ocean'})
        other = SearchDocument('2', 'Article', {'title': 'ocean'})
        self.service.index_records([document, other])

        self.service.remove_records([document])

        self.assertEqual(self._postings(1), [])
        self.assertEqual(len(self._postings(2)), 3)

    def test_flush_model(self):
        self.service.index_records([
            SearchDocument('1', 'Article', {'title': 'ocean'}),
            SearchDocument('1', 'Comment', {'text': 'ocean'}),
        ])

        self.service.flush_model('Article')

        self.assertFalse(Posting.objects.filter(model='Article').exists())
        self.assertTrue(Posting.objects.filter(model='Comment').exists())

    def test_delete_index_flushes_by_name(self):
        self.service.index_records([SearchDocument('1', 'Article', {'title': 'ocean'})])
        self.service.delete_index('Article')
        self.assertFalse(Posting.objects.exists())

    def test_empty_document_writes_nothing(self):
        self.assertEqual(self.service.index_records([SearchDocument('1', 'Article', {})]), 0)


class ModelInstanceTest(ServiceTestCase):
    """Test indexing Django model instances"""

    def test_document_for_uses_to_search_dict(self):
        article = Article.objects.create(title='Reef', body='Coral reef', tags=['marine'])

        document = document_for(article)

        self.assertEqual(document.record_id, str(article.pk))
        self.assertEqual(document.model, 'searchapp.Article')
        self.assertEqual(document.fields, {'title': 'Reef', 'body': 'Coral reef', 'tags': ['marine']})

    def test_document_for_without_to_search_dict(self):
        note = Note.objects.create(heading='Tides', text='Spring tides')

        document = document_for(note)

        self.assertEqual(document.model, 'searchapp.Note')
        self.assertEqual(document.fields, {'heading': 'Tides', 'text': 'Spring tides'})

    def test_index_and_remove_instances(self):
        article = Article.objects.create(title='Kelp forest', body='', tags=['kelp', 'otter'])

        self.service.index_records([article])
        postings = self._postings(article.pk, 'searchapp.Article')
        self.assertEqual(postings.count('kelp'), 3)
        self.assertEqual(postings.count('forest'), 2)
        self.assertEqual(postings.count('otter'), 1)

        self.service.remove_records([article])
        self.assertEqual(self._postings(article.pk, 'searchapp.Article'), [])

    def test_order_by_ids(self):
        first = Article.objects.create(title='one')
        second = Article.objects.create(title='two')
        third = Article.objects.create(title='three')

        ordered = LightSearchService.order_by_ids(
            Article.objects.all(),
            [str(third.pk), '999999', str(first.pk), str(second.pk)],
        )

        self.assertEqual(ordered, [third, first, second])
        self.assertEqual(LightSearchService.order_by_ids(Article.objects.all(), []), [])


class SearchTest(ServiceTestCase):
    """Test search / paginate against the test database"""

    def setUp(self):
        super().setUp()
        self.service.index_records([
            SearchDocument('1', 'Article', {'title': 'ocean voyage', 'body': 'ocean'}),
            SearchDocument('2', 'Article', {'title': 'ocean', 'body': 'ocean voyage tale'}),
            SearchDocument('3', 'Article', {'title': 'mountain', 'body': 'voyage'}),
        ])

    def test_tied_scores_ordered_by_record_id(self):
        results = self.service.search('ocean', 'Article', limit=10)
        self.assertEqual(results, SearchResults(ids=['1', '2'], hits=2))

    def test_weights_decide_ranking(self):
        # 1: title x3; 2: body x1; 3: body x1
        results = self.service.search('voyage', 'Article')
        self.assertEqual(results.ids, ['1', '2', '3'])
        self.assertEqual(results.hits, 3)

    def test_multi_term(self):
        # 1: 4 + 3, 2: 4 + 1, 3: 1
        results = self.service.search('Ocean VOYAGE!', 'Article')
        self.assertEqual(results.ids, ['1', '2', '3'])

    def test_prefix_query(self):
        self.assertEqual(self.service.search('mount', 'Article').ids, ['3'])

    def test_default_limit(self):
        documents = [
            SearchDocument(f'{n:02d}', 'Tag', {'name': 'buoy'}) for n in range(15)
        ]
        self.service.index_records(documents)

        results = self.service.search('buoy', 'Tag')

        self.assertEqual(len(results.ids), 10)
        self.assertEqual(results.hits, 15)

    def test_paginate(self):
        page_one = self.service.paginate('ocean voyage', 'Article', per_page=2, page=1)
        page_two = self.service.paginate('ocean voyage', 'Article', per_page=2, page=2)

        self.assertEqual(page_one, SearchResults(ids=['1', '2'], hits=3))
        self.assertEqual(page_two, SearchResults(ids=['3'], hits=3))

    def test_stopwords_only_query_is_empty(self):
        self.assertEqual(self.service.search('the and of', 'Article'), SearchResults([], 0))

    def test_other_model_not_searched(self):
        self.assertEqual(self.service.search('ocean', 'Comment'), SearchResults([], 0))


class SearchOrchestrationTest(TestCase):
    """Test engine selection between prefix and fuzzy paths"""

    def setUp(self):
        self.engine = MagicMock()
        self.service = LightSearchService(build_index_settings(), engine=self.engine)

    def test_blank_query_does_not_touch_engine(self):
        for query in ['', '   ', '\n\t', None]:
            with self.subTest(query=query):
                self.assertEqual(self.service.search(query, 'Article'), SearchResults([], 0))
        self.assertEqual(self.engine.mock_calls, [])

    def test_falsy_engine_is_still_used(self):
        engine = MagicMock()
        engine.__bool__.return_value = False
        engine.__len__.return_value = 0

        service = LightSearchService(build_index_settings(), engine=engine)

        self.assertIs(service.engine, engine)
        self.assertEqual(engine.mock_calls, [])

    def test_prefix_path(self):
        self.engine.supports_fuzzy_search.return_value = False
        self.engine.search.return_value = ['3']
        self.engine.count.return_value = 1

        results = self.service.search('ocean ocean tale', 'Article', limit=5, offset=5)

        self.assertEqual(results, SearchResults(ids=['3'], hits=1))
        self.engine.search.assert_called_once_with(['ocean', 'tale'], 'Article', 5, 5)
        self.engine.fuzzy_search.assert_not_called()

    def test_fuzzy_path_uses_total_from_same_query(self):
        self.engine.supports_fuzzy_search.return_value = True
        self.engine.fuzzy_search.return_value = FuzzyResult(ids=['8', '2'], total=12)

        results = self.service.search('ocean', 'Article', limit=2)

        self.assertEqual(results, SearchResults(ids=['8', '2'], hits=12))
        self.engine.fuzzy_search.assert_called_once_with(['ocean'], 'Article', 0.3, 2, 0)
        self.engine.fuzzy_count.assert_not_called()

    def test_fuzzy_path_counts_when_total_unknown(self):
        self.engine.supports_fuzzy_search.return_value = True
        self.engine.fuzzy_search.return_value = FuzzyResult(ids=['8'], total=None)
        self.engine.fuzzy_count.return_value = 4

        results = self.service.search('ocean', 'Article', threshold=0.5)

        self.assertEqual(results, SearchResults(ids=['8'], hits=4))
        self.engine.fuzzy_count.assert_called_once_with(['ocean'], 'Article', 0.5)

    def test_supports_fuzzy_search(self):
        self.engine.supports_fuzzy_search.return_value = True
        self.assertTrue(self.service.supports_fuzzy_search())

    def test_paginate_offset(self):
        self.engine.supports_fuzzy_search.return_value = False
        self.engine.search.return_value = []
        self.engine.count.return_value = 0

        self.service.paginate('ocean', 'Article', per_page=20, page=3)
        self.service.paginate('ocean', 'Article', per_page=20, page=0)

        self.assertEqual(
            [c.args for c in self.engine.search.call_args_list],
            [(['ocean'], 'Article', 20, 40), (['ocean'], 'Article', 20, 0)],
        )
