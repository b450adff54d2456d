"""
Tests for tokenization, field weighting and index settings
"""
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from apps.lightsearch.conf import DEFAULT_STOPWORDS, build_index_settings, get_index_settings
from apps.lightsearch.tokenizer import Tokenizer
from apps.lightsearch.weighting import build_weighted_tokens


class TokenizerTest(SimpleTestCase):
    """Test Tokenizer.tokenize"""

    def setUp(self):
        self.tokenizer = Tokenizer()

    def test_tokenize_folds_case_strips_punctuation_and_stopwords(self):
        self.assertEqual(
            self.tokenizer.tokenize("The Quick-Fox2 runs!"),
            ['quick', 'fox2', 'runs'],
        )

    def test_tokenize_drops_short_tokens(self):
        self.assertEqual(self.tokenizer.tokenize("x marks spot 7"), ['marks', 'spot'])

    def test_tokenize_keeps_duplicates_in_order(self):
        self.assertEqual(
            self.tokenizer.tokenize("echo, Echo; ECHO"),
            ['echo', 'echo', 'echo'],
        )

    def test_tokenize_unicode_letters(self):
        self.assertEqual(
            self.tokenizer.tokenize("Crème brûlée / Ünïcode_text"),
            ['crème', 'brûlée', 'ünïcode', 'text'],
        )

    def test_tokenize_blank_and_none(self):
        self.assertEqual(self.tokenizer.tokenize(''), [])
        self.assertEqual(self.tokenizer.tokenize('   \t\n '), [])
        self.assertEqual(self.tokenizer.tokenize(None), [])

    def test_tokenize_scalars(self):
        self.assertEqual(self.tokenizer.tokenize(2024), ['2024'])
        self.assertEqual(self.tokenizer.tokenize(3.75), ['75'])
        self.assertEqual(self.tokenizer.tokenize(True), [])

    def test_custom_min_length(self):
        tokenizer = Tokenizer(min_token_length=4)
        self.assertEqual(tokenizer.tokenize("red blue green"), ['blue', 'green'])

    def test_empty_stopwords_disable_filtering(self):
        tokenizer = Tokenizer(stopwords=[])
        self.assertEqual(tokenizer.tokenize("the cat is here"), ['the', 'cat', 'is', 'here'])

    def test_custom_stopwords_replace_defaults(self):
        tokenizer = Tokenizer(stopwords=['cat'])
        self.assertEqual(tokenizer.tokenize("the cat is here"), ['the', 'is', 'here'])


class ExtractTokensTest(SimpleTestCase):
    """Test Tokenizer.extract_tokens on nested values"""

    def setUp(self):
        self.tokenizer = Tokenizer()

    def test_nested_values_are_flattened_and_deduplicated(self):
        value = {
            'name': 'Deep Sea',
            'tags': ['sea', ['deep', 'trench']],
            'meta': {'region': 'Pacific sea', 'depth': 10994},
        }
        self.assertEqual(
            self.tokenizer.extract_tokens(value),
            ['deep', 'sea', 'trench', 'pacific', '10994'],
        )

    def test_scalar_is_deduplicated(self):
        self.assertEqual(self.tokenizer.extract_tokens("tide tide pool"), ['tide', 'pool'])

    def test_empty_containers(self):
        self.assertEqual(self.tokenizer.extract_tokens([]), [])
        self.assertEqual(self.tokenizer.extract_tokens({}), [])


class WeightedTokensTest(SimpleTestCase):
    """Test build_weighted_tokens"""

    def setUp(self):
        self.tokenizer = Tokenizer()

    def test_weight_repeats_field_tokens(self):
        tokens = build_weighted_tokens(
            {'title': 'ocean voyage', 'body': 'ocean'},
            {'title': 3},
            self.tokenizer,
        )
        self.assertEqual(tokens.count('ocean'), 4)
        self.assertEqual(tokens.count('voyage'), 3)
        self.assertEqual(len(tokens), 2 * 3 + 1)

    def test_unweighted_field_counts_once(self):
        tokens = build_weighted_tokens({'summary': 'brief tale'}, {}, self.tokenizer)
        self.assertEqual(tokens, ['brief', 'tale'])

    def test_non_positive_weight_skips_field(self):
        tokens = build_weighted_tokens(
            {'title': 'kept words', 'secret': 'hidden text', 'legacy': 'old stuff'},
            {'secret': 0, 'legacy': -2},
            self.tokenizer,
        )
        self.assertEqual(tokens, ['kept', 'words'])

    def test_duplicates_within_a_field_collapse_before_weighting(self):
        tokens = build_weighted_tokens({'title': 'wave wave wave'}, {'title': 2}, self.tokenizer)
        self.assertEqual(tokens, ['wave', 'wave'])

    def test_posting_count_is_terms_times_weight(self):
        for weight in range(1, 6):
            tokens = build_weighted_tokens(
                {'title': 'alpha beta gamma'}, {'title': weight}, self.tokenizer
            )
            self.assertEqual(len(tokens), 3 * weight)

    def test_nested_field(self):
        tokens = build_weighted_tokens(
            {'tags': ['coral', {'kind': 'reef coral'}]},
            {'tags': 2},
            self.tokenizer,
        )
        self.assertEqual(tokens, ['coral', 'reef', 'coral', 'reef'])


class IndexSettingsTest(SimpleTestCase):
    """Test LIGHTSEARCH settings parsing"""

    def test_defaults(self):
        index_settings = build_index_settings()
        self.assertEqual(index_settings.table, 'lightsearch_index')
        self.assertEqual(index_settings.min_token_length, 2)
        self.assertEqual(index_settings.stopwords, DEFAULT_STOPWORDS)
        self.assertEqual(index_settings.fuzzy_threshold, 0.3)

    def test_empty_stopwords_list_disables_filtering(self):
        index_settings = build_index_settings({'STOPWORDS': []})
        self.assertEqual(index_settings.stopwords, frozenset())

    def test_custom_stopwords_are_lowercased(self):
        index_settings = build_index_settings({'STOPWORDS': ['Foo', 'BAR']})
        self.assertEqual(index_settings.stopwords, frozenset({'foo', 'bar'}))

    def test_weights_for_model(self):
        index_settings = build_index_settings(
            {'MODEL_FIELD_WEIGHTS': {'blog.Article': {'title': '3', 'body': 1}}}
        )
        self.assertEqual(index_settings.weights_for('blog.Article'), {'title': 3, 'body': 1})
        self.assertEqual(index_settings.weights_for('blog.Comment'), {})

    @override_settings(LIGHTSEARCH={'MIN_TOKEN_LENGTH': 3, 'TABLE': 'custom_index'})
    def test_reads_django_settings(self):
        index_settings = get_index_settings()
        self.assertEqual(index_settings.min_token_length, 3)
        self.assertEqual(index_settings.table, 'custom_index')
        # Missing keys fall back to defaults
        self.assertEqual(index_settings.batch_size, 500)

    def test_invalid_values(self):
        invalid = [
            {'MIN_TOKEN_LENGTH': 0},
            {'FUZZY_THRESHOLD': 1.5},
            {'FUZZY_THRESHOLD': -0.1},
            {'BATCH_SIZE': 0},
            {'MODEL_FIELD_WEIGHTS': ['title']},
            {'MODEL_FIELD_WEIGHTS': {'blog.Article': 'title'}},
            {'MODEL_FIELD_WEIGHTS': {'blog.Article': {'title': 'heavy'}}},
        ]
        for overrides in invalid:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ImproperlyConfigured):
                    build_index_settings(overrides)
