"""
Search service - the only entry point for writing to and querying the index

Writes: record fields -> tokenizer -> weighted tokens -> posting table.
Reads: query string -> tokenizer -> engine for the configured database.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from django.forms.models import model_to_dict

from apps.lightsearch.conf import IndexSettings, get_index_settings
from apps.lightsearch.engines import DatabaseEngine, get_engine
from apps.lightsearch.tokenizer import Tokenizer
from apps.lightsearch.weighting import build_weighted_tokens

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class SearchDocument:
    """One record as the index sees it"""
    record_id: str
    model: str
    fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class SearchResults:
    """Ranked record ids for one page plus the total number of matches"""
    ids: List[str] = field(default_factory=list)
    hits: int = 0


def model_label(model) -> str:
    """'app_label.ModelName' for a model class or instance."""
    return model._meta.label


def document_for(instance) -> SearchDocument:
    """
    Build the SearchDocument for a Django model instance.

    Uses instance.to_search_dict() when the model defines it, otherwise
    every editable field except the primary key.
    """
    if hasattr(instance, 'to_search_dict'):
        fields = instance.to_search_dict()
    else:
        fields = model_to_dict(instance, exclude=[instance._meta.pk.name])
    return SearchDocument(
        record_id=str(instance.pk),
        model=model_label(instance),
        fields=fields,
    )


Record = Union[SearchDocument, Any]


def _as_document(record: Record) -> SearchDocument:
    if isinstance(record, SearchDocument):
        return record
    return document_for(record)


class LightSearchService:
    """
    Indexes records and answers ranked searches.

    Index mutation is not transactional: callers that need readers to
    never see a half-written record wrap index_records in
    transaction.atomic().
    """

    def __init__(
        self,
        index_settings: Optional[IndexSettings] = None,
        engine: Optional[DatabaseEngine] = None,
    ):
        self.settings = index_settings if index_settings is not None else get_index_settings()
        self.tokenizer = Tokenizer.from_settings(self.settings)
        if engine is None:
            engine = get_engine(self.settings.table, self.settings.database)
        self.engine = engine

    # ── Writes ──────────────────────────────────────────────────

    def weighted_tokens(self, document: SearchDocument) -> List[str]:
        return build_weighted_tokens(
            document.fields,
            self.settings.weights_for(document.model),
            self.tokenizer,
        )

    def index_records(self, records: Iterable[Record]) -> int:
        """
        Replace the postings of each record with freshly built ones.

        Returns the number of postings written.
        """
        written = 0
        for record in records:
            document = _as_document(record)
            self.engine.delete_by_record(document.record_id, document.model)
            tokens = self.weighted_tokens(document)
            written += self.engine.insert_many(
                tokens,
                document.record_id,
                document.model,
                batch_size=self.settings.batch_size,
            )
            logger.debug(f"Indexed {document.model}:{document.record_id} ({len(tokens)} postings)")
        return written

    def remove_records(self, records: Iterable[Record]) -> None:
        """Delete the postings of each record."""
        for record in records:
            if isinstance(record, SearchDocument):
                record_id, model = record.record_id, record.model
            else:
                record_id, model = str(record.pk), model_label(record)
            self.engine.delete_by_record(record_id, model)
            logger.debug(f"Removed {model}:{record_id} from index")

    def flush_model(self, model: str) -> None:
        """Delete every posting of a model."""
        self.engine.delete_by_model(model)
        logger.info(f"Flushed search index for {model}")

    def delete_index(self, name: str) -> None:
        self.flush_model(name)

    # ── Reads ───────────────────────────────────────────────────

    def query_terms(self, query: Optional[str]) -> List[str]:
        """Unique query terms in order of appearance."""
        return list(dict.fromkeys(self.tokenizer.tokenize(query or '')))

    def supports_fuzzy_search(self) -> bool:
        return self.engine.supports_fuzzy_search()

    def search(
        self,
        query: Optional[str],
        model: str,
        limit: Optional[int] = None,
        offset: int = 0,
        threshold: Optional[float] = None,
    ) -> SearchResults:
        """
        Ranked ids for one page of results plus the total hit count.

        Args:
            query: Raw query string
            model: Model label the records were indexed under
            limit: Page size (default 10)
            offset: Records to skip
            threshold: Similarity threshold for fuzzy search
                (default LIGHTSEARCH['FUZZY_THRESHOLD'])
        """
        return self._perform_search(query, model, limit or DEFAULT_LIMIT, offset, threshold)

    def paginate(
        self,
        query: Optional[str],
        model: str,
        per_page: int,
        page: int,
        threshold: Optional[float] = None,
    ) -> SearchResults:
        """Results for a 1-based page number."""
        offset = (max(page, 1) - 1) * per_page
        return self._perform_search(query, model, per_page, offset, threshold)

    def _perform_search(
        self,
        query: Optional[str],
        model: str,
        limit: int,
        offset: int,
        threshold: Optional[float],
    ) -> SearchResults:
        terms = self.query_terms(query)
        if not terms:
            return SearchResults(ids=[], hits=0)

        if threshold is None:
            threshold = self.settings.fuzzy_threshold

        # Fuzzy search returns the total in the same query when it can
        if self.engine.supports_fuzzy_search():
            result = self.engine.fuzzy_search(terms, model, threshold, limit, offset)
            total = result.total
            if total is None:
                total = self.engine.fuzzy_count(terms, model, threshold)
            return SearchResults(ids=result.ids, hits=total)

        ids = self.engine.search(terms, model, limit, offset)
        return SearchResults(ids=ids, hits=self.engine.count(terms, model))

    @staticmethod
    def order_by_ids(queryset, ids: List[str]) -> list:
        """
        Load the records for a result page in ranked order.

        Ids whose record no longer exists are skipped.
        """
        if not ids:
            return []

        pk_field = queryset.model._meta.pk
        by_key: Dict[str, Any] = {
            str(obj.pk): obj
            for obj in queryset.filter(pk__in=[pk_field.to_python(i) for i in ids])
        }
        return [by_key[i] for i in ids if i in by_key]


_search_service = None


def get_search_service() -> LightSearchService:
    """Get or create the search service singleton"""
    global _search_service
    if _search_service is None:
        _search_service = LightSearchService()
    return _search_service


def reset_search_service() -> None:
    global _search_service
    _search_service = None
