"""
Celery tasks for background indexing
"""
import logging
from typing import Optional

from celery import shared_task

from apps.lightsearch.hooks import resolve_model
from apps.lightsearch.services import SearchDocument, get_search_service, model_label

logger = logging.getLogger(__name__)


@shared_task
def index_record_task(label: str, pk) -> int:
    """
    Reindex one record.

    A record deleted before the task ran has its postings removed instead.
    """
    model = resolve_model(label)
    service = get_search_service()

    instance = model._default_manager.filter(pk=pk).first()
    if instance is None:
        logger.info(f"{label}:{pk} no longer exists, removing from index")
        service.remove_records([SearchDocument(record_id=str(pk), model=model_label(model))])
        return 0

    return service.index_records([instance])


@shared_task
def remove_record_task(label: str, record_id: str) -> None:
    model = resolve_model(label)
    get_search_service().remove_records(
        [SearchDocument(record_id=str(record_id), model=model_label(model))]
    )


def reindex_model(model, batch_size: Optional[int] = None, flush: bool = True) -> dict:
    """
    Rebuild the postings of every instance of a model.

    Args:
        model: Model class
        batch_size: Instances loaded per query (default LIGHTSEARCH['BATCH_SIZE'])
        flush: Delete the model's postings first, dropping stale records

    Returns:
        {'records': n, 'postings': n}
    """
    service = get_search_service()
    batch_size = batch_size or service.settings.batch_size
    label = model_label(model)

    if flush:
        service.flush_model(label)

    stats = {'records': 0, 'postings': 0}
    queryset = model._default_manager.order_by('pk')
    last_pk = None

    # Keyset pagination on pk so large tables are never loaded at once
    while True:
        batch_qs = queryset if last_pk is None else queryset.filter(pk__gt=last_pk)
        batch = list(batch_qs[:batch_size])
        if not batch:
            break

        stats['postings'] += service.index_records(batch)
        stats['records'] += len(batch)
        last_pk = batch[-1].pk

        if len(batch) < batch_size:
            break

    logger.info(f"Reindexed {label}: {stats}")
    return stats


@shared_task
def reindex_model_task(label: str, batch_size: Optional[int] = None) -> dict:
    return reindex_model(resolve_model(label), batch_size=batch_size)
