"""
Index hooks for searchable models.

Keeps the posting table in step with model saves and deletes:
  - post_save   -> reindex the instance (delete its postings, insert new ones)
  - post_delete -> remove the instance's postings

Models listed in LIGHTSEARCH['AUTO_INDEX_MODELS'] are registered when the
app loads; others can call register() themselves. With LIGHTSEARCH['QUEUE']
enabled the work is handed to Celery once the surrounding transaction
commits.
"""
import logging

from django.apps import apps
from django.db import transaction
from django.db.models.signals import post_delete, post_save

from apps.lightsearch.conf import get_index_settings
from apps.lightsearch.exceptions import ModelNotSearchable

logger = logging.getLogger(__name__)


def resolve_model(label: str):
    """Model class for 'app_label.ModelName'."""
    try:
        return apps.get_model(label)
    except (LookupError, ValueError) as e:
        raise ModelNotSearchable(f"'{label}' is not an installed model") from e


def _dispatch_uid(model, action: str) -> str:
    return f"lightsearch_{action}_{model._meta.label_lower}"


def index_instance(sender, instance, **kwargs):
    """post_save receiver: reindex the saved instance."""
    if kwargs.get('raw'):
        # Fixture loading; the row may reference objects not loaded yet
        return

    if get_index_settings().queue:
        from apps.lightsearch.tasks import index_record_task
        label, pk = sender._meta.label, instance.pk
        transaction.on_commit(lambda: index_record_task.delay(label, pk))
        return

    from apps.lightsearch.services import get_search_service
    get_search_service().index_records([instance])


def remove_instance(sender, instance, **kwargs):
    """post_delete receiver: drop the deleted instance's postings."""
    if get_index_settings().queue:
        from apps.lightsearch.tasks import remove_record_task
        label, record_id = sender._meta.label, str(instance.pk)
        transaction.on_commit(lambda: remove_record_task.delay(label, record_id))
        return

    from apps.lightsearch.services import get_search_service
    get_search_service().remove_records([instance])


def register(model) -> None:
    """Keep a model's instances indexed on save and delete."""
    post_save.connect(index_instance, sender=model, dispatch_uid=_dispatch_uid(model, 'index'))
    post_delete.connect(remove_instance, sender=model, dispatch_uid=_dispatch_uid(model, 'remove'))
    logger.debug(f"Search hooks registered for {model._meta.label}")


def unregister(model) -> None:
    post_save.disconnect(sender=model, dispatch_uid=_dispatch_uid(model, 'index'))
    post_delete.disconnect(sender=model, dispatch_uid=_dispatch_uid(model, 'remove'))


def register_configured_models() -> None:
    for label in get_index_settings().auto_index_models:
        register(resolve_model(label))
