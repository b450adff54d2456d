"""
Posting table for the search index

One row per token occurrence. Duplicate (token, record_id, model) rows are
intentional: the number of copies is the field weight and the query engines
rank records by row count, so there is no unique constraint here.
"""
from django.conf import settings
from django.db import models

from apps.common.models import TimestampedModel


class Posting(TimestampedModel):
    """A token that occurs in one record of one model"""
    token = models.CharField(max_length=191)
    record_id = models.CharField(max_length=191)  # Support UUIDs and string IDs
    model = models.CharField(max_length=191)

    class Meta:
        db_table = getattr(settings, 'LIGHTSEARCH', {}).get('TABLE', 'lightsearch_index')
        indexes = [
            models.Index(fields=['model', 'token'], name='lightsearch_model_token_idx'),
            models.Index(fields=['model', 'record_id'], name='lightsearch_model_record_idx'),
        ]

    def __str__(self):
        return f"{self.model}:{self.record_id}:{self.token}"
