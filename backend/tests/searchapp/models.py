"""
Models used only by the test suite to exercise indexing of real records
"""
from django.db import models


class Article(models.Model):
    title = models.CharField(max_length=255)
    body = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)

    def to_search_dict(self):
        return {'title': self.title, 'body': self.body, 'tags': self.tags}


class Note(models.Model):
    """No to_search_dict(): indexed from its editable fields"""
    heading = models.CharField(max_length=255)
    text = models.TextField(blank=True)
