"""
Create the posting table.

No unique constraint on (token, record_id, model): duplicate rows carry the
field weight.
"""

from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Posting',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('token', models.CharField(max_length=191)),
                ('record_id', models.CharField(max_length=191)),
                ('model', models.CharField(max_length=191)),
            ],
            options={
                'db_table': getattr(settings, 'LIGHTSEARCH', {}).get('TABLE', 'lightsearch_index'),
                'indexes': [
                    models.Index(fields=['model', 'token'], name='lightsearch_model_token_idx'),
                    models.Index(fields=['model', 'record_id'], name='lightsearch_model_record_idx'),
                ],
            },
        ),
    ]
