import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SyncAction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('client_id', models.CharField(max_length=100)),
                ('action_type', models.CharField(choices=[('create', 'Create'), ('update', 'Update'), ('delete', 'Delete')], max_length=10)),
                ('table', models.CharField(choices=[('products', 'Products'), ('categories', 'Categories'), ('suppliers', 'Suppliers'), ('movements', 'Movements')], max_length=20)),
                ('data', models.JSONField(blank=True, default=dict)),
                ('client_timestamp', models.BigIntegerField(blank=True, null=True)),
                ('status', models.CharField(choices=[('applied', 'Applied'), ('failed', 'Failed')], max_length=10)),
                ('result', models.JSONField(blank=True, null=True)),
                ('error', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sync_actions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'sync_actions',
                'ordering': ['-created_at', '-id'],
                'indexes': [models.Index(fields=['user', 'status'], name='sync_user_status_idx')],
                'constraints': [models.UniqueConstraint(fields=('user', 'client_id'), name='sync_action_unique_client_id')],
            },
        ),
    ]
