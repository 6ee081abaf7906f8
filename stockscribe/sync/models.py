from django.conf import settings
from django.db import models


class SyncAction(models.Model):
    """A write queued by an offline client and replayed through the API rules"""
    TYPE_CREATE = 'create'
    TYPE_UPDATE = 'update'
    TYPE_DELETE = 'delete'
    TYPE_CHOICES = [
        (TYPE_CREATE, 'Create'),
        (TYPE_UPDATE, 'Update'),
        (TYPE_DELETE, 'Delete'),
    ]

    TABLE_CHOICES = [
        ('products', 'Products'),
        ('categories', 'Categories'),
        ('suppliers', 'Suppliers'),
        ('movements', 'Movements'),
    ]

    STATUS_APPLIED = 'applied'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_APPLIED, 'Applied'),
        (STATUS_FAILED, 'Failed'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='sync_actions')
    client_id = models.CharField(max_length=100)
    action_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    table = models.CharField(max_length=20, choices=TABLE_CHOICES)
    data = models.JSONField(default=dict, blank=True)
    # Milliseconds since the epoch, as recorded by the client
    client_timestamp = models.BigIntegerField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    result = models.JSONField(null=True, blank=True)
    error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.client_id} {self.action_type} {self.table} ({self.status})"

    def outcome(self):
        outcome = {'id': self.client_id, 'status': self.status}
        if self.status == self.STATUS_APPLIED:
            outcome['result'] = self.result
        else:
            outcome['error'] = self.error
        return outcome

    class Meta:
        db_table = 'sync_actions'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(fields=['user', 'client_id'], name='sync_action_unique_client_id'),
        ]
        indexes = [
            models.Index(fields=['user', 'status'], name='sync_user_status_idx'),
        ]
