from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Extended user model with role and contact fields"""
    ROLE_CHOICES = [
        ('admin', 'ผู้ดูแลระบบ'),
        ('manager', 'ผู้จัดการ'),
        ('staff', 'พนักงาน'),
        ('viewer', 'ผู้ดูข้อมูล'),
    ]

    display_name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='staff')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_admin(self):
        return self.role == 'admin' or self.is_superuser or self.is_staff

    class Meta:
        db_table = 'users'


class AppSettings(models.Model):
    """Application-wide settings (single row, id=1)"""
    THEME_CHOICES = [
        ('light', 'Light'),
        ('dark', 'Dark'),
        ('system', 'System'),
    ]

    company_name = models.CharField(max_length=200, default='StockScribe')
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    address = models.TextField(blank=True)
    low_stock_alert = models.BooleanField(default=True)
    email_notifications = models.BooleanField(default=True)
    auto_backup = models.BooleanField(default=False)
    theme = models.CharField(max_length=20, choices=THEME_CHOICES, default='light')
    language = models.CharField(max_length=10, default='th')
    currency = models.CharField(max_length=10, default='THB')
    smtp_host = models.CharField(max_length=200, blank=True)
    smtp_port = models.PositiveIntegerField(default=587)
    smtp_secure = models.BooleanField(default=False)
    smtp_user = models.CharField(max_length=200, blank=True)
    smtp_password = models.CharField(max_length=200, blank=True)
    from_email = models.EmailField(blank=True)
    from_name = models.CharField(max_length=200, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.company_name

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        """Return the settings row, creating it with defaults when missing"""
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj

    class Meta:
        db_table = 'app_settings'
        verbose_name_plural = 'app settings'


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('bulk_delete', 'Bulk Delete'),
        ('stock_in', 'Stock In'),
        ('stock_out', 'Stock Out'),
        ('stock_movement_update', 'Stock Movement Updated'),
        ('stock_movement_delete', 'Stock Movement Deleted'),
        ('budget_request_create', 'Budget Request Created'),
        ('budget_request_update', 'Budget Request Updated'),
        ('budget_request_delete', 'Budget Request Deleted'),
        ('approval', 'Approval Decision'),
        ('access_code_issue', 'Access Code Issued'),
        ('access_code_verify', 'Access Code Verified'),
        ('settings_update', 'Settings Updated'),
        ('sync_push', 'Offline Sync Push'),
        ('email_send', 'Email Sent'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, request number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., SKU, request number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_f6a1b2_idx'),
            models.Index(fields=['action'], name='audit_logs_action_3c9d4e_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_7e2f1a_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_object__5b8c0d_idx'),
        ]
