from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone


class AccountCode(models.Model):
    """Budget account codes a request is charged to"""
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.code} - {self.name}"

    class Meta:
        db_table = 'account_codes'
        ordering = ['code']


class Requester(models.Model):
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    department = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'requesters'
        ordering = ['name']


class Approver(models.Model):
    """People allowed to decide budget requests through an emailed access code"""
    name = models.CharField(max_length=200)
    email = models.EmailField(unique=True)
    department = models.CharField(max_length=200, blank=True)
    position = models.CharField(max_length=200, blank=True)
    # Comma separated addresses copied on decision notifications
    cc_emails = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} <{self.email}>"

    def save(self, *args, **kwargs):
        self.email = (self.email or '').strip().lower()
        super().save(*args, **kwargs)

    @property
    def cc_list(self):
        return [email.strip() for email in (self.cc_emails or '').split(',') if email.strip()]

    def summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'department': self.department,
            'position': self.position,
        }

    class Meta:
        db_table = 'approvers'
        ordering = ['name']


class BudgetRequest(models.Model):
    """Request to spend an account-code budget on a list of materials"""
    STATUS_PENDING = 'PENDING'
    STATUS_APPROVED = 'APPROVED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'รออนุมัติ'),
        (STATUS_APPROVED, 'อนุมัติ'),
        (STATUS_REJECTED, 'ไม่อนุมัติ'),
    ]

    request_no = models.CharField(max_length=50, unique=True)
    requester = models.CharField(max_length=200)
    request_date = models.DateField(default=timezone.localdate)
    account_code = models.CharField(max_length=50)
    account_name = models.CharField(max_length=255, blank=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    note = models.TextField(blank=True)
    # [{"name": ..., "quantity": ..., "unit": ..., "unit_price": ...}]
    material_list = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    approved_by = models.CharField(max_length=200, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='budget_requests')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.request_no

    @property
    def is_pending(self):
        return self.status == self.STATUS_PENDING

    @property
    def material_total(self):
        total = Decimal('0')
        for item in self.material_list or []:
            try:
                total += Decimal(str(item.get('quantity') or 0)) * Decimal(str(item.get('unit_price') or 0))
            except (ArithmeticError, ValueError, AttributeError):
                continue
        return total

    class Meta:
        db_table = 'budget_requests'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['status'], name='budget_req_status_idx'),
            models.Index(fields=['-created_at'], name='budget_req_created_idx'),
        ]


class Approval(models.Model):
    """Decision taken on a budget request"""
    DECISION_CHOICES = [
        (BudgetRequest.STATUS_APPROVED, 'อนุมัติ'),
        (BudgetRequest.STATUS_REJECTED, 'ไม่อนุมัติ'),
    ]

    request = models.ForeignKey(BudgetRequest, on_delete=models.CASCADE, related_name='approvals')
    decision = models.CharField(max_length=20, choices=DECISION_CHOICES)
    remark = models.TextField(blank=True)
    approver_name = models.CharField(max_length=200)
    approver = models.ForeignKey(Approver, on_delete=models.SET_NULL, null=True, blank=True, related_name='approvals')
    decided_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='approvals')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.request_id} {self.decision} by {self.approver_name}"

    class Meta:
        db_table = 'approvals'
        ordering = ['-created_at', '-id']


class ApprovalLog(models.Model):
    ACTION_APPROVAL_PROCESSED = 'APPROVAL_PROCESSED'

    request = models.ForeignKey(BudgetRequest, on_delete=models.CASCADE, related_name='approval_logs')
    action = models.CharField(max_length=50, default=ACTION_APPROVAL_PROCESSED)
    approver_name = models.CharField(max_length=200)
    decision = models.CharField(max_length=20)
    remark = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'approval_logs'
        ordering = ['-created_at', '-id']


class AccessCode(models.Model):
    """One-time code emailed to an approver, one row per email"""
    email = models.EmailField(unique=True)
    code = models.CharField(max_length=12)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now=True)

    @property
    def is_expired(self):
        return self.expires_at <= timezone.now()

    class Meta:
        db_table = 'access_codes'
