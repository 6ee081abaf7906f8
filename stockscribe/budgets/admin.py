from django.contrib import admin
from .models import AccountCode, Requester, Approver, BudgetRequest, Approval, ApprovalLog, AccessCode


@admin.register(AccountCode)
class AccountCodeAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']
    ordering = ['code']


@admin.register(Requester)
class RequesterAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'department', 'is_active']
    list_filter = ['is_active', 'department']
    search_fields = ['name', 'email']


@admin.register(Approver)
class ApproverAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'department', 'position', 'is_active']
    list_filter = ['is_active', 'department']
    search_fields = ['name', 'email']


class ApprovalInline(admin.TabularInline):
    model = Approval
    extra = 0
    readonly_fields = ['decision', 'remark', 'approver_name', 'approver', 'decided_by', 'created_at']
    can_delete = False


@admin.register(BudgetRequest)
class BudgetRequestAdmin(admin.ModelAdmin):
    list_display = ['request_no', 'requester', 'request_date', 'account_code', 'amount', 'status', 'approved_by']
    list_filter = ['status', 'request_date']
    search_fields = ['request_no', 'requester', 'account_code', 'account_name']
    ordering = ['-created_at']
    inlines = [ApprovalInline]


@admin.register(ApprovalLog)
class ApprovalLogAdmin(admin.ModelAdmin):
    list_display = ['request', 'action', 'approver_name', 'decision', 'created_at']
    list_filter = ['decision', 'action']
    readonly_fields = ['request', 'action', 'approver_name', 'decision', 'remark', 'created_at']


@admin.register(AccessCode)
class AccessCodeAdmin(admin.ModelAdmin):
    list_display = ['email', 'expires_at', 'created_at']
    exclude = ['code']
