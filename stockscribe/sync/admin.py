from django.contrib import admin
from .models import SyncAction


@admin.register(SyncAction)
class SyncActionAdmin(admin.ModelAdmin):
    list_display = ['client_id', 'user', 'action_type', 'table', 'status', 'created_at']
    list_filter = ['status', 'action_type', 'table']
    search_fields = ['client_id', 'user__username', 'error']
    ordering = ['-created_at']
    list_select_related = ['user']
    readonly_fields = ['user', 'client_id', 'action_type', 'table', 'data', 'client_timestamp', 'status',
                       'result', 'error', 'created_at', 'updated_at']
