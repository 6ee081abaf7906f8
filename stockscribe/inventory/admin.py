from django.contrib import admin
from .models import StockMovement


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['product', 'movement_type', 'quantity', 'reason', 'reference', 'created_by', 'created_at']
    list_filter = ['movement_type', 'created_at']
    search_fields = ['product__name', 'product__sku', 'reason', 'reference']
    ordering = ['-created_at']
    list_select_related = ['product', 'created_by']
    # Stock is only kept consistent through the API
    readonly_fields = ['product', 'movement_type', 'quantity', 'created_by', 'created_at', 'updated_at']
