from django.contrib import admin
from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'description', 'created_at']
    search_fields = ['name']
    ordering = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'category', 'supplier', 'unit_price', 'current_stock', 'min_stock', 'unit']
    list_filter = ['category', 'supplier']
    search_fields = ['name', 'sku', 'barcode', 'description']
    ordering = ['name']
    list_select_related = ['category', 'supplier']
