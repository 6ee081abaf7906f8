import django_filters
from django.db.models import Q, F

from .models import Product


def _is_true(value):
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes')
    return bool(value)


class ProductFilter(django_filters.FilterSet):
    """Filter for the product list using django-filter"""

    # Searches name, SKU, barcode, description, category and supplier names
    search = django_filters.CharFilter(method='filter_search', label='Search')

    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    supplier = django_filters.NumberFilter(field_name='supplier_id', lookup_expr='exact')

    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')
    out_of_stock = django_filters.CharFilter(method='filter_out_of_stock', label='Out of Stock')

    class Meta:
        model = Product
        fields = ['search', 'category', 'supplier', 'low_stock', 'out_of_stock']

    def filter_search(self, queryset, name, value):
        """
        Multi-word search: every word must match at least one of the
        searchable fields, in any order.
        """
        if not value or not value.strip():
            return queryset

        for word in value.split():
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(sku__icontains=word) |
                Q(barcode__icontains=word) |
                Q(description__icontains=word) |
                Q(category__name__icontains=word) |
                Q(supplier__name__icontains=word)
            )
        return queryset.distinct()

    def filter_low_stock(self, queryset, name, value):
        """Products with some stock left, at or below their minimum"""
        if value is None or value == '' or not _is_true(value):
            return queryset
        return low_stock_queryset(queryset)

    def filter_out_of_stock(self, queryset, name, value):
        if value is None or value == '' or not _is_true(value):
            return queryset
        return out_of_stock_queryset(queryset)


def low_stock_queryset(queryset=None):
    if queryset is None:
        queryset = Product.objects.all()
    return queryset.filter(current_stock__gt=0, current_stock__lte=F('min_stock'))


def out_of_stock_queryset(queryset=None):
    if queryset is None:
        queryset = Product.objects.all()
    return queryset.filter(current_stock__lte=0)
