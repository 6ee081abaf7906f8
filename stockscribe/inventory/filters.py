import django_filters

from .models import StockMovement


class StockMovementFilter(django_filters.FilterSet):
    product = django_filters.NumberFilter(field_name='product_id')
    type = django_filters.ChoiceFilter(field_name='movement_type', choices=StockMovement.MOVEMENT_TYPE_CHOICES)
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = StockMovement
        fields = ['product', 'type', 'date_from', 'date_to']
