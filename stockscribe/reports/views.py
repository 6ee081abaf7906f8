import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.cache import cache
from django.db.models import Sum, Count, F, Q, DecimalField, IntegerField, ExpressionWrapper
from django.db.models.functions import TruncDate, Coalesce
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal

from stockscribe.catalog.filters import low_stock_queryset, out_of_stock_queryset
from stockscribe.catalog.models import Product, Category
from stockscribe.parties.models import Supplier
from stockscribe.inventory.models import StockMovement
from stockscribe.budgets.models import BudgetRequest
from stockscribe.core.cache_utils import cached_query, make_cache_key, dashboard_ttl, DASHBOARD_PREFIX, STATS_PREFIX

logger = logging.getLogger('stockscribe.reports')

DEFAULT_DAYS = 30
MAX_DAYS = 365
RECENT_MOVEMENTS = 10

STOCK_VALUE = ExpressionWrapper(F('current_stock') * F('unit_price'),
                               output_field=DecimalField(max_digits=18, decimal_places=2))


def _days_param(request):
    """Parse ?days=, returns (days, error_response)"""
    raw = request.query_params.get('days', None)
    if raw in (None, ''):
        return DEFAULT_DAYS, None
    try:
        days = int(raw)
    except (TypeError, ValueError):
        return None, Response({'error': 'days must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
    if days < 1 or days > MAX_DAYS:
        return None, Response({'error': f'days must be between 1 and {MAX_DAYS}'},
                              status=status.HTTP_400_BAD_REQUEST)
    return days, None


def build_stats():
    products = Product.objects.all()
    total_value = products.aggregate(total=Sum(STOCK_VALUE))['total'] or Decimal('0.00')
    return {
        'total_products': products.count(),
        'total_categories': Category.objects.count(),
        'total_suppliers': Supplier.objects.count(),
        'total_movements': StockMovement.objects.count(),
        'low_stock_items': low_stock_queryset(products).count(),
        'out_of_stock_items': out_of_stock_queryset(products).count(),
        'total_value': float(total_value),
        'pending_budget_requests': BudgetRequest.objects.filter(status=BudgetRequest.STATUS_PENDING).count(),
    }


def movement_totals(since):
    totals = StockMovement.objects.filter(created_at__gte=since).aggregate(
        stock_in=Coalesce(Sum('quantity', filter=Q(movement_type=StockMovement.TYPE_IN)), 0, output_field=IntegerField()),
        stock_out=Coalesce(Sum('quantity', filter=Q(movement_type=StockMovement.TYPE_OUT)), 0, output_field=IntegerField()),
        count=Count('id'),
    )
    return totals


def daily_movements(since):
    rows = StockMovement.objects.filter(
        created_at__gte=since
    ).annotate(
        date=TruncDate('created_at')
    ).values('date').annotate(
        stock_in=Coalesce(Sum('quantity', filter=Q(movement_type=StockMovement.TYPE_IN)), 0, output_field=IntegerField()),
        stock_out=Coalesce(Sum('quantity', filter=Q(movement_type=StockMovement.TYPE_OUT)), 0, output_field=IntegerField()),
        count=Count('id'),
    ).order_by('date')
    return [
        {
            'date': row['date'].isoformat() if row['date'] else None,
            'stock_in': row['stock_in'],
            'stock_out': row['stock_out'],
            'net': row['stock_in'] - row['stock_out'],
            'count': row['count'],
        }
        for row in rows
    ]


@cached_query(cache_ttl=dashboard_ttl, key_prefix=DASHBOARD_PREFIX)
def build_dashboard(days):
    """Everything the dashboard page shows, cached per ``days``"""
    since = timezone.now() - timedelta(days=days)

    categories = Category.objects.annotate(
        product_count=Count('products'),
        stock_value=Coalesce(
            Sum(ExpressionWrapper(F('products__current_stock') * F('products__unit_price'),
                                  output_field=DecimalField(max_digits=18, decimal_places=2))),
            Decimal('0.00'),
            output_field=DecimalField(max_digits=18, decimal_places=2),
        ),
    ).order_by('-product_count', 'name')
    category_distribution = [
        {
            'id': category.id,
            'name': category.name,
            'product_count': category.product_count,
            'stock_value': float(category.stock_value),
        }
        for category in categories
    ]
    uncategorized = Product.objects.filter(category__isnull=True)
    uncategorized_count = uncategorized.count()
    if uncategorized_count:
        uncategorized_value = uncategorized.aggregate(total=Sum(STOCK_VALUE))['total'] or Decimal('0.00')
        category_distribution.append({
            'id': None,
            'name': 'ไม่ระบุหมวดหมู่',
            'product_count': uncategorized_count,
            'stock_value': float(uncategorized_value),
        })

    recent_movements = [
        {
            'id': movement.id,
            'product': movement.product_id,
            'product_name': movement.product.name,
            'movement_type': movement.movement_type,
            'quantity': movement.quantity,
            'reason': movement.reason,
            'created_at': movement.created_at.isoformat(),
        }
        for movement in StockMovement.objects.select_related('product').order_by('-created_at', '-id')[:RECENT_MOVEMENTS]
    ]

    budget_summary = {
        row['status']: {'count': row['count'], 'amount': float(row['amount'] or 0)}
        for row in BudgetRequest.objects.values('status').annotate(count=Count('id'), amount=Sum('amount'))
    }
    for status_value, _label in BudgetRequest.STATUS_CHOICES:
        budget_summary.setdefault(status_value, {'count': 0, 'amount': 0.0})

    return {
        'stats': build_stats(),
        'period': {
            'days': days,
            'from': since.date().isoformat(),
            'to': timezone.now().date().isoformat(),
        },
        'movement_totals': movement_totals(since),
        'category_distribution': category_distribution,
        'recent_movements': recent_movements,
        'budget_summary': budget_summary,
        'generated_at': timezone.now().isoformat(),
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stats(request):
    """Headline counts for the dashboard cards"""
    cache_key = make_cache_key(STATS_PREFIX)
    data = cache.get(cache_key)
    if data is None:
        data = build_stats()
        cache.set(cache_key, data, dashboard_ttl())
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard(request):
    """Dashboard report with date range support (?days=, default 30)"""
    days, error = _days_param(request)
    if error is not None:
        return error
    try:
        data = build_dashboard(days)
    except Exception as e:
        logger.error(f"Error building dashboard: {str(e)}", exc_info=True)
        return Response({'error': 'Could not build dashboard'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def movements_summary(request):
    """Daily stock in / out totals"""
    days, error = _days_param(request)
    if error is not None:
        return error
    since = timezone.now() - timedelta(days=days)
    return Response({
        'period': {
            'days': days,
            'from': since.date().isoformat(),
            'to': timezone.now().date().isoformat(),
        },
        'totals': movement_totals(since),
        'daily': daily_movements(since),
    })
