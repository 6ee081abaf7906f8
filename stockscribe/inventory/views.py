import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404

from stockscribe.catalog.filters import low_stock_queryset, out_of_stock_queryset
from stockscribe.catalog.models import Product
from stockscribe.catalog.serializers import ProductSerializer
from stockscribe.core.cache_signals import suspend_cache_signals, invalidate_all_caches
from stockscribe.core.permissions import IsAdminRole
from stockscribe.core.utils import create_audit_log, model_changes
from . import services
from .filters import StockMovementFilter
from .models import StockMovement
from .serializers import StockMovementSerializer

logger = logging.getLogger(__name__)

MOVEMENT_FIELDS = ['product_id', 'movement_type', 'quantity', 'reason', 'reference', 'notes']


def _snapshot(movement):
    return {field: getattr(movement, field) for field in MOVEMENT_FIELDS}


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def movement_list_create(request):
    """List stock movements (newest first) or record a new movement"""
    if request.method == 'GET':
        queryset = StockMovement.objects.select_related('product', 'created_by').order_by('-created_at', '-id')
        filterset = StockMovementFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return Response(StockMovementSerializer(filterset.qs, many=True).data)
    else:
        serializer = StockMovementSerializer(data=request.data)
        if serializer.is_valid():
            movement = serializer.save(created_by=request.user)
            product = movement.product
            create_audit_log(
                request,
                'stock_in' if movement.movement_type == StockMovement.TYPE_IN else 'stock_out',
                'StockMovement', movement.id,
                changes={
                    'product_id': product.id,
                    'quantity': movement.quantity,
                    'reason': movement.reason,
                    'resulting_stock': product.current_stock,
                },
                object_name=product.name,
                object_reference=movement.reference or product.sku,
            )
            return Response(StockMovementSerializer(movement).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def movement_detail(request, pk):
    """Retrieve, update or delete a stock movement; stock follows every change"""
    movement = get_object_or_404(StockMovement.objects.select_related('product', 'created_by'), pk=pk)

    if request.method == 'GET':
        return Response(StockMovementSerializer(movement).data)
    elif request.method in ('PUT', 'PATCH'):
        before = _snapshot(movement)
        serializer = StockMovementSerializer(movement, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            movement = serializer.save()
            create_audit_log(request, 'stock_movement_update', 'StockMovement', movement.id,
                             changes=model_changes(before, _snapshot(movement), MOVEMENT_FIELDS),
                             object_name=movement.product.name,
                             object_reference=movement.reference or movement.product.sku)
            return Response(StockMovementSerializer(movement).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        movement_id = movement.id
        before = _snapshot(movement)
        product = services.delete_movement(movement)
        create_audit_log(request, 'stock_movement_delete', 'StockMovement', movement_id,
                         changes={**before, 'resulting_stock': product.current_stock},
                         object_name=product.name, object_reference=product.sku)
        return Response({
            'success': True,
            'message': 'Movement deleted successfully',
            'product_stock': product.current_stock,
        })


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def movement_delete_all(request):
    """Remove the whole movement history; product stock is left as it is"""
    with suspend_cache_signals():
        count = StockMovement.objects.count()
        StockMovement.objects.all().delete()
    invalidate_all_caches()
    create_audit_log(request, 'bulk_delete', 'StockMovement', 'all', changes={'deleted': count})
    logger.warning(f"All stock movements deleted by {request.user.username} ({count} rows)")
    return Response({'success': True, 'message': 'All movements deleted', 'deleted': count})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def low_stock_products(request):
    """Products that still have stock but are at or below their minimum"""
    queryset = low_stock_queryset(Product.objects.select_related('category', 'supplier')).order_by('current_stock', 'name')
    return Response(ProductSerializer(queryset, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def out_of_stock_products(request):
    queryset = out_of_stock_queryset(Product.objects.select_related('category', 'supplier')).order_by('name')
    return Response(ProductSerializer(queryset, many=True).data)
