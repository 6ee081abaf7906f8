import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q, Count
from django.shortcuts import get_object_or_404

from stockscribe.core.cache_utils import SUPPLIERS_LIST_PREFIX, get_cached_list, cache_list, lookup_list_ttl
from stockscribe.core.permissions import IsAdminRole
from stockscribe.core.utils import create_audit_log, model_changes
from .models import Supplier
from .serializers import SupplierSerializer

logger = logging.getLogger(__name__)

SUPPLIER_FIELDS = ['name', 'contact_person', 'email', 'phone', 'address']


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def supplier_list_create(request):
    """List all suppliers or create a new supplier"""
    if request.method == 'GET':
        search = request.query_params.get('search', None)

        cached_data, cache_key = get_cached_list(SUPPLIERS_LIST_PREFIX, {'search': search or ''})
        if cached_data is not None:
            response = Response(cached_data)
            response['Cache-Control'] = 'private, max-age=300, stale-while-revalidate=600'
            return response

        queryset = Supplier.objects.annotate(annotated_product_count=Count('products')).order_by('name')
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(contact_person__icontains=search) |
                Q(phone__icontains=search) |
                Q(email__icontains=search)
            )
        response_data = list(SupplierSerializer(queryset, many=True).data)
        cache_list(cache_key, response_data, lookup_list_ttl())

        response = Response(response_data)
        response['Cache-Control'] = 'private, max-age=300, stale-while-revalidate=600'
        return response
    else:
        serializer = SupplierSerializer(data=request.data)
        if serializer.is_valid():
            supplier = serializer.save()
            create_audit_log(request, 'create', 'Supplier', supplier.id, object_name=supplier.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def supplier_detail(request, pk):
    """Retrieve, update or delete a supplier"""
    supplier = get_object_or_404(Supplier, pk=pk)

    if request.method == 'GET':
        serializer = SupplierSerializer(supplier)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        before = {field: getattr(supplier, field) for field in SUPPLIER_FIELDS}
        serializer = SupplierSerializer(supplier, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            after = {field: getattr(supplier, field) for field in SUPPLIER_FIELDS}
            create_audit_log(request, 'update', 'Supplier', supplier.id,
                             changes=model_changes(before, after, SUPPLIER_FIELDS), object_name=supplier.name)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        product_count = supplier.products.count()
        if product_count > 0:
            return Response({
                'error': f'Cannot delete supplier "{supplier.name}" because it is being used by '
                         f'{product_count} product(s). Please reassign or delete the products first.'
            }, status=status.HTTP_400_BAD_REQUEST)

        supplier_id, supplier_name = supplier.id, supplier.name
        supplier.delete()
        create_audit_log(request, 'delete', 'Supplier', supplier_id, object_name=supplier_name)
        logger.info(f'Supplier "{supplier_name}" (ID: {supplier_id}) deleted')
        return Response({'success': True, 'message': 'Supplier deleted successfully'})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def supplier_delete_all(request):
    """Delete every supplier; products keep their rows with no supplier"""
    deleted, _ = Supplier.objects.all().delete()
    create_audit_log(request, 'bulk_delete', 'Supplier', 'all', changes={'deleted': deleted})
    logger.warning(f"All suppliers deleted by {request.user.username} ({deleted} rows)")
    return Response({'success': True, 'message': 'All suppliers deleted', 'deleted': deleted})
