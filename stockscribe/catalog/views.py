import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q, Count
from django.shortcuts import get_object_or_404

from stockscribe.core.cache_utils import (
    PRODUCTS_LIST_PREFIX, CATEGORIES_LIST_PREFIX, get_cached_list, cache_list,
    products_list_ttl, lookup_list_ttl,
)
from stockscribe.core.permissions import IsAdminRole
from stockscribe.core.utils import create_audit_log, model_changes
from .filters import ProductFilter
from .models import Category, Product
from .serializers import CategorySerializer, ProductSerializer, MaterialSerializer

logger = logging.getLogger(__name__)

CACHE_CONTROL = 'private, max-age=300, stale-while-revalidate=600'
CATEGORY_FIELDS = ['name', 'description']
PRODUCT_FIELDS = [
    'name', 'sku', 'description', 'category_id', 'supplier_id', 'unit_price', 'current_stock',
    'min_stock', 'max_stock', 'unit', 'location', 'barcode'
]


def _snapshot(obj, fields):
    return {field: getattr(obj, field) for field in fields}


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List all categories or create a new category"""
    if request.method == 'GET':
        search = request.query_params.get('search', None)

        cached_data, cache_key = get_cached_list(CATEGORIES_LIST_PREFIX, {'search': search or ''})
        if cached_data is not None:
            response = Response(cached_data)
            response['Cache-Control'] = CACHE_CONTROL
            return response

        queryset = Category.objects.annotate(annotated_product_count=Count('products')).order_by('name')
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(description__icontains=search))
        response_data = list(CategorySerializer(queryset, many=True).data)
        cache_list(cache_key, response_data, lookup_list_ttl())

        response = Response(response_data)
        response['Cache-Control'] = CACHE_CONTROL
        return response
    else:
        serializer = CategorySerializer(data=request.data)
        if serializer.is_valid():
            category = serializer.save()
            create_audit_log(request, 'create', 'Category', category.id, object_name=category.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        return Response(CategorySerializer(category).data)
    elif request.method in ('PUT', 'PATCH'):
        before = _snapshot(category, CATEGORY_FIELDS)
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request, 'update', 'Category', category.id,
                             changes=model_changes(before, _snapshot(category, CATEGORY_FIELDS), CATEGORY_FIELDS),
                             object_name=category.name)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        product_count = category.products.count()
        if product_count > 0:
            return Response({
                'error': f'Cannot delete category "{category.name}" because it is being used by '
                         f'{product_count} product(s). Please reassign or delete the products first.'
            }, status=status.HTTP_400_BAD_REQUEST)

        category_id, category_name = category.id, category.name
        category.delete()
        create_audit_log(request, 'delete', 'Category', category_id, object_name=category_name)
        logger.info(f'Category "{category_name}" (ID: {category_id}) deleted')
        return Response({'success': True, 'message': 'Category deleted successfully'})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def category_delete_all(request):
    """Delete every category; products keep their rows with no category"""
    count = Category.objects.count()
    Category.objects.all().delete()
    create_audit_log(request, 'bulk_delete', 'Category', 'all', changes={'deleted': count})
    logger.warning(f"All categories deleted by {request.user.username} ({count} rows)")
    return Response({'success': True, 'message': 'All categories deleted', 'deleted': count})


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List products (filtered with django-filter) or create a new product"""
    if request.method == 'GET':
        params = {key: value for key, value in request.query_params.items()}
        cached_data, cache_key = get_cached_list(PRODUCTS_LIST_PREFIX, params)
        if cached_data is not None:
            response = Response(cached_data)
            response['Cache-Control'] = CACHE_CONTROL
            return response

        queryset = Product.objects.select_related('category', 'supplier').order_by('name')
        filterset = ProductFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)

        response_data = list(ProductSerializer(filterset.qs, many=True).data)
        cache_list(cache_key, response_data, products_list_ttl())

        response = Response(response_data)
        response['Cache-Control'] = CACHE_CONTROL
        return response
    else:
        serializer = ProductSerializer(data=request.data)
        if serializer.is_valid():
            product = serializer.save()
            create_audit_log(request, 'create', 'Product', product.id,
                             changes={'current_stock': product.current_stock},
                             object_name=product.name, object_reference=product.sku)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product.objects.select_related('category', 'supplier'), pk=pk)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)
    elif request.method in ('PUT', 'PATCH'):
        before = _snapshot(product, PRODUCT_FIELDS)
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request, 'update', 'Product', product.id,
                             changes=model_changes(before, _snapshot(product, PRODUCT_FIELDS), PRODUCT_FIELDS),
                             object_name=product.name, object_reference=product.sku)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        product_id, product_name, product_sku = product.id, product.name, product.sku
        product.delete()
        create_audit_log(request, 'delete', 'Product', product_id,
                         object_name=product_name, object_reference=product_sku)
        logger.info(f'Product "{product_name}" (ID: {product_id}) deleted')
        return Response({'success': True, 'message': 'Product deleted successfully'})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_by_barcode(request, code):
    """Look up a product by barcode, falling back to SKU"""
    code = code.strip()
    product = (
        Product.objects.select_related('category', 'supplier')
        .filter(Q(barcode=code) | Q(sku=code))
        .order_by('id')
        .first()
    )
    if product is None:
        return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(ProductSerializer(product).data)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def product_delete_all(request):
    """Delete every product together with its movement history"""
    count = Product.objects.count()
    Product.objects.all().delete()
    create_audit_log(request, 'bulk_delete', 'Product', 'all', changes={'deleted': count})
    logger.warning(f"All products deleted by {request.user.username} ({count} rows)")
    return Response({'success': True, 'message': 'All products deleted', 'deleted': count})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def material_list_create(request):
    """List products that have stock or register a new material"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('category').filter(current_stock__gt=0).order_by('name')
        return Response(MaterialSerializer(queryset, many=True).data)
    else:
        serializer = MaterialSerializer(data=request.data)
        if serializer.is_valid():
            material = serializer.save()
            create_audit_log(request, 'create', 'Product', material.id, object_name=material.name,
                             changes={'material': True})
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
