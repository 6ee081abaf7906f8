from django.urls import path
from .views import (
    category_list_create, category_detail, category_delete_all,
    product_list_create, product_detail, product_by_barcode, product_delete_all,
    material_list_create,
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/all/', category_delete_all, name='category-delete-all'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/all/', product_delete_all, name='product-delete-all'),
    path('products/barcode/<str:code>/', product_by_barcode, name='product-by-barcode'),
    path('products/<int:pk>/', product_detail, name='product-detail'),

    path('materials/', material_list_create, name='material-list-create'),
]
