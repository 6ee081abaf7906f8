from django.urls import path
from .views import (
    movement_list_create, movement_detail, movement_delete_all,
    low_stock_products, out_of_stock_products,
)

urlpatterns = [
    path('movements/', movement_list_create, name='movement-list-create'),
    path('movements/all/', movement_delete_all, name='movement-delete-all'),
    path('movements/<int:pk>/', movement_detail, name='movement-detail'),

    path('stock/low/', low_stock_products, name='stock-low'),
    path('stock/out-of-stock/', out_of_stock_products, name='stock-out-of-stock'),
]
