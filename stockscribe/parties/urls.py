from django.urls import path
from .views import supplier_list_create, supplier_detail, supplier_delete_all

urlpatterns = [
    path('suppliers/', supplier_list_create, name='supplier-list-create'),
    path('suppliers/all/', supplier_delete_all, name='supplier-delete-all'),
    path('suppliers/<int:pk>/', supplier_detail, name='supplier-detail'),
]
