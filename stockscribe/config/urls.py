"""
URL configuration for the StockScribe API.

Every app mounts its routes under ``api/v1/``.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "StockScribe Administration"
admin.site.site_title = "StockScribe Admin Portal"
admin.site.index_title = "ระบบจัดการคลังสินค้า StockScribe"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('stockscribe.core.urls')),
    path('api/v1/', include('stockscribe.catalog.urls')),
    path('api/v1/', include('stockscribe.parties.urls')),
    path('api/v1/', include('stockscribe.inventory.urls')),
    path('api/v1/', include('stockscribe.budgets.urls')),
    path('api/v1/', include('stockscribe.reports.urls')),
    path('api/v1/', include('stockscribe.sync.urls')),
]
