from django.urls import path
from . import views

urlpatterns = [
    path('stats/', views.stats, name='stats'),
    path('reports/dashboard/', views.dashboard, name='dashboard'),
    path('reports/movements-summary/', views.movements_summary, name='movements-summary'),
]
