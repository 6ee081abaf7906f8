from django.urls import path
from . import views

urlpatterns = [
    path('sync/snapshot/', views.sync_snapshot, name='sync-snapshot'),
    path('sync/push/', views.sync_push, name='sync-push'),
    path('sync/status/', views.sync_status, name='sync-status'),
    path('sync/actions/', views.sync_action_list, name='sync-action-list'),
]
