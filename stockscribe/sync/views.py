import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from stockscribe.core.utils import create_audit_log
from . import services
from .models import SyncAction
from .serializers import SyncPushSerializer, SyncActionSerializer

logger = logging.getLogger('stockscribe.sync')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sync_snapshot(request):
    """Rows an offline client caches (?tables=products,categories,...)"""
    try:
        tables = services.parse_tables(request.query_params.get('tables', ''))
    except services.SyncError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(services.snapshot(tables))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sync_push(request):
    """Apply actions queued while offline"""
    serializer = SyncPushSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    actions = serializer.validated_data['actions']
    outcomes, summary = services.push_actions(request.user, actions)
    if actions:
        create_audit_log(request, 'sync_push', 'SyncAction', 'batch', changes=summary)
    return Response({'results': outcomes, **summary})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sync_status(request):
    return Response(services.sync_status(request.user))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sync_action_list(request):
    """The user's recorded actions, newest first (?status=failed)"""
    queryset = SyncAction.objects.filter(user=request.user).order_by('-created_at', '-id')
    status_filter = request.query_params.get('status', None)
    if status_filter:
        queryset = queryset.filter(status=status_filter)
    return Response(SyncActionSerializer(queryset[:500], many=True).data)
