from rest_framework import serializers

from .models import SyncAction
from .services import max_batch_size


class PendingActionSerializer(serializers.Serializer):
    """One queued client action: {id, type, table, data, timestamp}"""
    id = serializers.CharField(max_length=100)
    type = serializers.ChoiceField(choices=SyncAction.TYPE_CHOICES)
    table = serializers.ChoiceField(choices=SyncAction.TABLE_CHOICES)
    data = serializers.JSONField(required=False, default=dict)
    timestamp = serializers.IntegerField(required=False, allow_null=True, default=None)

    def validate_data(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Action data must be an object')
        return value


class SyncPushSerializer(serializers.Serializer):
    actions = serializers.ListField(child=PendingActionSerializer(), allow_empty=True)

    def validate_actions(self, value):
        limit = max_batch_size()
        if len(value) > limit:
            raise serializers.ValidationError(f'At most {limit} actions can be pushed at once')
        return value


class SyncActionSerializer(serializers.ModelSerializer):
    class Meta:
        model = SyncAction
        fields = ['id', 'client_id', 'action_type', 'table', 'data', 'client_timestamp', 'status',
                  'result', 'error', 'created_at', 'updated_at']
        read_only_fields = fields
