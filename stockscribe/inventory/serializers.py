from rest_framework import serializers

from . import services
from .models import StockMovement


class StockMovementSerializer(serializers.ModelSerializer):
    """Movements are written through the stock services so stock stays consistent"""
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True, default=None)
    product_stock = serializers.IntegerField(source='product.current_stock', read_only=True)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'product', 'product_name', 'product_sku', 'product_stock', 'movement_type', 'quantity',
            'reason', 'reference', 'notes', 'created_by', 'created_by_username', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def validate_quantity(self, value):
        if value is None or value <= 0:
            raise serializers.ValidationError('Quantity must be greater than 0')
        return value

    def create(self, validated_data):
        return services.record_movement(
            product=validated_data['product'],
            movement_type=validated_data['movement_type'],
            quantity=validated_data['quantity'],
            reason=validated_data['reason'],
            reference=validated_data.get('reference', ''),
            notes=validated_data.get('notes', ''),
            created_by=validated_data.get('created_by'),
        )

    def update(self, instance, validated_data):
        return services.update_movement(instance, **validated_data)
