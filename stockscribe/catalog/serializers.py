from django.conf import settings
from rest_framework import serializers
from .models import Category, Product


def default_min_stock():
    return settings.STOCKSCRIBE.get('DEFAULT_MIN_STOCK', 0)


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_product_count(self, obj):
        annotated = getattr(obj, 'annotated_product_count', None)
        if annotated is not None:
            return annotated
        return obj.products.count()


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True, default=None)
    stock_status = serializers.CharField(read_only=True)
    stock_value = serializers.DecimalField(max_digits=16, decimal_places=2, read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'sku', 'description', 'category', 'category_name', 'supplier', 'supplier_name',
            'unit_price', 'current_stock', 'min_stock', 'max_stock', 'unit', 'location', 'barcode',
            'stock_status', 'stock_value', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']
        extra_kwargs = {
            'sku': {'required': True, 'allow_null': False, 'allow_blank': False},
        }

    def validate(self, attrs):
        if self.instance is None:
            attrs.setdefault('min_stock', default_min_stock())
        min_stock = attrs.get('min_stock', getattr(self.instance, 'min_stock', 0))
        max_stock = attrs.get('max_stock', getattr(self.instance, 'max_stock', None))
        if max_stock is not None and min_stock is not None and max_stock < min_stock:
            raise serializers.ValidationError({'max_stock': 'Maximum stock must be greater than or equal to minimum stock'})
        return attrs


class MaterialSerializer(serializers.ModelSerializer):
    """Materials are products picked for budget requests; created with no stock"""
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)

    class Meta:
        model = Product
        fields = ['id', 'name', 'sku', 'description', 'unit', 'category', 'category_name',
                  'unit_price', 'current_stock', 'min_stock', 'created_at']
        read_only_fields = ['sku', 'current_stock', 'min_stock', 'created_at']

    def create(self, validated_data):
        validated_data['current_stock'] = 0
        validated_data['min_stock'] = default_min_stock()
        return super().create(validated_data)
