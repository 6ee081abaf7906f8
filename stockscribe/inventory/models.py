from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from stockscribe.catalog.models import Product


class StockMovement(models.Model):
    """Stock in / out event against one product"""
    TYPE_IN = 'in'
    TYPE_OUT = 'out'
    MOVEMENT_TYPE_CHOICES = [
        (TYPE_IN, 'รับเข้า'),
        (TYPE_OUT, 'เบิกออก'),
    ]

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='movements')
    movement_type = models.CharField(max_length=10, choices=MOVEMENT_TYPE_CHOICES)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    reason = models.CharField(max_length=255)
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='stock_movements')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.get_movement_type_display()} {self.quantity} x {self.product_id}"

    @property
    def signed_quantity(self):
        return self.quantity if self.movement_type == self.TYPE_IN else -self.quantity

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['-created_at'], name='movements_created_idx'),
            models.Index(fields=['product', 'movement_type'], name='movements_product_type_idx'),
        ]
