from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from stockscribe.parties.models import Supplier


class Category(models.Model):
    """Product categories"""
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class Product(models.Model):
    """Stocked products; materials are products created from budget requests"""
    STOCK_STATUS_OUT = 'out_of_stock'
    STOCK_STATUS_LOW = 'low_stock'
    STOCK_STATUS_IN = 'in_stock'

    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=100, unique=True, blank=True, null=True)
    description = models.TextField(blank=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    supplier = models.ForeignKey(Supplier, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'),
                                     validators=[MinValueValidator(Decimal('0.00'))])
    current_stock = models.PositiveIntegerField(default=0)
    min_stock = models.PositiveIntegerField(default=0)
    max_stock = models.PositiveIntegerField(null=True, blank=True)
    unit = models.CharField(max_length=50, blank=True)
    location = models.CharField(max_length=200, blank=True)
    barcode = models.CharField(max_length=100, blank=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.sku})" if self.sku else self.name

    @property
    def stock_status(self):
        if self.current_stock <= 0:
            return self.STOCK_STATUS_OUT
        if self.current_stock <= self.min_stock:
            return self.STOCK_STATUS_LOW
        return self.STOCK_STATUS_IN

    @property
    def stock_value(self):
        return (self.unit_price or Decimal('0')) * self.current_stock

    class Meta:
        db_table = 'products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['name'], name='products_name_idx'),
            models.Index(fields=['current_stock'], name='products_stock_idx'),
        ]
