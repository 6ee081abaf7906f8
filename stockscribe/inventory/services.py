"""
Stock movement rules

A movement changes product stock by +quantity ("in") or -quantity ("out").
Stock is clamped at zero, and every change is written together with its
movement row inside one transaction while the product row is locked.
"""
import logging

from django.db import transaction

from stockscribe.catalog.models import Product
from .models import StockMovement

logger = logging.getLogger(__name__)


def signed_quantity(movement_type, quantity):
    return quantity if movement_type == StockMovement.TYPE_IN else -quantity


def _lock_product(product_id):
    return Product.objects.select_for_update().get(pk=product_id)


def _adjust_stock(product, delta):
    old_stock = product.current_stock
    product.current_stock = max(0, old_stock + delta)
    product.save(update_fields=['current_stock', 'updated_at'])
    if old_stock + delta < 0:
        logger.warning(
            f"Stock for product {product.id} clamped at 0 (was {old_stock}, change {delta})"
        )
    return product


def record_movement(product, movement_type, quantity, reason, reference='', notes='', created_by=None):
    """Create a movement and apply it to the product stock"""
    with transaction.atomic():
        locked = _lock_product(product.pk)
        movement = StockMovement.objects.create(
            product=locked,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            reference=reference or '',
            notes=notes or '',
            created_by=created_by,
        )
        _adjust_stock(locked, signed_quantity(movement_type, quantity))
    return movement


def update_movement(movement, **fields):
    """
    Change a movement, reversing its old effect and applying the new one

    When the product is unchanged the net difference is applied once.
    """
    with transaction.atomic():
        movement = StockMovement.objects.select_for_update().get(pk=movement.pk)
        old_product_id = movement.product_id
        old_delta = movement.signed_quantity

        for field, value in fields.items():
            setattr(movement, field, value)
        new_product_id = movement.product_id
        new_delta = movement.signed_quantity

        if new_product_id == old_product_id:
            product = _adjust_stock(_lock_product(new_product_id), new_delta - old_delta)
        else:
            # Lock in id order so concurrent edits cannot deadlock
            first, second = sorted([old_product_id, new_product_id])
            locked = {first: _lock_product(first), second: _lock_product(second)}
            _adjust_stock(locked[old_product_id], -old_delta)
            product = _adjust_stock(locked[new_product_id], new_delta)

        movement.product = product
        movement.save()
    return movement


def delete_movement(movement):
    """Delete a movement and reverse its effect; returns the product"""
    with transaction.atomic():
        movement = StockMovement.objects.select_for_update().get(pk=movement.pk)
        product = _adjust_stock(_lock_product(movement.product_id), -movement.signed_quantity)
        movement.delete()
    return product
