"""
Offline sync

Clients that lose connectivity queue their writes and push them here once
they are back online. Every queued action goes through the same serializers
and stock rules as the regular endpoints, in its own transaction, so one bad
action never blocks the rest of the batch. Action ids are recorded per user:
an action that was already applied is answered from the stored result.
"""
import logging
from collections import namedtuple

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction, IntegrityError
from django.db.models import Count
from django.utils import timezone
from rest_framework import serializers

from stockscribe.catalog.models import Category, Product
from stockscribe.catalog.serializers import CategorySerializer, ProductSerializer
from stockscribe.parties.models import Supplier
from stockscribe.parties.serializers import SupplierSerializer
from stockscribe.inventory import services as inventory_services
from stockscribe.inventory.models import StockMovement
from stockscribe.inventory.serializers import StockMovementSerializer
from stockscribe.core.cache_signals import suspend_cache_signals, invalidate_all_caches
from .models import SyncAction

logger = logging.getLogger('stockscribe.sync')

Table = namedtuple('Table', ['model', 'serializer', 'model_name', 'queryset'])

TABLES = {
    'products': Table(Product, ProductSerializer, 'Product',
                      lambda: Product.objects.select_related('category', 'supplier').order_by('name')),
    'categories': Table(Category, CategorySerializer, 'Category',
                        lambda: Category.objects.annotate(annotated_product_count=Count('products')).order_by('name')),
    'suppliers': Table(Supplier, SupplierSerializer, 'Supplier',
                       lambda: Supplier.objects.annotate(annotated_product_count=Count('products')).order_by('name')),
    'movements': Table(StockMovement, StockMovementSerializer, 'StockMovement',
                       lambda: StockMovement.objects.select_related('product', 'created_by').order_by('-created_at', '-id')),
}


class SyncError(Exception):
    """An action that cannot be applied as sent"""


def max_batch_size():
    return settings.STOCKSCRIBE.get('SYNC_MAX_BATCH', 200)


def parse_tables(raw):
    """Comma separated table names; all tables when empty. Raises SyncError on unknown names"""
    if not raw:
        return list(TABLES)
    names = [name.strip() for name in raw.split(',') if name.strip()]
    unknown = [name for name in names if name not in TABLES]
    if unknown:
        raise SyncError(f"Unknown table(s): {', '.join(unknown)}")
    return names


def snapshot(tables):
    """Current rows of the requested tables, as the online API returns them"""
    data = {}
    for name in tables:
        table = TABLES[name]
        data[name] = list(table.serializer(table.queryset(), many=True).data)
    data['generated_at'] = timezone.now().isoformat()
    return data


def _error_message(exc):
    if isinstance(exc, serializers.ValidationError):
        detail = exc.detail
        if isinstance(detail, dict):
            parts = []
            for field, messages in detail.items():
                if isinstance(messages, (list, tuple)):
                    messages = ' '.join(str(message) for message in messages)
                parts.append(f"{field}: {messages}")
            return '; '.join(parts)
        if isinstance(detail, (list, tuple)):
            return ' '.join(str(message) for message in detail)
        return str(detail)
    return str(exc)


def _get_instance(table, data):
    pk = data.get('id')
    if pk in (None, ''):
        raise SyncError('Action data must include the row id')
    instance = table.model.objects.filter(pk=pk).first()
    if instance is None:
        raise SyncError(f"{table.model_name} {pk} not found")
    return instance


def _refuse_delete_in_use(table, instance):
    if table.model not in (Category, Supplier):
        return
    product_count = instance.products.count()
    if product_count > 0:
        label = 'category' if table.model is Category else 'supplier'
        raise SyncError(
            f'Cannot delete {label} "{instance.name}" because it is being used by '
            f'{product_count} product(s). Please reassign or delete the products first.'
        )


def apply_action(user, action_type, table_name, data):
    """Apply one action; returns the JSON result stored for it"""
    table = TABLES[table_name]

    if action_type == SyncAction.TYPE_CREATE:
        payload = {key: value for key, value in data.items() if key != 'id'}
        serializer = table.serializer(data=payload)
        serializer.is_valid(raise_exception=True)
        extra = {'created_by': user} if table.model is StockMovement else {}
        instance = serializer.save(**extra)
        return dict(table.serializer(instance).data)

    instance = _get_instance(table, data)

    if action_type == SyncAction.TYPE_UPDATE:
        payload = {key: value for key, value in data.items() if key != 'id'}
        serializer = table.serializer(instance, data=payload, partial=True)
        serializer.is_valid(raise_exception=True)
        instance = serializer.save()
        return dict(table.serializer(instance).data)

    if action_type == SyncAction.TYPE_DELETE:
        _refuse_delete_in_use(table, instance)
        pk = instance.pk
        if table.model is StockMovement:
            product = inventory_services.delete_movement(instance)
            return {'id': pk, 'deleted': True, 'product_stock': product.current_stock}
        instance.delete()
        return {'id': pk, 'deleted': True}

    raise SyncError(f"Unknown action type: {action_type}")


def _apply_once(user, action):
    """
    Claim the (user, client id) row, then apply and record in one transaction

    The claim holds a row lock, so a concurrent re-send of the same action
    waits for this one to commit and then sees it as applied.
    """
    client_id = action['id']
    data = action.get('data') or {}

    with transaction.atomic():
        record, created = SyncAction.objects.select_for_update().get_or_create(
            user=user,
            client_id=client_id,
            defaults={
                'action_type': action['type'],
                'table': action['table'],
                'data': data,
                'client_timestamp': action.get('timestamp'),
                'status': SyncAction.STATUS_FAILED,
            },
        )
        if not created and record.status == SyncAction.STATUS_APPLIED:
            logger.info(f"Sync action {client_id} already applied for {user.username}; returning stored result")
            return record.outcome(), True

        result, error = None, ''
        try:
            with transaction.atomic():
                result = apply_action(user, action['type'], action['table'], data)
            status = SyncAction.STATUS_APPLIED
        except (SyncError, serializers.ValidationError, ObjectDoesNotExist, IntegrityError) as e:
            status, error = SyncAction.STATUS_FAILED, _error_message(e)
            logger.warning(f"Sync action {client_id} ({action['type']} {action['table']}) failed: {error}")
        except Exception as e:
            status, error = SyncAction.STATUS_FAILED, str(e)
            logger.error(f"Unexpected error applying sync action {client_id}: {str(e)}", exc_info=True)

        record.action_type = action['type']
        record.table = action['table']
        record.data = data
        record.client_timestamp = action.get('timestamp')
        record.status = status
        record.result = result
        record.error = error
        record.save()
    return record.outcome(), False


def push_actions(user, actions):
    """
    Replay queued actions in client timestamp order

    Returns ``(outcomes, summary)`` where outcomes keep the order in which
    the actions were applied.
    """
    ordered = sorted(
        actions,
        key=lambda action: (action.get('timestamp') is None, action.get('timestamp') or 0),
    )
    outcomes = []
    summary = {'applied': 0, 'failed': 0, 'duplicates': 0}

    with suspend_cache_signals():
        for action in ordered:
            outcome, duplicate = _apply_once(user, action)
            outcomes.append(outcome)
            if duplicate:
                summary['duplicates'] += 1
            else:
                summary[outcome['status']] += 1

    invalidate_all_caches()
    logger.info(
        f"Sync push by {user.username}: {summary['applied']} applied, {summary['failed']} failed, "
        f"{summary['duplicates']} already applied"
    )
    return outcomes, summary


def sync_status(user):
    actions = SyncAction.objects.filter(user=user)
    last = actions.order_by('-updated_at').values_list('updated_at', flat=True).first()
    return {
        'applied': actions.filter(status=SyncAction.STATUS_APPLIED).count(),
        'failed': actions.filter(status=SyncAction.STATUS_FAILED).count(),
        'last_sync_at': last.isoformat() if last else None,
        'max_batch_size': max_batch_size(),
    }
