"""
Test suite for offline sync
Tests: snapshot, push ordering, per-action transactions, idempotent re-sends, batch limits
"""
from unittest.mock import patch

from django.core.cache import cache
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.conf import settings
from rest_framework import status

from stockscribe.core.models import AuditLog
from stockscribe.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockscribe.catalog.models import Category, Product
from stockscribe.inventory.models import StockMovement
from stockscribe.sync import services
from stockscribe.sync.models import SyncAction


class SyncSnapshotTests(TestCase):
    """Test GET sync/snapshot/"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.category = TestDataFactory.create_category(name='Tools')
        self.product = TestDataFactory.create_product(category=self.category, current_stock=4)

    def test_snapshot_all_tables(self):
        response = self.client.get('/api/v1/sync/snapshot/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        for table in ('products', 'categories', 'suppliers', 'movements'):
            self.assertIn(table, response.data)
        self.assertIn('generated_at', response.data)
        self.assertEqual(response.data['products'][0]['category_name'], 'Tools')
        self.assertEqual(response.data['categories'][0]['product_count'], 1)

    def test_snapshot_selected_tables(self):
        response = self.client.get('/api/v1/sync/snapshot/?tables=products,categories')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('products', response.data)
        self.assertNotIn('movements', response.data)

    def test_snapshot_unknown_table(self):
        response = self.client.get('/api/v1/sync/snapshot/?tables=products,invoices')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('invoices', response.data['error'])


class SyncPushTests(TestCase):
    """Test POST sync/push/"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(current_stock=10)

    def _push(self, actions):
        return self.client.post('/api/v1/sync/push/', {'actions': actions}, format='json')

    def test_applies_actions_in_timestamp_order(self):
        response = self._push([
            {'id': '2-b', 'type': 'update', 'table': 'categories', 'data': {'id': None}, 'timestamp': 3},
            {'id': '1-a', 'type': 'create', 'table': 'categories', 'data': {'name': 'Offline'}, 'timestamp': 1},
        ])
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['id'] for item in response.data['results']], ['1-a', '2-b'])
        self.assertTrue(Category.objects.filter(name='Offline').exists())

    def test_movement_actions_follow_stock_rules(self):
        response = self._push([
            {'id': 'm1', 'type': 'create', 'table': 'movements', 'timestamp': 1,
             'data': {'product': self.product.id, 'movement_type': 'out', 'quantity': 15, 'reason': 'Used offline'}},
        ])
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['applied'], 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 0)
        movement = StockMovement.objects.get()
        self.assertEqual(movement.created_by, self.user)

    def test_failed_action_does_not_stop_batch(self):
        response = self._push([
            {'id': 'bad', 'type': 'create', 'table': 'products', 'data': {'name': 'No SKU'}, 'timestamp': 1},
            {'id': 'good', 'type': 'update', 'table': 'products',
             'data': {'id': self.product.id, 'location': 'Shelf B'}, 'timestamp': 2},
        ])
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['failed'], 1)
        self.assertEqual(response.data['applied'], 1)
        results = {item['id']: item for item in response.data['results']}
        self.assertEqual(results['bad']['status'], 'failed')
        self.assertIn('sku', results['bad']['error'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.location, 'Shelf B')
        self.assertEqual(SyncAction.objects.get(client_id='bad').status, SyncAction.STATUS_FAILED)

    def test_resent_action_is_not_applied_twice(self):
        action = {'id': 'once', 'type': 'create', 'table': 'movements', 'timestamp': 1,
                  'data': {'product': self.product.id, 'movement_type': 'in', 'quantity': 5, 'reason': 'Restock'}}
        first = self._push([action])
        second = self._push([action])
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second.data['duplicates'], 1)
        self.assertEqual(second.data['results'][0]['result'], first.data['results'][0]['result'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 15)
        self.assertEqual(StockMovement.objects.count(), 1)

    def test_failed_action_can_be_retried(self):
        action = {'id': 'retry', 'type': 'update', 'table': 'products',
                  'data': {'id': self.product.id, 'max_stock': 1, 'min_stock': 5}}
        self.assertEqual(self._push([action]).data['failed'], 1)
        action['data'] = {'id': self.product.id, 'max_stock': 50}
        response = self._push([action])
        self.assertEqual(response.data['applied'], 1)
        self.assertEqual(SyncAction.objects.get(client_id='retry').status, SyncAction.STATUS_APPLIED)

    def test_delete_category_in_use_fails(self):
        category = TestDataFactory.create_category(name='Busy')
        TestDataFactory.create_product(category=category)
        response = self._push([{'id': 'd1', 'type': 'delete', 'table': 'categories', 'data': {'id': category.id}}])
        self.assertEqual(response.data['failed'], 1)
        self.assertIn('Busy', response.data['results'][0]['error'])
        self.assertTrue(Category.objects.filter(pk=category.id).exists())

    def test_delete_movement_reverses_stock(self):
        self._push([{'id': 'in', 'type': 'create', 'table': 'movements', 'timestamp': 1,
                     'data': {'product': self.product.id, 'movement_type': 'in', 'quantity': 3, 'reason': 'R'}}])
        movement = StockMovement.objects.get()
        response = self._push([{'id': 'del', 'type': 'delete', 'table': 'movements', 'data': {'id': movement.id}}])
        self.assertEqual(response.data['results'][0]['result']['product_stock'], 10)
        self.assertFalse(StockMovement.objects.exists())

    def test_missing_row_fails(self):
        response = self._push([{'id': 'x', 'type': 'delete', 'table': 'products', 'data': {'id': 999999}}])
        self.assertEqual(response.data['failed'], 1)
        self.assertTrue(Product.objects.filter(pk=self.product.id).exists())

    def test_invalid_action_shape(self):
        response = self._push([{'id': 'x', 'type': 'upsert', 'table': 'products', 'data': {}}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(STOCKSCRIBE={**settings.STOCKSCRIBE, 'SYNC_MAX_BATCH': 2})
    def test_batch_limit(self):
        actions = [{'id': str(i), 'type': 'create', 'table': 'categories', 'data': {'name': f'C{i}'}}
                   for i in range(3)]
        response = self._push(actions)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Category.objects.exists())

    def test_push_is_audited_and_status_reported(self):
        self._push([{'id': 'c1', 'type': 'create', 'table': 'suppliers', 'data': {'name': 'Offline supplier'}}])
        self.assertTrue(AuditLog.objects.filter(action='sync_push').exists())

        response = self.client.get('/api/v1/sync/status/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['applied'], 1)
        self.assertEqual(response.data['failed'], 0)
        self.assertIsNotNone(response.data['last_sync_at'])

    def test_actions_are_scoped_per_user(self):
        action = {'id': 'shared', 'type': 'create', 'table': 'categories', 'data': {'name': 'First'}}
        self._push([action])
        other = TestDataFactory.create_user()
        self.client.authenticate_user(other)
        action['data'] = {'name': 'Second'}
        response = self._push([action])
        self.assertEqual(response.data['applied'], 1)
        self.assertEqual(Category.objects.count(), 2)

        response = self.client.get('/api/v1/sync/actions/')
        self.assertEqual(len(response.data), 1)


class SyncRecordingTests(TestCase):
    """The applied change and its SyncAction row commit together"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(current_stock=10)
        self.action = {'id': 'rec-1', 'type': 'create', 'table': 'movements', 'timestamp': 1,
                       'data': {'product': self.product.id, 'movement_type': 'in', 'quantity': 5, 'reason': 'R'}}

    def test_row_recorded_by_another_push_is_not_reapplied(self):
        SyncAction.objects.create(user=self.user, client_id='rec-1', action_type='create', table='movements',
                                  status=SyncAction.STATUS_APPLIED, result={'id': 42})
        outcomes, summary = services.push_actions(self.user, [self.action])
        self.assertEqual(outcomes, [{'id': 'rec-1', 'status': 'applied', 'result': {'id': 42}}])
        self.assertEqual(summary['duplicates'], 1)
        self.assertFalse(StockMovement.objects.exists())

    def test_failed_recording_rolls_back_the_change(self):
        original_save = SyncAction.save

        def save_failing_on_applied(record, *args, **kwargs):
            if record.status == SyncAction.STATUS_APPLIED:
                raise DatabaseError('disk full')
            return original_save(record, *args, **kwargs)

        with patch.object(SyncAction, 'save', save_failing_on_applied):
            with self.assertRaises(DatabaseError):
                services.push_actions(self.user, [self.action])

        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 10)
        self.assertFalse(StockMovement.objects.exists())
        self.assertFalse(SyncAction.objects.exists())

        # The client re-sends after the failure and the action applies once
        outcomes, summary = services.push_actions(self.user, [self.action])
        self.assertEqual(summary['applied'], 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 15)
