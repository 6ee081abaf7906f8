"""
Test suite for stock movements
Tests: stock follows create/update/delete, zero clamp, filters, low/out-of-stock listings
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from stockscribe.core.models import AuditLog
from stockscribe.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockscribe.inventory import services
from stockscribe.inventory.models import StockMovement


class MovementServiceTests(TestCase):
    """Test the stock rules directly"""

    def setUp(self):
        self.product = TestDataFactory.create_product(current_stock=10)
        self.other = TestDataFactory.create_product(current_stock=5)

    def test_record_in_and_out(self):
        services.record_movement(self.product, StockMovement.TYPE_IN, 4, 'Purchase')
        services.record_movement(self.product, StockMovement.TYPE_OUT, 3, 'Issue')
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 11)

    def test_stock_is_clamped_at_zero(self):
        services.record_movement(self.product, StockMovement.TYPE_OUT, 25, 'Issue')
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 0)

    def test_update_applies_net_change(self):
        movement = services.record_movement(self.product, StockMovement.TYPE_IN, 5, 'Purchase')
        services.update_movement(movement, quantity=8)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 18)

        services.update_movement(movement, movement_type=StockMovement.TYPE_OUT)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 2)

    def test_update_moves_effect_to_other_product(self):
        movement = services.record_movement(self.product, StockMovement.TYPE_IN, 5, 'Purchase')
        services.update_movement(movement, product=self.other)
        self.product.refresh_from_db()
        self.other.refresh_from_db()
        self.assertEqual(self.product.current_stock, 10)
        self.assertEqual(self.other.current_stock, 10)

    def test_delete_reverses_effect(self):
        movement = services.record_movement(self.product, StockMovement.TYPE_OUT, 4, 'Issue')
        product = services.delete_movement(movement)
        self.assertEqual(product.current_stock, 10)
        self.assertFalse(StockMovement.objects.filter(pk=movement.pk).exists())


class MovementAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(name='กระดาษ A4', current_stock=10, min_stock=2)

    def _create(self, **overrides):
        data = {'product': self.product.id, 'movement_type': 'in', 'quantity': 5, 'reason': 'รับสินค้า'}
        data.update(overrides)
        return self.client.post('/api/v1/movements/', data, format='json')

    def test_create(self):
        response = self._create(reference='PO-001')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['product_stock'], 15)
        self.assertEqual(response.data['created_by_username'], self.user.username)

        log = AuditLog.objects.get(action='stock_in')
        self.assertEqual(log.changes['resulting_stock'], 15)
        self.assertEqual(log.object_reference, 'PO-001')

    def test_stock_out_is_audited(self):
        self._create(movement_type='out', quantity=3)
        self.assertTrue(AuditLog.objects.filter(action='stock_out').exists())

    def test_quantity_must_be_positive(self):
        response = self._create(quantity=0)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 10)

    def test_unknown_type(self):
        response = self._create(movement_type='adjust')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_via_api(self):
        movement_id = self._create().data['id']
        response = self.client.patch(f'/api/v1/movements/{movement_id}/', {'quantity': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['product_stock'], 12)

    def test_delete_via_api(self):
        movement_id = self._create(movement_type='out', quantity=4).data['id']
        response = self.client.delete(f'/api/v1/movements/{movement_id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['product_stock'], 10)

    def test_list_filters(self):
        other = TestDataFactory.create_product()
        self._create()
        self._create(movement_type='out', quantity=1)
        self._create(product=other.id)

        response = self.client.get('/api/v1/movements/')
        self.assertEqual(len(response.data), 3)
        self.assertEqual(response.data[0]['product'], other.id)

        response = self.client.get('/api/v1/movements/', {'product': self.product.id, 'type': 'out'})
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['quantity'], 1)

    def test_delete_all_keeps_stock(self):
        self._create()
        self.assertEqual(self.client.delete('/api/v1/movements/all/').status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.delete('/api/v1/movements/all/')
        self.assertEqual(response.data['deleted'], 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 15)


class StockListingTests(TestCase):

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())
        TestDataFactory.create_product(name='Plenty', current_stock=50, min_stock=5)
        TestDataFactory.create_product(name='At minimum', current_stock=5, min_stock=5)
        TestDataFactory.create_product(name='Nearly out', current_stock=1, min_stock=5)
        TestDataFactory.create_product(name='Gone', current_stock=0, min_stock=5)

    def test_low_stock_excludes_empty(self):
        response = self.client.get('/api/v1/stock/low/')
        self.assertEqual([row['name'] for row in response.data], ['Nearly out', 'At minimum'])

    def test_out_of_stock(self):
        response = self.client.get('/api/v1/stock/out-of-stock/')
        self.assertEqual([row['name'] for row in response.data], ['Gone'])
