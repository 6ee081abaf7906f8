"""
Test suite for supplier endpoints
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from stockscribe.catalog.models import Product
from stockscribe.core.models import AuditLog
from stockscribe.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockscribe.parties.models import Supplier


class SupplierAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_list_includes_product_count(self):
        supplier = TestDataFactory.create_supplier(name='Alpha Trading')
        TestDataFactory.create_product(supplier=supplier)
        TestDataFactory.create_product(supplier=supplier)
        TestDataFactory.create_supplier(name='Beta Supply')

        response = self.client.get('/api/v1/suppliers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['name'] for row in response.data], ['Alpha Trading', 'Beta Supply'])
        self.assertEqual(response.data[0]['product_count'], 2)

    def test_search(self):
        TestDataFactory.create_supplier(name='Alpha Trading', phone='021234567')
        TestDataFactory.create_supplier(name='Beta Supply', phone='044999999')
        response = self.client.get('/api/v1/suppliers/', {'search': '044'})
        self.assertEqual([row['name'] for row in response.data], ['Beta Supply'])

    def test_list_cache_is_invalidated_on_create(self):
        self.assertEqual(self.client.get('/api/v1/suppliers/').data, [])
        self.client.post('/api/v1/suppliers/', {'name': 'New Supplier'}, format='json')
        self.assertEqual(len(self.client.get('/api/v1/suppliers/').data), 1)

    def test_create_update(self):
        response = self.client.post('/api/v1/suppliers/', {
            'name': 'ห้างหุ้นส่วน ทดสอบ', 'contact_person': 'คุณมาลี', 'email': 'malee@test.com',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        supplier_id = response.data['id']

        response = self.client.patch(f'/api/v1/suppliers/{supplier_id}/', {'phone': '0812345678'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(action='update', model_name='Supplier')
        self.assertEqual(log.changes, {'phone': {'old': '', 'new': '0812345678'}})

    def test_invalid_email(self):
        response = self.client.post('/api/v1/suppliers/', {'name': 'X', 'email': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_in_use_is_refused(self):
        supplier = TestDataFactory.create_supplier()
        TestDataFactory.create_product(supplier=supplier)
        response = self.client.delete(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('1 product(s)', response.data['error'])

    def test_delete(self):
        supplier = TestDataFactory.create_supplier()
        response = self.client.delete(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertFalse(Supplier.objects.filter(pk=supplier.pk).exists())

    def test_delete_all_is_admin_only(self):
        TestDataFactory.create_supplier()
        response = self.client.delete('/api/v1/suppliers/all/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_delete_all_keeps_products(self):
        supplier = TestDataFactory.create_supplier()
        product = TestDataFactory.create_product(supplier=supplier)
        self.client.authenticate_user(TestDataFactory.create_admin())

        response = self.client.delete('/api/v1/suppliers/all/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Supplier.objects.count(), 0)
        self.assertIsNone(Product.objects.get(pk=product.pk).supplier)
