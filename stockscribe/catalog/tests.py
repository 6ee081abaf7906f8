"""
Test suite for categories, products and materials
Tests: CRUD, list filters, barcode lookup, in-use delete guards, bulk deletes
"""
from decimal import Decimal

from django.core.cache import cache
from django.conf import settings
from django.test import TestCase, override_settings
from rest_framework import status

from stockscribe.catalog.models import Category, Product
from stockscribe.core.models import AuditLog
from stockscribe.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockscribe.inventory.models import StockMovement


class ProductModelTests(TestCase):

    def test_stock_status(self):
        product = TestDataFactory.create_product(current_stock=0, min_stock=5)
        self.assertEqual(product.stock_status, Product.STOCK_STATUS_OUT)
        product.current_stock = 5
        self.assertEqual(product.stock_status, Product.STOCK_STATUS_LOW)
        product.current_stock = 6
        self.assertEqual(product.stock_status, Product.STOCK_STATUS_IN)

    def test_stock_value(self):
        product = TestDataFactory.create_product(current_stock=3, unit_price=Decimal('12.50'))
        self.assertEqual(product.stock_value, Decimal('37.50'))


class CategoryAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_and_list(self):
        response = self.client.post('/api/v1/categories/', {'name': 'เครื่องเขียน'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['product_count'], 0)

        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['name'] for row in response.data], ['เครื่องเขียน'])
        self.assertIn('max-age=300', response['Cache-Control'])

    def test_duplicate_name(self):
        TestDataFactory.create_category(name='Office')
        response = self.client.post('/api/v1/categories/', {'name': 'Office'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_records_changes(self):
        category = TestDataFactory.create_category(name='Office')
        response = self.client.put(f'/api/v1/categories/{category.id}/',
                                   {'name': 'Office supplies', 'description': ''}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(action='update', model_name='Category')
        self.assertEqual(log.changes['name'], {'old': 'Office', 'new': 'Office supplies'})

    def test_delete_in_use_is_refused(self):
        category = TestDataFactory.create_category()
        TestDataFactory.create_product(category=category)
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Category.objects.filter(pk=category.pk).exists())

    def test_delete(self):
        category = TestDataFactory.create_category()
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.data, {'success': True, 'message': 'Category deleted successfully'})

    def test_delete_all_clears_product_category(self):
        category = TestDataFactory.create_category()
        product = TestDataFactory.create_product(category=category)
        self.client.authenticate_user(TestDataFactory.create_admin())

        response = self.client.delete('/api/v1/categories/all/')
        self.assertEqual(response.data['deleted'], 1)
        self.assertIsNone(Product.objects.get(pk=product.pk).category)


class ProductAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.category = TestDataFactory.create_category(name='Office')
        self.supplier = TestDataFactory.create_supplier(name='Alpha Trading')

    def test_create(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'กระดาษ A4',
            'sku': 'SKU001',
            'category': self.category.id,
            'supplier': self.supplier.id,
            'unit_price': '120.00',
            'current_stock': 10,
            'min_stock': 2,
            'unit': 'รีม',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category_name'], 'Office')
        self.assertEqual(response.data['supplier_name'], 'Alpha Trading')
        self.assertEqual(response.data['stock_status'], 'in_stock')

    def test_sku_is_required_and_unique(self):
        response = self.client.post('/api/v1/products/', {'name': 'No SKU'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('sku', response.data)

        TestDataFactory.create_product(sku='DUP-1')
        response = self.client.post('/api/v1/products/', {'name': 'Dup', 'sku': 'DUP-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_max_stock_below_min(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Bad', 'sku': 'BAD-1', 'min_stock': 10, 'max_stock': 5,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('max_stock', response.data)

    def test_min_stock_defaults_to_configured_value(self):
        with override_settings(STOCKSCRIBE={**settings.STOCKSCRIBE, 'DEFAULT_MIN_STOCK': 3}):
            response = self.client.post('/api/v1/products/', {'name': 'Pen', 'sku': 'PEN-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['min_stock'], 3)

    def test_negative_price(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Bad', 'sku': 'BAD-2', 'unit_price': '-1.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_filters(self):
        TestDataFactory.create_product(name='Blue pen', sku='P-1', category=self.category, current_stock=50, min_stock=5)
        TestDataFactory.create_product(name='Red pen', sku='P-2', supplier=self.supplier, current_stock=3, min_stock=5)
        TestDataFactory.create_product(name='Stapler', sku='P-3', current_stock=0, min_stock=5)

        def names(params):
            return [row['name'] for row in self.client.get('/api/v1/products/', params).data]

        self.assertEqual(names({}), ['Blue pen', 'Red pen', 'Stapler'])
        self.assertEqual(names({'search': 'pen red'}), ['Red pen'])
        self.assertEqual(names({'search': 'office'}), ['Blue pen'])
        self.assertEqual(names({'category': self.category.id}), ['Blue pen'])
        self.assertEqual(names({'supplier': self.supplier.id}), ['Red pen'])
        self.assertEqual(names({'low_stock': 'true'}), ['Red pen'])
        self.assertEqual(names({'out_of_stock': 'true'}), ['Stapler'])

    def test_list_cache_follows_updates(self):
        product = TestDataFactory.create_product(name='Pen', current_stock=1)
        self.assertEqual(self.client.get('/api/v1/products/').data[0]['current_stock'], 1)
        self.client.patch(f'/api/v1/products/{product.id}/', {'current_stock': 9}, format='json')
        self.assertEqual(self.client.get('/api/v1/products/').data[0]['current_stock'], 9)

    def test_barcode_lookup(self):
        product = TestDataFactory.create_product(sku='SKU-9', barcode='1234567890123')
        response = self.client.get('/api/v1/products/barcode/1234567890123/')
        self.assertEqual(response.data['id'], product.id)

        response = self.client.get('/api/v1/products/barcode/SKU-9/')
        self.assertEqual(response.data['id'], product.id)

        response = self.client.get('/api/v1/products/barcode/0000/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_removes_movements(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_movement(product)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(StockMovement.objects.count(), 0)

    def test_delete_all_is_admin_only(self):
        TestDataFactory.create_product()
        self.assertEqual(self.client.delete('/api/v1/products/all/').status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.delete('/api/v1/products/all/')
        self.assertEqual(response.data['deleted'], 1)
        self.assertEqual(Product.objects.count(), 0)

    def test_requires_authentication(self):
        self.client.logout()
        self.assertEqual(self.client.get('/api/v1/products/').status_code, status.HTTP_401_UNAUTHORIZED)


class MaterialAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def test_lists_products_with_stock(self):
        TestDataFactory.create_product(name='In stock', current_stock=4)
        TestDataFactory.create_product(name='Empty', current_stock=0)
        response = self.client.get('/api/v1/materials/')
        self.assertEqual([row['name'] for row in response.data], ['In stock'])

    def test_create_material_starts_empty(self):
        response = self.client.post('/api/v1/materials/', {
            'name': 'ตลับหมึก', 'unit': 'ตลับ', 'unit_price': '950.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        material = Product.objects.get(pk=response.data['id'])
        self.assertEqual(material.current_stock, 0)
        self.assertIsNone(material.sku)

    def test_material_min_stock_follows_configured_default(self):
        with override_settings(STOCKSCRIBE={**settings.STOCKSCRIBE, 'DEFAULT_MIN_STOCK': 2}):
            response = self.client.post('/api/v1/materials/', {'name': 'Stapler', 'min_stock': 9},
                                        format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Product.objects.get(pk=response.data['id']).min_stock, 2)
