"""
Test suite for the dashboard and report endpoints
Tests: stats, dashboard (with caching), movements summary
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from stockscribe.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockscribe.budgets.models import BudgetRequest
from stockscribe.inventory import services


class ReportsTests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

        self.category = TestDataFactory.create_category(name='Stationery')
        self.supplier = TestDataFactory.create_supplier()
        self.in_stock = TestDataFactory.create_product(
            category=self.category, supplier=self.supplier, current_stock=20, min_stock=5, unit_price=Decimal('10.00')
        )
        self.low_stock = TestDataFactory.create_product(
            category=self.category, current_stock=3, min_stock=5, unit_price=Decimal('100.00')
        )
        self.out_of_stock = TestDataFactory.create_product(current_stock=0, min_stock=5)

    def test_stats(self):
        TestDataFactory.create_budget_request()
        response = self.client.get('/api/v1/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_products'], 3)
        self.assertEqual(response.data['total_categories'], 1)
        self.assertEqual(response.data['total_suppliers'], 1)
        self.assertEqual(response.data['low_stock_items'], 1)
        self.assertEqual(response.data['out_of_stock_items'], 1)
        self.assertEqual(response.data['total_value'], 500.0)
        self.assertEqual(response.data['pending_budget_requests'], 1)

    def test_stats_refresh_after_movement(self):
        self.client.get('/api/v1/stats/')
        services.record_movement(self.low_stock, 'in', 10, 'Restock', created_by=self.user)
        response = self.client.get('/api/v1/stats/')
        self.assertEqual(response.data['low_stock_items'], 0)
        self.assertEqual(response.data['total_movements'], 1)

    def test_dashboard(self):
        services.record_movement(self.in_stock, 'in', 5, 'Restock', created_by=self.user)
        services.record_movement(self.in_stock, 'out', 2, 'Use', created_by=self.user)
        TestDataFactory.create_budget_request(amount=Decimal('300.00'), status=BudgetRequest.STATUS_APPROVED)

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['period']['days'], 30)
        self.assertEqual(response.data['movement_totals']['stock_in'], 5)
        self.assertEqual(response.data['movement_totals']['stock_out'], 2)
        self.assertEqual(len(response.data['recent_movements']), 2)
        self.assertEqual(response.data['budget_summary']['APPROVED']['count'], 1)
        self.assertEqual(response.data['budget_summary']['PENDING']['count'], 0)

        stationery = response.data['category_distribution'][0]
        self.assertEqual(stationery['name'], 'Stationery')
        self.assertEqual(stationery['product_count'], 2)
        self.assertEqual(response.data['category_distribution'][-1]['id'], None)

    def test_dashboard_invalid_days(self):
        response = self.client.get('/api/v1/reports/dashboard/?days=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/reports/dashboard/?days=0')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_movements_summary(self):
        services.record_movement(self.in_stock, 'in', 4, 'Restock', created_by=self.user)
        services.record_movement(self.low_stock, 'out', 1, 'Use', created_by=self.user)
        response = self.client.get('/api/v1/reports/movements-summary/?days=7')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['totals']['count'], 2)
        self.assertEqual(len(response.data['daily']), 1)
        self.assertEqual(response.data['daily'][0]['net'], 3)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/stats/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
