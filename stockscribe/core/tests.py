"""
Test suite for core endpoints and management commands
Tests: login/register, user admin, app settings, audit logs, global search, health, email sending
"""
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework import status

from stockscribe.budgets.models import AccountCode, Approver, BudgetRequest
from stockscribe.catalog.models import Category, Product
from stockscribe.core.cache_signals import invalidate_all_caches
from stockscribe.core.cache_utils import (
    make_cache_key, invalidate_products_cache, PRODUCTS_LIST_PREFIX, CATEGORIES_LIST_PREFIX, STATS_PREFIX,
)
from stockscribe.core.models import AppSettings, AuditLog
from stockscribe.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockscribe.core.throttling import AuthRateThrottle
from stockscribe.core.utils import create_audit_log
from stockscribe.inventory.models import StockMovement
from stockscribe.parties.models import Supplier

User = get_user_model()


class AuthAPITests(TestCase):
    """Test login, refresh, registration and the current-user endpoint"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user(username='somchai', password='testpass123', role='manager')

    def test_login_returns_token_pair(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'somchai', 'password': 'testpass123'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_login_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'somchai', 'password': 'nope'})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh(self):
        tokens = self.client.post('/api/v1/auth/login/', {'username': 'somchai', 'password': 'testpass123'}).data
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': tokens['refresh']})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_refresh_with_garbage_token(self):
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_register_creates_staff_user(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'malee',
            'email': 'malee@test.com',
            'password': 'Wh1teElephant!',
            'password_confirm': 'Wh1teElephant!',
            'role': 'admin',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertEqual(User.objects.get(username='malee').role, 'staff')

    def test_register_password_mismatch(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'malee',
            'password': 'Wh1teElephant!',
            'password_confirm': 'Different!123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_login_attempts_are_throttled(self):
        for _ in range(5):
            response = self.client.post('/api/v1/auth/login/', {'username': 'somchai', 'password': 'nope'})
            self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

        response = self.client.post('/api/v1/auth/login/', {'username': 'somchai', 'password': 'testpass123'})
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)

        response = self.client.post('/api/v1/auth/register/', {
            'username': 'malee', 'password': 'Wh1teElephant!', 'password_confirm': 'Wh1teElephant!',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertFalse(User.objects.filter(username='malee').exists())

    def test_auth_rate_window(self):
        throttle = AuthRateThrottle()
        self.assertEqual(throttle.parse_rate('5/15m'), (5, 900))
        self.assertEqual(throttle.parse_rate('20/minute'), (20, 60))
        self.assertEqual(throttle.parse_rate('100/day'), (100, 86400))

    def test_me(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'somchai')
        self.assertFalse(response.data['is_admin'])
        self.assertTrue(response.data['can_manage_budget'])

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class CacheInvalidationTests(TestCase):
    """List caches are invalidated without touching other keys"""

    def setUp(self):
        cache.clear()

    def test_invalidation_keeps_unrelated_keys(self):
        cache.set('throttle_access_code_127.0.0.1', [1.0, 2.0], 60)
        products_key = make_cache_key(PRODUCTS_LIST_PREFIX, search='pen')
        categories_key = make_cache_key(CATEGORIES_LIST_PREFIX)
        cache.set(products_key, ['stale'], 60)
        cache.set(categories_key, ['kept'], 60)

        invalidate_products_cache()

        self.assertEqual(cache.get('throttle_access_code_127.0.0.1'), [1.0, 2.0])
        new_key = make_cache_key(PRODUCTS_LIST_PREFIX, search='pen')
        self.assertNotEqual(new_key, products_key)
        self.assertIsNone(cache.get(new_key))
        self.assertEqual(make_cache_key(CATEGORIES_LIST_PREFIX), categories_key)
        self.assertEqual(cache.get(categories_key), ['kept'])

    def test_invalidate_all_moves_every_prefix(self):
        before = [make_cache_key(prefix) for prefix in (PRODUCTS_LIST_PREFIX, CATEGORIES_LIST_PREFIX, STATS_PREFIX)]
        invalidate_all_caches()
        invalidate_all_caches()
        after = [make_cache_key(prefix) for prefix in (PRODUCTS_LIST_PREFIX, CATEGORIES_LIST_PREFIX, STATS_PREFIX)]
        self.assertTrue(all(old != new for old, new in zip(before, after)))
        self.assertTrue(after[0].startswith(f'{PRODUCTS_LIST_PREFIX}:v2:'))


class UserAPITests(TestCase):
    """User management is limited to admins"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_admin(username='boss')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_staff_cannot_list_users(self):
        staff = TestDataFactory.create_user(role='staff')
        self.client.authenticate_user(staff)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_user(self):
        response = self.client.post('/api/v1/users/', {
            'username': 'newstaff',
            'email': 'newstaff@test.com',
            'password': 'Wh1teElephant!',
            'password_confirm': 'Wh1teElephant!',
            'role': 'viewer',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['role'], 'viewer')
        self.assertNotIn('password', response.data)
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='User').exists())

    def test_update_user(self):
        user = TestDataFactory.create_user()
        response = self.client.patch(f'/api/v1/users/{user.id}/', {'role': 'manager'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.role, 'manager')

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(User.objects.filter(pk=self.admin.pk).exists())

    def test_delete_user(self):
        user = TestDataFactory.create_user()
        response = self.client.delete(f'/api/v1/users/{user.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(User.objects.filter(pk=user.pk).exists())


class AppSettingsAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_admin()
        self.staff = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()

    def test_defaults_are_created_on_read(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/settings/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['currency'], 'THB')
        self.assertEqual(AppSettings.objects.count(), 1)

    def test_staff_cannot_update(self):
        self.client.authenticate_user(self.staff)
        response = self.client.patch('/api/v1/settings/', {'company_name': 'Other'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_update_hides_smtp_password(self):
        self.client.authenticate_user(self.admin)
        response = self.client.patch('/api/v1/settings/', {
            'company_name': 'บริษัท ทดสอบ จำกัด',
            'smtp_password': 'secret',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotIn('smtp_password', response.data)
        self.assertTrue(response.data['has_smtp_password'])

        log = AuditLog.objects.get(action='settings_update')
        self.assertEqual(log.changes['smtp_password'], {'old': '***', 'new': '***'})
        self.assertEqual(log.changes['company_name']['new'], 'บริษัท ทดสอบ จำกัด')

    def test_settings_stay_single_row(self):
        AppSettings.load()
        AppSettings(company_name='Second').save()
        self.assertEqual(AppSettings.objects.count(), 1)
        self.assertEqual(AppSettings.load().company_name, 'Second')


class AuditLogAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_admin()
        self.staff = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.own = create_audit_log(action='create', model_name='Product', object_id=1, user=self.staff)
        self.other = create_audit_log(action='delete', model_name='Supplier', object_id=2, user=self.admin)

    def test_missing_fields_are_skipped(self):
        self.assertIsNone(create_audit_log(action='create', model_name='Product'))

    def test_staff_sees_own_entries(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual([entry['id'] for entry in response.data], [self.own.id])

        response = self.client.get(f'/api/v1/audit-logs/{self.other.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_filters(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/', {'model': 'Supplier'})
        self.assertEqual([entry['id'] for entry in response.data], [self.other.id])

        response = self.client.get('/api/v1/audit-logs/', {'action': 'create'})
        self.assertEqual([entry['id'] for entry in response.data], [self.own.id])


class SearchAndHealthTests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_empty_query(self):
        response = self.client.get('/api/v1/search/')
        self.assertEqual(response.data, {'products': [], 'categories': [], 'suppliers': [], 'budget_requests': []})

    def test_search_across_collections(self):
        category = TestDataFactory.create_category(name='เครื่องเขียน')
        TestDataFactory.create_product(name='ปากกาลูกลื่น', category=category)
        TestDataFactory.create_product(name='Stapler')
        TestDataFactory.create_budget_request(requester='สมชาย')

        response = self.client.get('/api/v1/search/', {'q': 'ปากกา'})
        self.assertEqual([product['name'] for product in response.data['products']], ['ปากกาลูกลื่น'])

        response = self.client.get('/api/v1/search/', {'q': 'เครื่องเขียน'})
        self.assertEqual(len(response.data['categories']), 1)
        self.assertEqual(len(response.data['products']), 1)

        response = self.client.get('/api/v1/search/', {'q': 'สมชาย'})
        self.assertEqual(len(response.data['budget_requests']), 1)

    def test_health_is_public(self):
        self.client.logout()
        response = self.client.get('/api/v1/health/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'ok')
        self.assertEqual(response.data['database'], 'ok')


class SendEmailAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_send_email(self):
        response = self.client.post('/api/v1/send-email/', {
            'to': 'a@test.com, b@test.com',
            'cc': ['c@test.com'],
            'subject': 'รายงานสต็อก',
            'html': '<p>Stock&nbsp;report</p>',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['a@test.com', 'b@test.com'])
        self.assertEqual(message.cc, ['c@test.com'])
        self.assertEqual(message.body, 'Stock report')
        self.assertTrue(AuditLog.objects.filter(action='email_send').exists())

    def test_invalid_recipient(self):
        response = self.client.post('/api/v1/send-email/', {
            'to': ['not-an-email'],
            'subject': 'Hello',
            'html': '<p>Hi</p>',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('to', response.data)
        self.assertEqual(len(mail.outbox), 0)

    def test_backend_failure_returns_500(self):
        with patch('stockscribe.core.views.send_email', side_effect=OSError('smtp down')):
            response = self.client.post('/api/v1/send-email/', {
                'to': 'a@test.com', 'subject': 'Hello', 'html': '<p>Hi</p>',
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])


class ManagementCommandTests(TestCase):

    def test_create_admin(self):
        out = StringIO()
        call_command('create_admin', '--username', 'root', '--email', 'root@test.com',
                     '--password', 'Wh1teElephant!', stdout=out)
        user = User.objects.get(username='root')
        self.assertEqual(user.role, 'admin')
        self.assertTrue(user.is_superuser)

        call_command('create_admin', '--username', 'root', '--password', 'x', stdout=out)
        self.assertEqual(User.objects.filter(username='root').count(), 1)
        self.assertIn('already exists', out.getvalue())

    def test_create_admin_requires_password(self):
        with patch.dict('os.environ', {'ADMIN_PASSWORD': ''}):
            with self.assertRaises(CommandError):
                call_command('create_admin', '--username', 'root', stdout=StringIO())

    def test_seed_data(self):
        TestDataFactory.create_admin()
        call_command('seed_data', stdout=StringIO())

        self.assertEqual(Product.objects.count(), 5)
        paper = Product.objects.get(sku='SKU001')
        self.assertEqual(paper.current_stock, 50)
        self.assertEqual(paper.location, 'คลัง A')
        self.assertEqual(StockMovement.objects.filter(product=paper).count(), 1)
        self.assertTrue(AccountCode.objects.filter(code='ACC001').exists())
        self.assertTrue(Approver.objects.filter(email='approver@example.com').exists())
        self.assertEqual(BudgetRequest.objects.count(), 1)

        # Running again does not duplicate rows
        call_command('seed_data', stdout=StringIO())
        self.assertEqual(Product.objects.count(), 5)
        self.assertEqual(StockMovement.objects.count(), 4)

    def test_seed_data_clear(self):
        TestDataFactory.create_product(name='Old product')
        call_command('seed_data', '--clear', stdout=StringIO())
        self.assertFalse(Product.objects.filter(name='Old product').exists())
        self.assertEqual(Product.objects.count(), 5)

    def test_clear_data(self):
        category = TestDataFactory.create_category()
        supplier = TestDataFactory.create_supplier()
        product = TestDataFactory.create_product(category=category, supplier=supplier)
        TestDataFactory.create_movement(product)
        TestDataFactory.create_budget_request()

        call_command('clear_data', '--confirm', stdout=StringIO())
        self.assertEqual(StockMovement.objects.count(), 0)
        self.assertEqual(Product.objects.count(), 0)
        self.assertEqual(Category.objects.count(), 0)
        self.assertEqual(Supplier.objects.count(), 0)
        self.assertEqual(BudgetRequest.objects.count(), 1)

    def test_clear_data_cancelled(self):
        TestDataFactory.create_category()
        with patch('builtins.input', return_value='no'):
            call_command('clear_data', stdout=StringIO())
        self.assertEqual(Category.objects.count(), 1)
