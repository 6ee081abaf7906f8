"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from stockscribe.catalog.models import Category, Product
from stockscribe.parties.models import Supplier
from stockscribe.inventory.models import StockMovement
from stockscribe.budgets.models import AccountCode, Requester, Approver, BudgetRequest
from decimal import Decimal
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='staff', is_staff=False,
                    is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            is_staff=is_staff,
            is_superuser=is_superuser
        )

    @staticmethod
    def create_admin(username=None):
        """Create a user with the admin role"""
        return TestDataFactory.create_user(username=username, role='admin')

    @staticmethod
    def create_category(name=None, description=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(
            name=name,
            description=description or f'Test category {name}'
        )

    @staticmethod
    def create_supplier(name=None, phone=None, email=None):
        """Create a test supplier"""
        if not name:
            name = f'Supplier_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'0{random.randint(800000000, 999999999)}'
        if not email:
            email = f'{name.lower()}@test.com'
        return Supplier.objects.create(
            name=name,
            phone=phone,
            email=email
        )

    @staticmethod
    def create_product(name=None, sku=None, category=None, supplier=None, current_stock=0, min_stock=5,
                       unit_price=None, barcode=''):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU_{TestDataFactory.random_string(8)}'
        if unit_price is None:
            unit_price = Decimal('100.00')
        return Product.objects.create(
            name=name,
            sku=sku,
            category=category,
            supplier=supplier,
            current_stock=current_stock,
            min_stock=min_stock,
            unit_price=unit_price,
            unit='ชิ้น',
            barcode=barcode
        )

    @staticmethod
    def create_movement(product, movement_type='in', quantity=1, reason='Test', user=None):
        """Create a movement row without touching product stock"""
        return StockMovement.objects.create(
            product=product,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            created_by=user
        )

    @staticmethod
    def create_account_code(code=None, name=None):
        """Create a test account code"""
        if not code:
            code = f'AC-{TestDataFactory.random_string(5).upper()}'
        return AccountCode.objects.create(code=code, name=name or f'Account {code}')

    @staticmethod
    def create_requester(name=None, email=None, department='Operations'):
        """Create a test requester"""
        if not name:
            name = f'Requester_{TestDataFactory.random_string(6)}'
        if email is None:
            email = f'{name.lower()}@test.com'
        return Requester.objects.create(name=name, email=email, department=department)

    @staticmethod
    def create_approver(name=None, email=None, cc_emails=''):
        """Create a test approver"""
        if not name:
            name = f'Approver_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{name.lower()}@test.com'
        return Approver.objects.create(
            name=name,
            email=email,
            department='Finance',
            position='Manager',
            cc_emails=cc_emails
        )

    @staticmethod
    def create_budget_request(user=None, requester='Somchai', amount=None, status=BudgetRequest.STATUS_PENDING,
                              request_no=None, material_list=None):
        """Create a test budget request"""
        if not request_no:
            request_no = f"BR-{timezone.localdate():%Y%m%d}-{TestDataFactory.random_string(4).upper()}"
        if amount is None:
            amount = Decimal('1500.00')
        return BudgetRequest.objects.create(
            request_no=request_no,
            requester=requester,
            account_code='AC-100',
            account_name='Office supplies',
            amount=amount,
            material_list=material_list or [],
            status=status,
            created_by=user
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helpers"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def authenticate_approver(self, approver):
        """Authenticate the client with an approver session"""
        from stockscribe.budgets.services import issue_approver_token
        self.credentials(HTTP_X_APPROVER_TOKEN=issue_approver_token(approver))
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
