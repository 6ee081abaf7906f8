"""
Management command to load Thai sample data for every collection
Usage: python manage.py seed_data [--clear]
"""
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from stockscribe.budgets.models import AccountCode, Approver, BudgetRequest, Requester
from stockscribe.budgets.services import generate_request_no
from stockscribe.catalog.models import Category, Product
from stockscribe.core.cache_signals import suspend_cache_signals, invalidate_all_caches
from stockscribe.core.models import AppSettings
from stockscribe.inventory.models import StockMovement
from stockscribe.inventory.services import record_movement
from stockscribe.parties.models import Supplier

User = get_user_model()

CATEGORIES = [
    ('เครื่องเขียน', 'อุปกรณ์เครื่องเขียนและสำนักงาน'),
    ('อุปกรณ์ทำความสะอาด', 'น้ำยาและอุปกรณ์ทำความสะอาด'),
    ('อุปกรณ์ไฟฟ้า', 'หลอดไฟ ปลั๊ก และสายไฟ'),
]

SUPPLIERS = [
    {'name': 'บริษัท ออฟฟิศเมท จำกัด', 'contact_person': 'คุณสมชาย ใจดี', 'email': 'sales@officemate.example.com',
     'phone': '02-123-4567', 'address': 'กรุงเทพมหานคร'},
    {'name': 'ห้างหุ้นส่วน โคราชซัพพลาย', 'contact_person': 'คุณมาลี ศรีสุข', 'email': 'contact@koratsupply.example.com',
     'phone': '044-234-567', 'address': 'นครราชสีมา'},
]

# name, sku, category index, supplier index, unit price, stock, min, max, unit, location, barcode
PRODUCTS = [
    ('กระดาษ A4 80 แกรม', 'SKU001', 0, 0, '120.00', 50, 10, 100, 'รีม', 'คลัง A', '1234567890123'),
    ('ปากกาลูกลื่น สีน้ำเงิน', 'SKU002', 0, 0, '8.50', 200, 50, 500, 'ด้าม', 'คลัง A', '1234567890124'),
    ('แฟ้มเอกสาร', 'SKU003', 0, 1, '35.00', 8, 10, 60, 'เล่ม', 'คลัง A', '1234567890125'),
    ('น้ำยาถูพื้น', 'SKU004', 1, 1, '89.00', 0, 5, 30, 'แกลลอน', 'คลัง B', '1234567890126'),
    ('หลอดไฟ LED 18W', 'SKU005', 2, 1, '145.00', 25, 10, 80, 'หลอด', 'คลัง C', '1234567890127'),
]


class Command(BaseCommand):
    help = 'Load Thai sample data (products, suppliers, movements, budget requests, ...)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete existing sample collections before seeding',
        )

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('=' * 80))
        self.stdout.write(self.style.SUCCESS('SEEDING SAMPLE DATA'))
        self.stdout.write(self.style.SUCCESS('=' * 80))

        with suspend_cache_signals(), transaction.atomic():
            if options['clear']:
                self.stdout.write(self.style.WARNING('Clearing existing data...'))
                for model in (StockMovement, Product, Category, Supplier, BudgetRequest,
                              AccountCode, Requester, Approver):
                    model.objects.all().delete()

            self._seed()
        invalidate_all_caches()

        self.stdout.write(self.style.SUCCESS('\n✓ Sample data loaded'))

    def _seed(self):
        user = User.objects.filter(role='admin').order_by('id').first()

        categories = []
        for name, description in CATEGORIES:
            category, _ = Category.objects.get_or_create(name=name, defaults={'description': description})
            categories.append(category)
        self.stdout.write(f'  ✓ Categories: {len(categories)}')

        suppliers = []
        for data in SUPPLIERS:
            supplier, _ = Supplier.objects.get_or_create(name=data['name'], defaults=data)
            suppliers.append(supplier)
        self.stdout.write(f'  ✓ Suppliers: {len(suppliers)}')

        created_products = 0
        for name, sku, category, supplier, price, stock, min_stock, max_stock, unit, location, barcode in PRODUCTS:
            product, created = Product.objects.get_or_create(sku=sku, defaults={
                'name': name,
                'description': f'{name} สำหรับทดสอบ',
                'category': categories[category],
                'supplier': suppliers[supplier],
                'unit_price': Decimal(price),
                'current_stock': 0,
                'min_stock': min_stock,
                'max_stock': max_stock,
                'unit': unit,
                'location': location,
                'barcode': barcode,
            })
            if created:
                created_products += 1
                if stock:
                    # Opening stock goes through a movement so history matches stock
                    record_movement(product, StockMovement.TYPE_IN, stock, 'ยอดยกมา', reference='OPENING',
                                    created_by=user)
        self.stdout.write(f'  ✓ Products created: {created_products}')

        account_code, _ = AccountCode.objects.get_or_create(
            code='ACC001', defaults={'name': 'ค่าวัสดุสำนักงาน', 'description': 'งบประมาณวัสดุสิ้นเปลือง'}
        )
        Requester.objects.get_or_create(
            email='requester@example.com', defaults={'name': 'ผู้ขอใช้งบประมาณ', 'department': 'ฝ่ายปฏิบัติการ'}
        )
        Approver.objects.get_or_create(
            email='approver@example.com',
            defaults={'name': 'ผู้อนุมัติตัวอย่าง', 'department': 'ฝ่ายบริหาร', 'position': 'ผู้จัดการ'},
        )
        self.stdout.write('  ✓ Account codes, requesters and approvers')

        if not BudgetRequest.objects.exists():
            materials = [
                {'name': 'กระดาษ A4 80 แกรม', 'quantity': 10, 'unit': 'รีม', 'unit_price': 120},
                {'name': 'แฟ้มเอกสาร', 'quantity': 20, 'unit': 'เล่ม', 'unit_price': 35},
            ]
            BudgetRequest.objects.create(
                request_no=generate_request_no(),
                requester='ผู้ขอใช้งบประมาณ',
                account_code=account_code.code,
                account_name=account_code.name,
                amount=Decimal('1900.00'),
                note='ขอเบิกวัสดุสำนักงานประจำเดือน',
                material_list=materials,
                created_by=user,
            )
            self.stdout.write('  ✓ Budget request')

        settings_row = AppSettings.load()
        if settings_row.company_name == 'StockScribe':
            settings_row.company_name = 'บริษัทตัวอย่าง จำกัด'
            settings_row.email = 'info@example.com'
            settings_row.save()
        self.stdout.write('  ✓ App settings')
