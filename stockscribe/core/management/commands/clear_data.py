"""
Management command to clear stock movements, products, categories and suppliers
Usage: python manage.py clear_data [--confirm]
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from stockscribe.catalog.models import Category, Product
from stockscribe.core.cache_signals import suspend_cache_signals, invalidate_all_caches
from stockscribe.inventory.models import StockMovement
from stockscribe.parties.models import Supplier


class Command(BaseCommand):
    help = 'Clear stock movements, products, categories and suppliers from the database'

    def add_arguments(self, parser):
        parser.add_argument(
            '--confirm',
            action='store_true',
            help='Skip confirmation prompt',
        )

    def handle(self, *args, **options):
        if not options['confirm']:
            self.stdout.write(self.style.WARNING('⚠️  WARNING: This will delete ALL:'))
            self.stdout.write('  - Stock movements')
            self.stdout.write('  - Products')
            self.stdout.write('  - Categories')
            self.stdout.write('  - Suppliers')
            self.stdout.write('')

            confirm = input('Type "YES" to confirm: ')
            if confirm != 'YES':
                self.stdout.write(self.style.ERROR('Operation cancelled.'))
                return

        self.stdout.write('Starting data cleanup...')

        # Children before parents
        models = [
            ('Stock movements', StockMovement),
            ('Products', Product),
            ('Categories', Category),
            ('Suppliers', Supplier),
        ]
        with suspend_cache_signals(), transaction.atomic():
            for label, model in models:
                deleted, _ = model.objects.all().delete()
                self.stdout.write(self.style.SUCCESS(f'  ✓ {label} deleted ({deleted})'))
        invalidate_all_caches()

        self.stdout.write(self.style.SUCCESS('\n✓ Data cleanup completed'))
