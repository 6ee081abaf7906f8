"""
Management command to delete expired approver access codes
Usage: python manage.py purge_access_codes

Meant to run from cron; verification ignores expired codes either way.
"""
from django.core.management.base import BaseCommand

from stockscribe.budgets.services import purge_expired_access_codes


class Command(BaseCommand):
    help = 'Delete approver access codes that have expired'

    def handle(self, *args, **options):
        deleted = purge_expired_access_codes()
        self.stdout.write(self.style.SUCCESS(f'✓ Deleted {deleted} expired access code(s)'))
