"""
Management command to create the initial admin user
Usage: python manage.py create_admin [--username admin] [--email admin@stockscribe.com] [--password ...]
"""
import os

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

User = get_user_model()


class Command(BaseCommand):
    help = 'Create the admin user if it does not exist yet'

    def add_arguments(self, parser):
        parser.add_argument('--username', default=os.getenv('ADMIN_USERNAME', 'admin'))
        parser.add_argument('--email', default=os.getenv('ADMIN_EMAIL', 'admin@stockscribe.com'))
        parser.add_argument('--password', default=os.getenv('ADMIN_PASSWORD'),
                            help='Defaults to $ADMIN_PASSWORD')

    def handle(self, *args, **options):
        username = options['username']
        email = options['email']

        existing = User.objects.filter(username=username).first() or User.objects.filter(email=email).first()
        if existing is not None:
            self.stdout.write(self.style.WARNING(
                f'⚠ Admin user already exists: {existing.username} ({existing.email})'
            ))
            return

        password = options['password']
        if not password:
            raise CommandError('A password is required (--password or $ADMIN_PASSWORD)')

        User.objects.create_superuser(
            username=username,
            email=email,
            password=password,
            role='admin',
            display_name='Admin',
        )
        self.stdout.write(self.style.SUCCESS(f'✓ Admin user created: {username} ({email})'))
