"""WSGI entry point for the StockScribe API."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'stockscribe.config.settings')

application = get_wsgi_application()
