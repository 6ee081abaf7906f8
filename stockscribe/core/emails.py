"""
Outgoing email helpers

Messages are sent with both HTML and plain text bodies. SMTP settings saved
in AppSettings take precedence over the environment configuration.
"""
import html
import logging
import re

from django.conf import settings
from django.core.mail import EmailMultiAlternatives, get_connection
from django.core.validators import validate_email
from django.core.exceptions import ValidationError

from .models import AppSettings

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r'<[^>]*>')
_SPACE_RE = re.compile(r'\s+')


def html_to_text(body):
    """Strip tags and collapse whitespace for the plain text alternative"""
    if not body:
        return ''
    text = _TAG_RE.sub('', body)
    text = html.unescape(text.replace('&nbsp;', ' '))
    return _SPACE_RE.sub(' ', text).strip()


def split_emails(value):
    """Normalize a list or comma separated string of addresses"""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    return [email.strip() for email in value if email and email.strip()]


def invalid_emails(emails):
    invalid = []
    for email in emails:
        try:
            validate_email(email)
        except ValidationError:
            invalid.append(email)
    return invalid


def _sender_and_connection():
    app_settings = AppSettings.load()
    from_address = app_settings.from_email or settings.DEFAULT_FROM_EMAIL
    if app_settings.from_name:
        from_address = f'"{app_settings.from_name}" <{from_address}>'

    connection = None
    if app_settings.smtp_host:
        connection = get_connection(
            backend='django.core.mail.backends.smtp.EmailBackend',
            host=app_settings.smtp_host,
            port=app_settings.smtp_port,
            username=app_settings.smtp_user or None,
            password=app_settings.smtp_password or None,
            use_ssl=app_settings.smtp_secure,
            use_tls=not app_settings.smtp_secure,
        )
    return from_address, connection


def send_email(to, subject, html_body, text_body=None, cc=None, reply_to=None):
    """
    Send an email with HTML and text parts

    Raises whatever the mail backend raises; callers decide whether a
    delivery failure is fatal.
    """
    recipients = split_emails(to)
    cc_list = split_emails(cc)
    if not recipients:
        raise ValueError('At least one recipient is required')

    from_address, connection = _sender_and_connection()
    message = EmailMultiAlternatives(
        subject=subject,
        body=text_body or html_to_text(html_body),
        from_email=from_address,
        to=recipients,
        cc=cc_list,
        reply_to=split_emails(reply_to) or None,
        connection=connection,
    )
    if html_body:
        message.attach_alternative(html_body, 'text/html')
    sent = message.send()
    logger.info(f"Email sent: subject={subject!r} to={recipients} cc={cc_list}")
    return sent
