"""
Budget request workflow

Request numbering, approver access codes and approver sessions, approval
decisions and the notification emails that go with them.
"""
import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.template.loader import render_to_string
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken

from stockscribe.core.emails import send_email
from stockscribe.core.models import AppSettings
from .models import BudgetRequest, Approval, ApprovalLog, Approver, AccessCode, Requester

logger = logging.getLogger(__name__)

APPROVER_TOKEN_SCOPE = 'approval'


class WorkflowError(Exception):
    """Raised when a budget request is not in a state that allows the operation"""


def _config(name, default):
    return settings.STOCKSCRIBE.get(name, default)


def organization_name():
    return _config('ORGANIZATION_NAME', 'StockScribe')


# Request numbers
def generate_request_no(day=None):
    """Next free number of the form BR-YYYYMMDD-NNN for the given day"""
    day = day or timezone.localdate()
    prefix = f"BR-{day:%Y%m%d}-"
    sequence = BudgetRequest.objects.filter(request_no__startswith=prefix).count() + 1
    request_no = f"{prefix}{sequence:03d}"
    while BudgetRequest.objects.filter(request_no=request_no).exists():
        sequence += 1
        request_no = f"{prefix}{sequence:03d}"
    return request_no


# Access codes
def find_active_approver(email):
    if not email:
        return None
    return Approver.objects.filter(email=email.strip().lower(), is_active=True).first()


def generate_access_code(length=None):
    length = length or _config('ACCESS_CODE_LENGTH', 6)
    lowest = 10 ** (length - 1)
    return str(lowest + secrets.randbelow(9 * lowest))


def issue_access_code(approver):
    """Create or replace the approver's code; returns the AccessCode row"""
    ttl = _config('ACCESS_CODE_TTL_SECONDS', 300)
    access_code, _ = AccessCode.objects.update_or_create(
        email=approver.email,
        defaults={
            'code': generate_access_code(),
            'expires_at': timezone.now() + timedelta(seconds=ttl),
        },
    )
    return access_code


def send_access_code_email(approver, access_code, resend=False):
    ttl_minutes = max(1, _config('ACCESS_CODE_TTL_SECONDS', 300) // 60)
    context = {
        'approver': approver,
        'code': access_code.code,
        'ttl_minutes': ttl_minutes,
        'organization_name': organization_name(),
    }
    subject = 'รหัสเข้าถึงระบบพิจารณาอนุมัติ'
    if resend:
        subject += ' (ส่งใหม่)'
    send_email(
        to=approver.email,
        subject=subject,
        html_body=render_to_string('budgets/emails/access_code.html', context),
        text_body=render_to_string('budgets/emails/access_code.txt', context),
    )
    logger.info(f"Access code sent to approver {approver.name} ({approver.email})")


def consume_access_code(email, code):
    """
    Check and delete a code; returns True when it matched and had not expired

    Codes are single use: a matching code is deleted even when it has expired
    or the approver has since been deactivated.
    """
    email = (email or '').strip().lower()
    code = str(code or '').strip()
    with transaction.atomic():
        access_code = AccessCode.objects.select_for_update().filter(email=email, code=code).first()
        if access_code is None:
            return False
        access_code.delete()
    return not access_code.is_expired


def purge_expired_access_codes():
    deleted, _ = AccessCode.objects.filter(expires_at__lte=timezone.now()).delete()
    return deleted


def issue_approver_token(approver):
    """Short-lived JWT that identifies an approver session (not a user)"""
    token = AccessToken()
    token.set_exp(lifetime=timedelta(minutes=_config('APPROVER_SESSION_MINUTES', 60)))
    token['token_scope'] = APPROVER_TOKEN_SCOPE
    token['approver_id'] = approver.id
    token['email'] = approver.email
    return str(token)


# Decisions
def decide(budget_request, decision, remark='', approver_name=None, approver=None, user=None):
    """
    Record an approval decision

    The approval, the request status change and the approval log are
    written in one transaction. Raises WorkflowError when the request is
    no longer pending.
    """
    if decision not in (BudgetRequest.STATUS_APPROVED, BudgetRequest.STATUS_REJECTED):
        raise WorkflowError(f'Invalid decision: {decision}')

    if not approver_name:
        if approver is not None:
            approver_name = approver.name
        elif user is not None:
            approver_name = user.display_name or user.get_full_name() or user.username
        else:
            approver_name = ''

    with transaction.atomic():
        locked = BudgetRequest.objects.select_for_update().get(pk=budget_request.pk)
        if not locked.is_pending:
            raise WorkflowError(f'Budget request {locked.request_no} has already been {locked.status.lower()}')

        approval = Approval.objects.create(
            request=locked,
            decision=decision,
            remark=remark or '',
            approver_name=approver_name,
            approver=approver,
            decided_by=user if user is not None and user.is_authenticated else None,
        )
        locked.status = decision
        locked.approved_by = approver_name
        locked.approved_at = timezone.now()
        locked.save(update_fields=['status', 'approved_by', 'approved_at', 'updated_at'])

        ApprovalLog.objects.create(
            request=locked,
            action=ApprovalLog.ACTION_APPROVAL_PROCESSED,
            approver_name=approver_name,
            decision=decision,
            remark=remark or '',
        )

    logger.info(f"Budget request {locked.request_no} {decision} by {approver_name}")
    return approval


def notifications_enabled():
    if not _config('SEND_APPROVAL_NOTIFICATIONS', True):
        return False
    return AppSettings.load().email_notifications


def requester_email(budget_request):
    requester = (
        Requester.objects.filter(name=budget_request.requester)
        .exclude(email='')
        .order_by('-is_active', 'id')
        .first()
    )
    if requester is not None:
        return requester.email
    if budget_request.created_by_id and budget_request.created_by.email:
        return budget_request.created_by.email
    return None


def notify_decision(approval):
    """
    Email the requester about a decision, copying the approver's CC list

    Returns True when a message was sent. Delivery problems are logged and
    never propagate: the decision itself is already committed.
    """
    if not notifications_enabled():
        return False

    budget_request = approval.request
    recipient = requester_email(budget_request)
    if not recipient:
        logger.info(f"No requester email for {budget_request.request_no}; decision notification skipped")
        return False

    context = {
        'request': budget_request,
        'approval': approval,
        'approved': approval.decision == BudgetRequest.STATUS_APPROVED,
        'organization_name': organization_name(),
    }
    status_label = 'อนุมัติ' if context['approved'] else 'ไม่อนุมัติ'
    try:
        send_email(
            to=recipient,
            cc=approval.approver.cc_list if approval.approver else None,
            subject=f'ผลการพิจารณาคำขอใช้งบประมาณ {budget_request.request_no}: {status_label}',
            html_body=render_to_string('budgets/emails/decision.html', context),
            text_body=render_to_string('budgets/emails/decision.txt', context),
        )
    except Exception as e:
        logger.error(f"Failed to send decision notification for {budget_request.request_no}: {e}")
        return False
    return True


def notify_approver(budget_request, approver, approve_url=''):
    """Ask an approver to review a new request; failures are logged only"""
    if not notifications_enabled():
        return False

    context = {
        'request': budget_request,
        'approver': approver,
        'approve_url': approve_url,
        'organization_name': organization_name(),
    }
    try:
        send_email(
            to=approver.email,
            cc=approver.cc_list,
            subject=f'คำขออนุมัติใช้งบประมาณ {budget_request.request_no}',
            html_body=render_to_string('budgets/emails/approval_request.html', context),
            text_body=render_to_string('budgets/emails/approval_request.txt', context),
        )
    except Exception as e:
        logger.error(f"Failed to send approval request {budget_request.request_no} to {approver.email}: {e}")
        return False
    return True
