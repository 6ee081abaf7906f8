import logging
from collections.abc import Mapping

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes, throttle_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.authentication import JWTAuthentication
from django.db.models import Q
from django.shortcuts import get_object_or_404

from stockscribe.core.permissions import IsAdminRole
from stockscribe.core.throttling import AccessCodeRateThrottle
from stockscribe.core.utils import create_audit_log, model_changes
from . import services
from .authentication import ApproverTokenAuthentication
from .models import AccountCode, Requester, Approver, BudgetRequest, Approval
from .permissions import IsAuthenticatedOrApprover, CanDecideBudget, approver_from_request
from .serializers import (
    AccountCodeSerializer, RequesterSerializer, ApproverSerializer,
    BudgetRequestSerializer, BudgetRequestCreateSerializer,
    ApprovalSerializer, ApprovalCreateSerializer, ApprovalLogSerializer,
)

logger = logging.getLogger(__name__)

# Authenticated users or approver sessions
USER_OR_APPROVER_AUTH = [JWTAuthentication, ApproverTokenAuthentication]

BUDGET_CONTENT_FIELDS = {
    'request_no', 'requester', 'request_date', 'account_code', 'account_name', 'amount', 'note', 'material_list'
}
BUDGET_STATUS_FIELDS = {'status', 'approved_by', 'approved_at'}
BUDGET_AUDIT_FIELDS = sorted(BUDGET_CONTENT_FIELDS | BUDGET_STATUS_FIELDS)

MSG_EMAIL_REQUIRED = 'กรุณากรอกอีเมล'
MSG_EMAIL_AND_CODE_REQUIRED = 'กรุณากรอกอีเมลและรหัสเข้าถึง'
MSG_NOT_AN_APPROVER = 'อีเมลนี้ไม่มีสิทธิ์เข้าถึงระบบพิจารณาอนุมัติ กรุณาติดต่อผู้ดูแลระบบ'
MSG_APPROVER_MISSING = 'ไม่พบข้อมูลผู้อนุมัติ กรุณาติดต่อผู้ดูแลระบบ'
MSG_INVALID_CODE = 'รหัสเข้าถึงไม่ถูกต้องหรือหมดอายุแล้ว กรุณาลองใหม่อีกครั้ง'
MSG_EMAIL_FAILED = 'เกิดข้อผิดพลาดในการส่งอีเมล กรุณาลองใหม่อีกครั้ง'
MSG_CODE_VALID = 'รหัสเข้าถึงถูกต้อง'


def _snapshot(budget_request):
    return {field: getattr(budget_request, field) for field in BUDGET_AUDIT_FIELDS}


# Account code views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def account_code_list_create(request):
    """List account codes (ordered by code) or create one"""
    if request.method == 'GET':
        queryset = AccountCode.objects.all().order_by('code')
        if request.query_params.get('active') == 'true':
            queryset = queryset.filter(is_active=True)
        return Response(AccountCodeSerializer(queryset, many=True).data)
    else:
        serializer = AccountCodeSerializer(data=request.data)
        if serializer.is_valid():
            account_code = serializer.save()
            create_audit_log(request, 'create', 'AccountCode', account_code.id,
                             object_name=account_code.name, object_reference=account_code.code)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def account_code_detail(request, pk):
    """Retrieve, update or delete an account code"""
    account_code = get_object_or_404(AccountCode, pk=pk)

    if request.method == 'GET':
        return Response(AccountCodeSerializer(account_code).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = AccountCodeSerializer(account_code, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request, 'update', 'AccountCode', account_code.id,
                             object_name=account_code.name, object_reference=account_code.code)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request, 'delete', 'AccountCode', account_code.id,
                         object_name=account_code.name, object_reference=account_code.code)
        account_code.delete()
        return Response({'success': True, 'message': 'Account code deleted'})


# Requester views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def requester_list_create(request):
    """List active requesters or create one"""
    if request.method == 'GET':
        queryset = Requester.objects.filter(is_active=True).order_by('name')
        return Response(RequesterSerializer(queryset, many=True).data)
    else:
        serializer = RequesterSerializer(data=request.data)
        if serializer.is_valid():
            requester = serializer.save(is_active=True)
            create_audit_log(request, 'create', 'Requester', requester.id, object_name=requester.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def requester_deactivate_all(request):
    updated = Requester.objects.filter(is_active=True).update(is_active=False)
    create_audit_log(request, 'update', 'Requester', 'all', changes={'deactivated': updated})
    logger.info(f"{updated} requesters deactivated by {request.user.username}")
    return Response({'success': True, 'message': 'All requesters deactivated', 'updated': updated})


# Approver views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def approver_list_create(request):
    """List active approvers or create one"""
    if request.method == 'GET':
        queryset = Approver.objects.filter(is_active=True).order_by('name')
        return Response(ApproverSerializer(queryset, many=True).data)
    else:
        serializer = ApproverSerializer(data=request.data)
        if serializer.is_valid():
            approver = serializer.save(is_active=True)
            create_audit_log(request, 'create', 'Approver', approver.id,
                             object_name=approver.name, object_reference=approver.email)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def approver_deactivate_all(request):
    updated = Approver.objects.filter(is_active=True).update(is_active=False)
    create_audit_log(request, 'update', 'Approver', 'all', changes={'deactivated': updated})
    logger.info(f"{updated} approvers deactivated by {request.user.username}")
    return Response({'success': True, 'message': 'All approvers deactivated', 'updated': updated})


# Budget request views
@api_view(['GET', 'POST'])
@authentication_classes(USER_OR_APPROVER_AUTH)
@permission_classes([IsAuthenticatedOrApprover])
def budget_request_list_create(request):
    """List budget requests or create a new one"""
    if request.method == 'GET':
        queryset = BudgetRequest.objects.select_related('created_by').order_by('-created_at', '-id')

        status_filter = request.query_params.get('status', None)
        if status_filter:
            queryset = queryset.filter(status=status_filter.upper())

        requester = request.query_params.get('requester', None)
        if requester:
            queryset = queryset.filter(requester__icontains=requester)

        search = request.query_params.get('search', None)
        if search:
            queryset = queryset.filter(
                Q(request_no__icontains=search) |
                Q(requester__icontains=search) |
                Q(account_code__icontains=search) |
                Q(account_name__icontains=search) |
                Q(note__icontains=search)
            )
        return Response(BudgetRequestSerializer(queryset, many=True).data)

    # Approver sessions may only read and decide
    if not request.user.is_authenticated:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = BudgetRequestCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    budget_request = serializer.save(created_by=request.user)
    create_audit_log(request, 'budget_request_create', 'BudgetRequest', budget_request.id,
                     changes={'amount': str(budget_request.amount), 'account_code': budget_request.account_code},
                     object_name=budget_request.requester, object_reference=budget_request.request_no)

    response_data = dict(serializer.data)
    approver_id = serializer.validated_data.get('approver_id')
    if approver_id:
        approver = Approver.objects.filter(pk=approver_id, is_active=True).first()
        if approver is None:
            response_data['approver_notified'] = False
        else:
            response_data['approver_notified'] = services.notify_approver(
                budget_request, approver, approve_url=serializer.validated_data.get('approve_url', '')
            )
    return Response(response_data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@authentication_classes(USER_OR_APPROVER_AUTH)
@permission_classes([IsAuthenticatedOrApprover])
def budget_request_detail(request, pk):
    """
    Retrieve, update or delete a budget request

    Content can only change while the request is PENDING; a status-only
    update is accepted at any time. Only PENDING requests can be deleted.
    """
    budget_request = get_object_or_404(BudgetRequest, pk=pk)

    if request.method == 'GET':
        data = dict(BudgetRequestSerializer(budget_request).data)
        data['approval_logs'] = ApprovalLogSerializer(budget_request.approval_logs.all(), many=True).data
        return Response(data)

    if not request.user.is_authenticated:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    if request.method in ('PUT', 'PATCH'):
        if not isinstance(request.data, Mapping):
            return Response({'error': 'Request body must be an object'}, status=status.HTTP_400_BAD_REQUEST)
        submitted = set(request.data.keys())
        if not submitted & (BUDGET_CONTENT_FIELDS | BUDGET_STATUS_FIELDS):
            return Response({'error': 'No fields to update'}, status=status.HTTP_400_BAD_REQUEST)
        if submitted & BUDGET_CONTENT_FIELDS and not budget_request.is_pending:
            return Response({'error': 'Can only edit requests with PENDING status'},
                            status=status.HTTP_400_BAD_REQUEST)

        before = _snapshot(budget_request)
        # PUT updates only the submitted fields
        serializer = BudgetRequestSerializer(budget_request, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request, 'budget_request_update', 'BudgetRequest', budget_request.id,
                             changes=model_changes(before, _snapshot(budget_request), BUDGET_AUDIT_FIELDS),
                             object_name=budget_request.requester, object_reference=budget_request.request_no)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if not budget_request.is_pending:
        return Response({'error': 'Can only delete requests with PENDING status'},
                        status=status.HTTP_400_BAD_REQUEST)
    request_id, request_no = budget_request.id, budget_request.request_no
    budget_request.delete()
    create_audit_log(request, 'budget_request_delete', 'BudgetRequest', request_id, object_reference=request_no)
    return Response({'success': True, 'message': 'Budget request deleted successfully'})


# Approver access codes (public)
def _body(request):
    return request.data if isinstance(request.data, Mapping) else {}


def _issue_and_send_code(request, resend=False):
    email = str(_body(request).get('email') or '').strip()
    if not email:
        return Response({'success': False, 'message': MSG_EMAIL_REQUIRED}, status=status.HTTP_400_BAD_REQUEST)

    approver = services.find_active_approver(email)
    if approver is None:
        logger.warning(f"Access code requested for unknown approver email {email.lower()}")
        return Response({'success': False, 'message': MSG_NOT_AN_APPROVER}, status=status.HTTP_403_FORBIDDEN)

    access_code = services.issue_access_code(approver)
    try:
        services.send_access_code_email(approver, access_code, resend=resend)
    except Exception as e:
        logger.error(f"Error sending access code email to {approver.email}: {e}")
        return Response({'success': False, 'message': MSG_EMAIL_FAILED},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    create_audit_log(request, 'access_code_issue', 'Approver', approver.id,
                     changes={'resend': resend}, object_name=approver.name, object_reference=approver.email)

    if resend:
        message = f'ส่งรหัสเข้าถึงใหม่ไปยัง {email} เรียบร้อยแล้ว กรุณาตรวจสอบอีเมลของคุณ'
    else:
        message = f'ส่งรหัสเข้าถึงไปยัง {email} เรียบร้อยแล้ว กรุณาตรวจสอบอีเมลของคุณ'
    return Response({'success': True, 'message': message, 'approver': approver.summary()})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([AccessCodeRateThrottle])
def validate_approver_email(request):
    """Check an approver email and send a one-time access code"""
    return _issue_and_send_code(request)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([AccessCodeRateThrottle])
def resend_access_code(request):
    """Replace the approver's access code and send it again"""
    return _issue_and_send_code(request, resend=True)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([AccessCodeRateThrottle])
def verify_access_code(request):
    """Consume an access code and open an approver session"""
    body = _body(request)
    email = str(body.get('email') or '').strip()
    code = str(body.get('code') or '').strip()
    if not email or not code:
        return Response({'success': False, 'message': MSG_EMAIL_AND_CODE_REQUIRED},
                        status=status.HTTP_400_BAD_REQUEST)

    if not services.consume_access_code(email, code):
        return Response({'success': False, 'message': MSG_INVALID_CODE}, status=status.HTTP_403_FORBIDDEN)

    approver = services.find_active_approver(email)
    if approver is None:
        return Response({'success': False, 'message': MSG_APPROVER_MISSING}, status=status.HTTP_403_FORBIDDEN)

    create_audit_log(request, 'access_code_verify', 'Approver', approver.id,
                     object_name=approver.name, object_reference=approver.email)
    logger.info(f"Access code verified for approver {approver.name} ({approver.email})")
    return Response({
        'success': True,
        'message': MSG_CODE_VALID,
        'approver': approver.summary(),
        'token': services.issue_approver_token(approver),
    })


# Approval views
@api_view(['GET', 'POST'])
@authentication_classes(USER_OR_APPROVER_AUTH)
@permission_classes([IsAuthenticatedOrApprover])
def approval_list_create(request):
    """List approval decisions or decide a pending budget request"""
    if request.method == 'GET':
        queryset = Approval.objects.select_related('request').order_by('-created_at', '-id')
        return Response(ApprovalSerializer(queryset, many=True).data)

    if not CanDecideBudget().has_permission(request, None):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = ApprovalCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    budget_request = data['request_id']
    approver = approver_from_request(request)
    try:
        approval = services.decide(
            budget_request,
            decision=data['decision'],
            remark=data.get('remark', ''),
            approver_name=data.get('approver_name') or None,
            approver=approver,
            user=request.user if request.user.is_authenticated else None,
        )
    except services.WorkflowError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request, 'approval', 'BudgetRequest', budget_request.id,
        changes={'decision': approval.decision, 'remark': approval.remark, 'approver_name': approval.approver_name},
        object_name=approval.approver_name, object_reference=budget_request.request_no,
    )

    response_data = dict(ApprovalSerializer(approval).data)
    response_data['notification_sent'] = services.notify_decision(approval)
    return Response(response_data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@authentication_classes(USER_OR_APPROVER_AUTH)
@permission_classes([IsAuthenticatedOrApprover])
def approval_for_request(request, request_id):
    """Latest decision for a budget request"""
    approval = (
        Approval.objects.select_related('request')
        .filter(request_id=request_id)
        .order_by('-created_at', '-id')
        .first()
    )
    if approval is None:
        return Response({'error': 'Approval not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(ApprovalSerializer(approval).data)
