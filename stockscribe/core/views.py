import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ObjectDoesNotExist
from django.db import connection, DatabaseError
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone

from .emails import send_email
from .models import AppSettings, AuditLog
from .permissions import IsAdminRole, is_admin_user, can_manage_budget
from .throttling import AuthRateThrottle
from .serializers import (
    UserSerializer, UserCreateSerializer, RegisterSerializer,
    AppSettingsSerializer, AuditLogSerializer, SendEmailSerializer
)
from .utils import create_audit_log, model_changes

User = get_user_model()
logger = logging.getLogger(__name__)


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = user.role
        token['groups'] = list(user.groups.values_list('name', flat=True))
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer
    throttle_classes = [AuthRateThrottle]


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that reports deleted users as an invalid token"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def register(request):
    """User registration endpoint"""
    serializer = RegisterSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        token = CustomTokenObtainPairSerializer.get_token(user)
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            create_audit_log(request, 'create', 'User', user.id, object_name=user.username)
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request, 'update', 'User', user.id, object_name=user.username)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request, 'delete', 'User', user.id, object_name=user.username)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with groups and derived permissions"""
    user = request.user
    user_data = UserSerializer(user).data
    user_data['groups'] = list(user.groups.values_list('name', flat=True))
    user_data['is_admin'] = is_admin_user(user)
    user_data['can_manage_budget'] = can_manage_budget(user)
    # Approval decisions are taken by managers and admins
    user_data['can_approve'] = can_manage_budget(user)
    return Response(user_data)


# Application settings (single row)
@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def settings_detail(request):
    """Retrieve or update the application settings"""
    app_settings = AppSettings.load()

    if request.method == 'GET':
        return Response(AppSettingsSerializer(app_settings).data)

    if not is_admin_user(request.user):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    before = AppSettingsSerializer(app_settings).data
    serializer = AppSettingsSerializer(app_settings, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        changes = model_changes(before, serializer.data, [
            f for f in serializer.data.keys() if f not in ('updated_at', 'has_smtp_password')
        ])
        if 'smtp_password' in serializer.validated_data:
            changes['smtp_password'] = {'old': '***', 'new': '***'}
        create_audit_log(request, 'settings_update', 'AppSettings', app_settings.pk,
                         changes=changes, object_name=app_settings.company_name)
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    if not is_admin_user(request.user):
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at')
    serializer = AuditLogSerializer(queryset, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not is_admin_user(request.user) and audit_log.user_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    return Response(AuditLogSerializer(audit_log).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def global_search(request):
    """Search products, categories, suppliers and budget requests"""
    query = request.query_params.get('q', '').strip()

    if not query:
        return Response({
            'products': [],
            'categories': [],
            'suppliers': [],
            'budget_requests': [],
        })

    from stockscribe.catalog.filters import ProductFilter
    from stockscribe.catalog.models import Product, Category
    from stockscribe.catalog.serializers import ProductSerializer, CategorySerializer
    from stockscribe.parties.models import Supplier
    from stockscribe.parties.serializers import SupplierSerializer
    from stockscribe.budgets.models import BudgetRequest
    from stockscribe.budgets.serializers import BudgetRequestSerializer

    results = {}

    products_queryset = Product.objects.select_related('category', 'supplier')
    products = ProductFilter({'search': query}, queryset=products_queryset).qs[:20]
    results['products'] = ProductSerializer(products, many=True).data

    categories = Category.objects.filter(
        Q(name__icontains=query) | Q(description__icontains=query)
    )[:20]
    results['categories'] = CategorySerializer(categories, many=True).data

    suppliers = Supplier.objects.filter(
        Q(name__icontains=query) |
        Q(contact_person__icontains=query) |
        Q(phone__icontains=query) |
        Q(email__icontains=query)
    )[:20]
    results['suppliers'] = SupplierSerializer(suppliers, many=True).data

    budget_requests = BudgetRequest.objects.filter(
        Q(request_no__icontains=query) | Q(requester__icontains=query)
    )[:20]
    results['budget_requests'] = BudgetRequestSerializer(budget_requests, many=True).data

    return Response(results)


@api_view(['GET'])
@permission_classes([AllowAny])
def health(request):
    """Liveness probe reporting database and cache connectivity"""
    checks = {'database': 'ok', 'cache': 'ok'}

    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
    except DatabaseError as e:
        logger.error(f"Health check database failure: {e}")
        checks['database'] = 'error'

    try:
        cache.set('health_check', 'ok', 10)
        if cache.get('health_check') != 'ok':
            checks['cache'] = 'error'
    except Exception as e:
        logger.error(f"Health check cache failure: {e}")
        checks['cache'] = 'error'

    healthy = all(value == 'ok' for value in checks.values())
    return Response({
        'status': 'ok' if healthy else 'degraded',
        **checks,
        'timestamp': timezone.now().isoformat(),
    }, status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def send_email_view(request):
    """Send an HTML email, deriving the text part when it is not supplied"""
    serializer = SendEmailSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        send_email(
            to=data['to'],
            subject=data['subject'],
            html_body=data['html'],
            text_body=data.get('text') or None,
            cc=data.get('cc'),
            reply_to=data.get('reply_to') or None,
        )
    except Exception as e:
        logger.error(f"Failed to send email '{data['subject']}': {e}")
        return Response({'success': False, 'message': f'Failed to send email: {e}'},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    create_audit_log(request, 'email_send', 'Email', '-', changes={
        'to': data['to'], 'cc': data.get('cc') or [], 'subject': data['subject'],
    }, object_name=data['subject'])
    return Response({'success': True, 'message': 'Email sent successfully'})
