from django.urls import path
from .views import (
    account_code_list_create, account_code_detail,
    requester_list_create, requester_deactivate_all,
    approver_list_create, approver_deactivate_all,
    budget_request_list_create, budget_request_detail,
    validate_approver_email, verify_access_code, resend_access_code,
    approval_list_create, approval_for_request,
)

urlpatterns = [
    path('account-codes/', account_code_list_create, name='account-code-list-create'),
    path('account-codes/<int:pk>/', account_code_detail, name='account-code-detail'),

    path('requesters/', requester_list_create, name='requester-list-create'),
    path('requesters/deactivate-all/', requester_deactivate_all, name='requester-deactivate-all'),

    path('approvers/', approver_list_create, name='approver-list-create'),
    path('approvers/deactivate-all/', approver_deactivate_all, name='approver-deactivate-all'),

    path('budget-requests/', budget_request_list_create, name='budget-request-list-create'),
    path('budget-requests/<int:pk>/', budget_request_detail, name='budget-request-detail'),

    # Approver access (public)
    path('validate-approver-email/', validate_approver_email, name='validate-approver-email'),
    path('verify-access-code/', verify_access_code, name='verify-access-code'),
    path('resend-access-code/', resend_access_code, name='resend-access-code'),

    path('approvals/', approval_list_create, name='approval-list-create'),
    path('approvals/request/<int:request_id>/', approval_for_request, name='approval-for-request'),
]
