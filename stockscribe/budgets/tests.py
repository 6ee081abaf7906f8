"""
Test suite for the budget request workflow
Tests: request numbering, PENDING-only edits, approver access codes, approver sessions and decisions
"""
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core import mail
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from stockscribe.core.models import AuditLog
from stockscribe.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockscribe.budgets import services
from stockscribe.budgets.models import AccessCode, Approval, ApprovalLog, BudgetRequest, Requester, Approver
from stockscribe.budgets.serializers import BudgetRequestSerializer
from stockscribe.core.throttling import AccessCodeRateThrottle


class RequestNumberTests(TestCase):
    """Test BR-YYYYMMDD-NNN generation"""

    def test_first_number_of_the_day(self):
        self.assertEqual(services.generate_request_no(date(2024, 3, 5)), 'BR-20240305-001')

    def test_numbers_increase_per_day(self):
        TestDataFactory.create_budget_request(request_no='BR-20240305-001')
        TestDataFactory.create_budget_request(request_no='BR-20240305-002')
        TestDataFactory.create_budget_request(request_no='BR-20240306-001')
        self.assertEqual(services.generate_request_no(date(2024, 3, 5)), 'BR-20240305-003')

    def test_skips_taken_numbers(self):
        TestDataFactory.create_budget_request(request_no='BR-20240305-002')
        self.assertEqual(services.generate_request_no(date(2024, 3, 5)), 'BR-20240305-003')


class BudgetRequestAPITests(TestCase):
    """Test budget request endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def _payload(self, **overrides):
        data = {
            'requester': 'Somchai',
            'account_code': 'AC-100',
            'account_name': 'Office supplies',
            'amount': '2500.00',
            'note': 'Monthly supplies',
            'material_list': [
                {'name': 'Paper A4', 'quantity': 10, 'unit': 'ream', 'unit_price': 120},
            ],
        }
        data.update(overrides)
        return data

    def test_create_generates_request_no(self):
        response = self.client.post('/api/v1/budget-requests/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['request_no'].startswith(f"BR-{timezone.localdate():%Y%m%d}-"))
        self.assertEqual(response.data['status'], 'PENDING')
        self.assertEqual(response.data['material_list'][0]['name'], 'Paper A4')
        self.assertTrue(AuditLog.objects.filter(action='budget_request_create').exists())

    def test_create_defaults_amount_to_material_total(self):
        payload = self._payload()
        payload.pop('amount')
        response = self.client.post('/api/v1/budget-requests/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['amount']), Decimal('1200.00'))

    def test_create_requires_positive_amount(self):
        response = self.client.post('/api/v1/budget-requests/', self._payload(amount='0'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('amount', response.data)

    def test_create_rejects_duplicate_request_no(self):
        TestDataFactory.create_budget_request(request_no='BR-20240101-001')
        response = self.client.post(
            '/api/v1/budget-requests/', self._payload(request_no='BR-20240101-001'), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_notifies_selected_approver(self):
        approver = TestDataFactory.create_approver(email='boss@test.com')
        response = self.client.post(
            '/api/v1/budget-requests/', self._payload(approver_id=approver.id), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['approver_notified'])
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['boss@test.com'])

    def test_create_with_non_numeric_approver_id_fails(self):
        response = self.client.post(
            '/api/v1/budget-requests/', self._payload(approver_id='abc'), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('approver_id', response.data)
        self.assertFalse(BudgetRequest.objects.exists())
        self.assertEqual(len(mail.outbox), 0)

    def test_create_with_inactive_approver_is_saved_without_notice(self):
        approver = TestDataFactory.create_approver(email='gone@test.com')
        Approver.objects.filter(pk=approver.pk).update(is_active=False)
        response = self.client.post(
            '/api/v1/budget-requests/', self._payload(approver_id=approver.id), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['approver_notified'])
        self.assertNotIn('approver_id', response.data)
        self.assertEqual(len(mail.outbox), 0)

    def test_create_takes_next_number_when_generated_one_is_taken(self):
        TestDataFactory.create_budget_request(request_no='BR-20240101-001')
        with patch('stockscribe.budgets.services.generate_request_no',
                   side_effect=['BR-20240101-001', 'BR-20240101-002']):
            response = self.client.post('/api/v1/budget-requests/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['request_no'], 'BR-20240101-002')
        self.assertEqual(BudgetRequest.objects.count(), 2)

    def test_create_with_number_taken_after_validation_fails_cleanly(self):
        TestDataFactory.create_budget_request(request_no='BR-20240101-001')
        with patch.object(BudgetRequestSerializer, 'validate_request_no', lambda self, value: value):
            response = self.client.post(
                '/api/v1/budget-requests/', self._payload(request_no='BR-20240101-001'), format='json'
            )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('request_no', response.data)
        self.assertEqual(BudgetRequest.objects.count(), 1)

    def test_list_filters_by_status_and_search(self):
        TestDataFactory.create_budget_request(requester='Somchai')
        TestDataFactory.create_budget_request(requester='Malee', status=BudgetRequest.STATUS_APPROVED)

        response = self.client.get('/api/v1/budget-requests/?status=pending')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['requester'] for item in response.data], ['Somchai'])

        response = self.client.get('/api/v1/budget-requests/?search=male')
        self.assertEqual([item['requester'] for item in response.data], ['Malee'])

    def test_update_pending_request(self):
        budget_request = TestDataFactory.create_budget_request(user=self.user)
        response = self.client.put(
            f'/api/v1/budget-requests/{budget_request.id}/', {'note': 'Updated note'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        budget_request.refresh_from_db()
        self.assertEqual(budget_request.note, 'Updated note')
        self.assertEqual(budget_request.requester, 'Somchai')

    def test_update_content_of_decided_request_fails(self):
        budget_request = TestDataFactory.create_budget_request(status=BudgetRequest.STATUS_APPROVED)
        response = self.client.put(
            f'/api/v1/budget-requests/{budget_request.id}/', {'amount': '10.00'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Can only edit requests with PENDING status')

    def test_status_only_update_is_allowed_after_decision(self):
        budget_request = TestDataFactory.create_budget_request(status=BudgetRequest.STATUS_REJECTED)
        response = self.client.patch(
            f'/api/v1/budget-requests/{budget_request.id}/', {'status': 'PENDING'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        budget_request.refresh_from_db()
        self.assertEqual(budget_request.status, BudgetRequest.STATUS_PENDING)

    def test_update_without_fields_fails(self):
        budget_request = TestDataFactory.create_budget_request()
        response = self.client.put(f'/api/v1/budget-requests/{budget_request.id}/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'No fields to update')

    def test_update_with_list_body_fails(self):
        budget_request = TestDataFactory.create_budget_request()
        response = self.client.patch(f'/api/v1/budget-requests/{budget_request.id}/', [1, 2], format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Request body must be an object')

    def test_delete_pending_request(self):
        budget_request = TestDataFactory.create_budget_request()
        response = self.client.delete(f'/api/v1/budget-requests/{budget_request.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(BudgetRequest.objects.filter(pk=budget_request.id).exists())

    def test_delete_decided_request_fails(self):
        budget_request = TestDataFactory.create_budget_request(status=BudgetRequest.STATUS_APPROVED)
        response = self.client.delete(f'/api/v1/budget-requests/{budget_request.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(BudgetRequest.objects.filter(pk=budget_request.id).exists())

    def test_unauthenticated_access_denied(self):
        self.client.logout()
        response = self.client.get('/api/v1/budget-requests/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class MasterDataAPITests(TestCase):
    """Test account codes, requesters and approvers"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_account_codes_are_ordered_by_code(self):
        TestDataFactory.create_account_code(code='B-200')
        TestDataFactory.create_account_code(code='A-100')
        response = self.client.get('/api/v1/account-codes/')
        self.assertEqual([item['code'] for item in response.data], ['A-100', 'B-200'])

    def test_requester_list_only_active(self):
        TestDataFactory.create_requester(name='Active')
        inactive = TestDataFactory.create_requester(name='Inactive')
        inactive.is_active = False
        inactive.save()
        response = self.client.get('/api/v1/requesters/')
        self.assertEqual([item['name'] for item in response.data], ['Active'])

    def test_deactivate_all_requesters(self):
        TestDataFactory.create_requester()
        TestDataFactory.create_requester()
        response = self.client.put('/api/v1/requesters/deactivate-all/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['updated'], 2)
        self.assertFalse(Requester.objects.filter(is_active=True).exists())

    def test_deactivate_all_requires_admin(self):
        staff = TestDataFactory.create_user(role='staff')
        self.client.authenticate_user(staff)
        response = self.client.put('/api/v1/approvers/deactivate-all/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_approver_email_is_normalized(self):
        response = self.client.post('/api/v1/approvers/', {
            'name': 'Director', 'email': ' Director@Example.COM ', 'cc_emails': 'a@example.com, b@example.com'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['email'], 'director@example.com')

    def test_approver_invalid_cc_rejected(self):
        response = self.client.post('/api/v1/approvers/', {
            'name': 'Director', 'email': 'director@example.com', 'cc_emails': 'not-an-email'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('cc_emails', response.data)


class AccessCodeAPITests(TestCase):
    """Test approver email validation and access codes"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.approver = TestDataFactory.create_approver(email='approver@test.com')

    def test_validate_email_sends_code(self):
        response = self.client.post('/api/v1/validate-approver-email/', {'email': 'Approver@Test.com'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['approver']['id'], self.approver.id)

        access_code = AccessCode.objects.get(email='approver@test.com')
        self.assertEqual(len(access_code.code), 6)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(access_code.code, mail.outbox[0].body)

    def test_validate_missing_email(self):
        response = self.client.post('/api/v1/validate-approver-email/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'กรุณากรอกอีเมล')

    def test_validate_unknown_email(self):
        response = self.client.post('/api/v1/validate-approver-email/', {'email': 'nobody@test.com'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(AccessCode.objects.exists())

    def test_validate_email_failure_returns_500(self):
        with patch('stockscribe.budgets.services.send_email', side_effect=OSError('SMTP down')):
            response = self.client.post('/api/v1/validate-approver-email/', {'email': 'approver@test.com'},
                                        format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])

    def test_resend_replaces_code(self):
        services.issue_access_code(self.approver)
        response = self.client.post('/api/v1/resend-access-code/', {'email': 'approver@test.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(AccessCode.objects.filter(email='approver@test.com').count(), 1)
        self.assertIn('ใหม่', response.data['message'])

    def test_verify_code_returns_session_and_consumes_code(self):
        access_code = services.issue_access_code(self.approver)
        response = self.client.post('/api/v1/verify-access-code/', {
            'email': 'approver@test.com', 'code': access_code.code
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'รหัสเข้าถึงถูกต้อง')
        self.assertTrue(response.data['token'])
        self.assertFalse(AccessCode.objects.exists())

        # Single use
        response = self.client.post('/api/v1/verify-access-code/', {
            'email': 'approver@test.com', 'code': access_code.code
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_verify_wrong_code(self):
        access_code = services.issue_access_code(self.approver)
        wrong = '000000' if access_code.code != '000000' else '111111'
        response = self.client.post('/api/v1/verify-access-code/', {
            'email': 'approver@test.com', 'code': wrong
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['message'], 'รหัสเข้าถึงไม่ถูกต้องหรือหมดอายุแล้ว กรุณาลองใหม่อีกครั้ง')

    def test_verify_expired_code(self):
        access_code = services.issue_access_code(self.approver)
        AccessCode.objects.filter(pk=access_code.pk).update(expires_at=timezone.now() - timedelta(seconds=1))
        response = self.client.post('/api/v1/verify-access-code/', {
            'email': 'approver@test.com', 'code': access_code.code
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_verify_deactivated_approver(self):
        access_code = services.issue_access_code(self.approver)
        Approver.objects.filter(pk=self.approver.pk).update(is_active=False)
        response = self.client.post('/api/v1/verify-access-code/', {
            'email': 'approver@test.com', 'code': access_code.code
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['message'], 'ไม่พบข้อมูลผู้อนุมัติ กรุณาติดต่อผู้ดูแลระบบ')

    def test_verify_missing_fields(self):
        response = self.client.post('/api/v1/verify-access-code/', {'email': 'approver@test.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_verify_with_list_body(self):
        response = self.client.post('/api/v1/verify-access-code/', ['approver@test.com'], format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_catalog_changes_do_not_reset_attempt_counter(self):
        staff = AuthenticatedAPIClient()
        staff.authenticate_user(TestDataFactory.create_user())
        payload = {'email': 'approver@test.com', 'code': '999999'}

        with patch.object(AccessCodeRateThrottle, 'rate', '2/minute', create=True):
            for _ in range(2):
                response = self.client.post('/api/v1/verify-access-code/', payload, format='json')
                self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
            response = self.client.post('/api/v1/verify-access-code/', payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)

            # Writes invalidate the list caches
            response = staff.post('/api/v1/categories/', {'name': 'Office'}, format='json')
            self.assertEqual(response.status_code, status.HTTP_201_CREATED)

            response = self.client.post('/api/v1/verify-access-code/', payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)

    def test_purge_expired_codes(self):
        access_code = services.issue_access_code(self.approver)
        AccessCode.objects.filter(pk=access_code.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        self.assertEqual(services.purge_expired_access_codes(), 1)

    def test_purge_command_keeps_live_codes(self):
        expired = services.issue_access_code(self.approver)
        AccessCode.objects.filter(pk=expired.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        other = TestDataFactory.create_approver(email='other@test.com')
        live = services.issue_access_code(other)

        out = StringIO()
        call_command('purge_access_codes', stdout=out)
        self.assertIn('Deleted 1', out.getvalue())
        self.assertEqual(list(AccessCode.objects.values_list('pk', flat=True)), [live.pk])

    def test_expired_code_is_removed_when_presented(self):
        access_code = services.issue_access_code(self.approver)
        AccessCode.objects.filter(pk=access_code.pk).update(expires_at=timezone.now() - timedelta(seconds=1))
        self.assertFalse(services.consume_access_code('approver@test.com', access_code.code))
        self.assertFalse(AccessCode.objects.exists())


class ApprovalAPITests(TestCase):
    """Test approving and rejecting budget requests"""

    def setUp(self):
        cache.clear()
        self.staff = TestDataFactory.create_user(role='staff')
        self.requester = TestDataFactory.create_requester(name='Somchai', email='somchai@test.com')
        self.approver = TestDataFactory.create_approver(email='approver@test.com', cc_emails='finance@test.com')
        self.budget_request = TestDataFactory.create_budget_request(user=self.staff, requester='Somchai')
        self.client = AuthenticatedAPIClient()

    def test_approver_session_can_approve(self):
        self.client.authenticate_approver(self.approver)
        response = self.client.post('/api/v1/approvals/', {
            'request_id': self.budget_request.id, 'decision': 'approved', 'remark': 'OK'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['request_no'], self.budget_request.request_no)
        self.assertTrue(response.data['notification_sent'])

        self.budget_request.refresh_from_db()
        self.assertEqual(self.budget_request.status, BudgetRequest.STATUS_APPROVED)
        self.assertEqual(self.budget_request.approved_by, self.approver.name)
        self.assertIsNotNone(self.budget_request.approved_at)
        self.assertEqual(ApprovalLog.objects.filter(request=self.budget_request).count(), 1)

        self.assertEqual(mail.outbox[0].to, ['somchai@test.com'])
        self.assertEqual(mail.outbox[0].cc, ['finance@test.com'])

    def test_second_decision_is_rejected(self):
        self.client.authenticate_approver(self.approver)
        self.client.post('/api/v1/approvals/', {
            'request_id': self.budget_request.id, 'decision': 'REJECTED'
        }, format='json')
        response = self.client.post('/api/v1/approvals/', {
            'request_id': self.budget_request.id, 'decision': 'APPROVED'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Approval.objects.filter(request=self.budget_request).count(), 1)

    def test_staff_cannot_decide(self):
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/approvals/', {
            'request_id': self.budget_request.id, 'decision': 'APPROVED'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_can_decide(self):
        manager = TestDataFactory.create_user(role='manager')
        self.client.authenticate_user(manager)
        response = self.client.post('/api/v1/approvals/', {
            'request_id': self.budget_request.id, 'decision': 'REJECTED', 'remark': 'Over budget'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        approval = Approval.objects.get(request=self.budget_request)
        self.assertEqual(approval.decided_by, manager)

    def test_decision_succeeds_when_email_fails(self):
        self.client.authenticate_approver(self.approver)
        with patch('stockscribe.budgets.services.send_email', side_effect=OSError('SMTP down')):
            response = self.client.post('/api/v1/approvals/', {
                'request_id': self.budget_request.id, 'decision': 'APPROVED'
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['notification_sent'])

    def test_approver_session_can_read_but_not_create_requests(self):
        self.client.authenticate_approver(self.approver)
        response = self.client.get('/api/v1/budget-requests/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.post('/api/v1/budget-requests/', {
            'requester': 'X', 'account_code': 'AC', 'amount': '10'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_invalid_approver_token(self):
        self.client.credentials(HTTP_X_APPROVER_TOKEN='not-a-token')
        response = self.client.get('/api/v1/budget-requests/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_latest_approval_for_request(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get(f'/api/v1/approvals/request/{self.budget_request.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        services.decide(self.budget_request, BudgetRequest.STATUS_APPROVED, approver=self.approver)
        response = self.client.get(f'/api/v1/approvals/request/{self.budget_request.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['decision'], 'APPROVED')
