from django.contrib.auth.models import AnonymousUser
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from .models import Approver
from .services import APPROVER_TOKEN_SCOPE


class ApproverTokenAuthentication(BaseAuthentication):
    """
    Authenticate an approver session from the X-Approver-Token header

    Approvers are not users, so the request stays anonymous and the
    approver is exposed as ``request.auth``.
    """
    header = 'HTTP_X_APPROVER_TOKEN'

    def authenticate(self, request):
        raw_token = request.META.get(self.header)
        if not raw_token:
            return None

        try:
            token = AccessToken(raw_token)
        except TokenError:
            raise AuthenticationFailed('Approver session is invalid or expired.')

        if token.get('token_scope') != APPROVER_TOKEN_SCOPE:
            raise AuthenticationFailed('Token is not an approver session.')

        approver = Approver.objects.filter(pk=token.get('approver_id'), is_active=True).first()
        if approver is None:
            raise AuthenticationFailed('Approver not found or inactive.')
        return (AnonymousUser(), approver)

    def authenticate_header(self, request):
        return 'Approver'
