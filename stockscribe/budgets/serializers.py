from decimal import Decimal, InvalidOperation

from django.db import transaction, IntegrityError
from rest_framework import serializers

from .models import AccountCode, Requester, Approver, BudgetRequest, Approval, ApprovalLog


class AccountCodeSerializer(serializers.ModelSerializer):
    class Meta:
        model = AccountCode
        fields = ['id', 'code', 'name', 'description', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']


class RequesterSerializer(serializers.ModelSerializer):
    class Meta:
        model = Requester
        fields = ['id', 'name', 'email', 'department', 'is_active', 'created_at']
        read_only_fields = ['created_at']


class ApproverSerializer(serializers.ModelSerializer):
    class Meta:
        model = Approver
        fields = ['id', 'name', 'email', 'department', 'position', 'cc_emails', 'is_active', 'created_at']
        read_only_fields = ['created_at']

    def validate_email(self, value):
        value = value.strip().lower()
        queryset = Approver.objects.filter(email=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('An approver with this email already exists')
        return value

    def validate_cc_emails(self, value):
        from stockscribe.core.emails import split_emails, invalid_emails
        emails = split_emails(value)
        bad = invalid_emails(emails)
        if bad:
            raise serializers.ValidationError(f"Invalid email address: {', '.join(bad)}")
        return ', '.join(emails)


class MaterialItemSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    unit = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                          required=False, default=Decimal('0'))


def _number(value):
    # JSON storage: whole numbers stay integers
    return int(value) if value == value.to_integral_value() else float(value)


REQUEST_NO_ATTEMPTS = 5
DUPLICATE_REQUEST_NO = 'A budget request with this number already exists'


class BudgetRequestSerializer(serializers.ModelSerializer):
    request_no = serializers.CharField(max_length=50, required=False, allow_blank=True)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    material_list = serializers.ListField(child=MaterialItemSerializer(), required=False)
    material_total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = BudgetRequest
        fields = [
            'id', 'request_no', 'requester', 'request_date', 'account_code', 'account_name', 'amount',
            'note', 'material_list', 'material_total', 'status', 'approved_by', 'approved_at',
            'created_by', 'created_by_username', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['material_list'] = instance.material_list or []
        return data

    def validate_request_no(self, value):
        value = (value or '').strip()
        if not value:
            return value
        queryset = BudgetRequest.objects.filter(request_no=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError(DUPLICATE_REQUEST_NO)
        return value

    def validate_material_list(self, value):
        return [
            {
                'name': item['name'].strip(),
                'quantity': _number(item['quantity']),
                'unit': item.get('unit', ''),
                'unit_price': _number(item.get('unit_price') or Decimal('0')),
            }
            for item in value
        ]

    def validate(self, attrs):
        materials_given = 'material_list' in attrs
        amount = attrs.get('amount')

        if amount is None and (self.instance is None or materials_given):
            total = Decimal('0')
            for item in attrs.get('material_list', []):
                try:
                    total += Decimal(str(item['quantity'])) * Decimal(str(item['unit_price']))
                except InvalidOperation:
                    continue
            amount = total.quantize(Decimal('0.01'))
            attrs['amount'] = amount

        if amount is not None and amount <= 0:
            raise serializers.ValidationError({'amount': 'Amount must be greater than 0'})
        return attrs

    def create(self, validated_data):
        from .services import generate_request_no
        validated_data.setdefault('status', BudgetRequest.STATUS_PENDING)
        if validated_data.get('request_no'):
            try:
                with transaction.atomic():
                    return super().create(validated_data)
            except IntegrityError:
                raise serializers.ValidationError({'request_no': DUPLICATE_REQUEST_NO})

        # Another request may take the generated number before this one is saved
        for attempt in range(REQUEST_NO_ATTEMPTS):
            validated_data['request_no'] = generate_request_no(validated_data.get('request_date'))
            try:
                with transaction.atomic():
                    return super().create(validated_data)
            except IntegrityError:
                if attempt == REQUEST_NO_ATTEMPTS - 1:
                    raise

    def update(self, instance, validated_data):
        if 'request_no' in validated_data and not validated_data['request_no']:
            validated_data.pop('request_no')
        return super().update(instance, validated_data)


class BudgetRequestCreateSerializer(BudgetRequestSerializer):
    """New requests may name an approver to notify by email"""
    approver_id = serializers.IntegerField(required=False, allow_null=True, write_only=True)
    approve_url = serializers.CharField(required=False, allow_blank=True, write_only=True)

    class Meta(BudgetRequestSerializer.Meta):
        fields = BudgetRequestSerializer.Meta.fields + ['approver_id', 'approve_url']

    def create(self, validated_data):
        validated_data.pop('approver_id', None)
        validated_data.pop('approve_url', None)
        return super().create(validated_data)


class ApprovalSerializer(serializers.ModelSerializer):
    request_no = serializers.CharField(source='request.request_no', read_only=True)

    class Meta:
        model = Approval
        fields = ['id', 'request', 'request_no', 'decision', 'remark', 'approver_name', 'approver',
                  'decided_by', 'created_at']
        read_only_fields = fields


class ApprovalCreateSerializer(serializers.Serializer):
    request_id = serializers.PrimaryKeyRelatedField(queryset=BudgetRequest.objects.all())
    decision = serializers.ChoiceField(choices=[BudgetRequest.STATUS_APPROVED, BudgetRequest.STATUS_REJECTED])
    remark = serializers.CharField(required=False, allow_blank=True, default='')
    approver_name = serializers.CharField(max_length=200, required=False, allow_blank=True)

    def to_internal_value(self, data):
        # Accept lower-case decisions ("approved") from older clients
        if hasattr(data, 'get') and isinstance(data.get('decision'), str):
            data = data.copy()
            data['decision'] = data['decision'].upper()
        return super().to_internal_value(data)


class ApprovalLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = ApprovalLog
        fields = ['id', 'request', 'action', 'approver_name', 'decision', 'remark', 'created_at']
        read_only_fields = fields
