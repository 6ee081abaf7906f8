from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, AppSettings, AuditLog


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            'id', 'username', 'email', 'first_name', 'last_name', 'display_name', 'phone', 'role',
            'is_active', 'is_staff', 'is_superuser', 'last_login', 'created_at', 'updated_at'
        ]
        read_only_fields = ['is_superuser', 'last_login', 'created_at', 'updated_at']


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'display_name', 'phone', 'role']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class RegisterSerializer(UserCreateSerializer):
    """Self registration always yields a staff account"""

    class Meta(UserCreateSerializer.Meta):
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'display_name', 'phone']


class AppSettingsSerializer(serializers.ModelSerializer):
    smtp_password = serializers.CharField(write_only=True, required=False, allow_blank=True)
    has_smtp_password = serializers.SerializerMethodField()

    class Meta:
        model = AppSettings
        fields = [
            'company_name', 'email', 'phone', 'address', 'low_stock_alert', 'email_notifications',
            'auto_backup', 'theme', 'language', 'currency', 'smtp_host', 'smtp_port', 'smtp_secure',
            'smtp_user', 'smtp_password', 'has_smtp_password', 'from_email', 'from_name', 'updated_at'
        ]
        read_only_fields = ['updated_at']

    def get_has_smtp_password(self, obj):
        return bool(obj.smtp_password)


class AuditLogSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']


class SendEmailSerializer(serializers.Serializer):
    to = serializers.JSONField()
    cc = serializers.JSONField(required=False)
    subject = serializers.CharField(max_length=255)
    html = serializers.CharField()
    text = serializers.CharField(required=False, allow_blank=True)
    reply_to = serializers.CharField(required=False, allow_blank=True)

    def _validate_addresses(self, value, field):
        from .emails import split_emails, invalid_emails
        if value is not None and not isinstance(value, (str, list)):
            raise serializers.ValidationError(f'{field} must be a string or a list of addresses')
        emails = split_emails(value)
        bad = invalid_emails(emails)
        if bad:
            raise serializers.ValidationError(f"Invalid email address: {', '.join(bad)}")
        return emails

    def validate_to(self, value):
        emails = self._validate_addresses(value, 'to')
        if not emails:
            raise serializers.ValidationError('At least one recipient is required')
        return emails

    def validate_cc(self, value):
        return self._validate_addresses(value, 'cc')
