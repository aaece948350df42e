from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .models import AuditLog, Setting, User
from .roles import get_role_level, is_valid_role


class UserSerializer(serializers.ModelSerializer):
    agency_id = serializers.UUIDField(read_only=True)
    agency_database = serializers.CharField(read_only=True)
    role_level = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone', 'role', 'role_level',
                  'agency_id', 'agency_database', 'is_active', 'two_factor_enabled',
                  'last_login', 'created_at', 'updated_at']
        read_only_fields = ['two_factor_enabled', 'last_login', 'created_at', 'updated_at']

    def get_role_level(self, obj):
        return get_role_level(obj.role)

    def validate_role(self, value):
        if not is_valid_role(value):
            raise serializers.ValidationError(f'Unknown role: {value}')
        return value


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)
    username = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'phone', 'role']

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('A user with this email already exists')
        return value

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        if not validated_data.get('username'):
            validated_data['username'] = validated_data['email']
        user = User(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False)
    two_factor_token = serializers.RegexField(r'^\d{6}$', required=False, allow_blank=True)
    recovery_code = serializers.CharField(required=False, allow_blank=True, max_length=9)


class TwoFactorTokenSerializer(serializers.Serializer):
    token = serializers.RegexField(r'^\d{6}$')


class TwoFactorVerifySerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    token = serializers.RegexField(r'^\d{6}$', required=False, allow_blank=True)
    recovery_code = serializers.CharField(required=False, allow_blank=True, max_length=9)

    def validate(self, attrs):
        if not attrs.get('token') and not attrs.get('recovery_code'):
            raise serializers.ValidationError('token or recovery_code is required')
        return attrs


class PasswordSerializer(serializers.Serializer):
    password = serializers.CharField(trim_whitespace=False)


class SettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Setting
        fields = ['id', 'key', 'value', 'description', 'updated_at']


class AuditLogSerializer(serializers.ModelSerializer):
    user_email = serializers.CharField(source='user.email', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = ['id', 'agency', 'user', 'user_email', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']
