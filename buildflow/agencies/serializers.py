from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from . import db
from .models import Agency

User = get_user_model()


class AgencySerializer(serializers.ModelSerializer):
    user_count = serializers.SerializerMethodField()

    class Meta:
        model = Agency
        fields = ['id', 'name', 'domain', 'database_name', 'subscription_plan', 'is_active',
                  'user_count', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_user_count(self, obj):
        return obj.users.count()

    def validate_database_name(self, value):
        try:
            return db.validate_database_name(value)
        except db.InvalidDatabaseName as e:
            raise serializers.ValidationError(str(e))

    def validate_domain(self, value):
        return value.strip().lower()

    def update(self, instance, validated_data):
        # The database of an existing agency cannot be swapped out
        validated_data.pop('database_name', None)
        return super().update(instance, validated_data)


class AgencyCreateSerializer(AgencySerializer):
    """Agency plus its first admin account"""
    admin_email = serializers.EmailField(write_only=True, required=False)
    admin_password = serializers.CharField(write_only=True, required=False, validators=[validate_password])
    admin_first_name = serializers.CharField(write_only=True, required=False, allow_blank=True)
    admin_last_name = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta(AgencySerializer.Meta):
        fields = AgencySerializer.Meta.fields + ['admin_email', 'admin_password',
                                                 'admin_first_name', 'admin_last_name']

    def validate(self, attrs):
        if bool(attrs.get('admin_email')) != bool(attrs.get('admin_password')):
            raise serializers.ValidationError(
                {'admin_password': 'admin_email and admin_password must be given together'}
            )
        if attrs.get('admin_email') and User.objects.filter(email__iexact=attrs['admin_email']).exists():
            raise serializers.ValidationError({'admin_email': 'A user with this email already exists'})
        return attrs

    def create(self, validated_data):
        admin_email = validated_data.pop('admin_email', None)
        admin_password = validated_data.pop('admin_password', None)
        first_name = validated_data.pop('admin_first_name', '')
        last_name = validated_data.pop('admin_last_name', '')
        agency = Agency.objects.create(**validated_data)
        if admin_email:
            User.objects.create_user(
                username=admin_email.lower(),
                email=admin_email.lower(),
                password=admin_password,
                first_name=first_name,
                last_name=last_name,
                role='admin',
                agency=agency,
            )
        return agency
