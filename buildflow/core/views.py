import logging

from django.contrib.auth import get_user_model
from django.contrib.auth.models import update_last_login
from django.core.exceptions import ObjectDoesNotExist
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.views import TokenRefreshView

from buildflow.agencies.models import Agency

from . import two_factor
from .exceptions import AccountLocked, ApiException, InvalidCredentials, InvalidTwoFactorCode
from .lockout import lockout_until, record_attempt
from .models import AuditLog, Setting
from .pagination import paginated_response
from .permissions import IsAgencyAdmin, user_role
from .responses import error_response
from .roles import has_role_or_higher
from .serializers import (
    AuditLogSerializer, LoginSerializer, PasswordSerializer, SettingSerializer,
    TwoFactorTokenSerializer, TwoFactorVerifySerializer, UserCreateSerializer, UserSerializer,
)
from .throttles import AuthRateThrottle, TwoFactorRateThrottle
from .tokens import issue_tokens
from .utils import create_audit_log, get_request_agency

User = get_user_model()
logger = logging.getLogger('buildflow.core')


def _token_response(user, request):
    """Issue tokens, stamp last_login and return the login payload"""
    update_last_login(None, user)
    create_audit_log(request=request, action='login', model_name='User', object_id=user.id,
                     object_name=user.email, user=user, agency=user.agency)
    data = issue_tokens(user)
    data['user'] = UserSerializer(user).data
    return Response(data)


# Auth endpoints
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def login(request):
    """Email/password login with lockout and optional second factor"""
    serializer = LoginSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    email = serializer.validated_data['email'].strip().lower()
    password = serializer.validated_data['password']

    locked_until = lockout_until(email)
    if locked_until:
        raise AccountLocked(details={'lockout_until': locked_until.isoformat()})

    user = User.objects.select_related('agency').filter(email__iexact=email).first()
    if user is None or not user.is_active or not user.check_password(password):
        record_attempt(request, email, False, user=user, failure_reason='invalid_credentials')
        raise InvalidCredentials()

    if user.agency_id and not user.agency.is_active:
        record_attempt(request, email, False, user=user, failure_reason='agency_inactive')
        raise ApiException('This agency has been deactivated.', code='AGENCY_INACTIVE',
                           status_code=status.HTTP_403_FORBIDDEN)

    if user.two_factor_enabled:
        token = serializer.validated_data.get('two_factor_token')
        recovery_code = serializer.validated_data.get('recovery_code')
        if not token and not recovery_code:
            return Response({'requires_2fa': True, 'user_id': user.id})
        if not two_factor.verify_code(user, token=token, recovery_code=recovery_code):
            record_attempt(request, email, False, user=user, failure_reason='invalid_2fa')
            raise InvalidTwoFactorCode()
        user.two_factor_verified_at = timezone.now()
        user.save(update_fields=['two_factor_verified_at', 'updated_at'])

    record_attempt(request, email, True, user=user)
    logger.info(f"User {user.email} logged in")
    return _token_response(user, request)


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that answers with 401 for users that no longer exist"""

    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer
    throttle_classes = [AuthRateThrottle]


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def register(request):
    """Agency admins create users inside their own agency"""
    serializer = UserCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    creator_role = user_role(request.user)
    new_role = serializer.validated_data.get('role', 'employee')
    if not has_role_or_higher(creator_role, new_role):
        return error_response('RBAC_INSUFFICIENT_ROLE', f'You cannot create users with role {new_role}.',
                              status.HTTP_403_FORBIDDEN)

    agency = request.user.agency
    if creator_role == 'super_admin':
        agency_id = request.data.get('agency_id')
        agency = get_object_or_404(Agency, pk=agency_id) if agency_id else get_request_agency(request)
    if agency is None and new_role != 'super_admin':
        return error_response('VALIDATION_ERROR', 'agency_id is required.', status.HTTP_400_BAD_REQUEST)

    user = serializer.save(agency=agency)
    create_audit_log(request=request, action='create', model_name='User', object_id=user.id,
                     object_name=user.email, changes={'role': user.role}, agency=agency)
    return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Current user with agency details"""
    user = request.user
    data = UserSerializer(user).data
    data['is_super_admin'] = user_role(user) == 'super_admin'
    if user.agency_id:
        data['agency'] = {
            'id': str(user.agency.id),
            'name': user.agency.name,
            'domain': user.agency.domain,
            'database_name': user.agency.database_name,
        }
    else:
        data['agency'] = None
    return Response(data)


# Two-factor endpoints
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_setup(request):
    """Generate a secret, QR code URI and recovery codes"""
    user = request.user
    if user.two_factor_enabled:
        return error_response('TWO_FACTOR_ALREADY_ENABLED', 'Two-factor authentication is already enabled.',
                              status.HTTP_400_BAD_REQUEST)
    return Response(two_factor.start_setup(user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_verify_and_enable(request):
    """Confirm the authenticator app works and switch 2FA on"""
    serializer = TwoFactorTokenSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user = request.user
    if not user.two_factor_secret:
        return error_response('TWO_FACTOR_NOT_SETUP', 'Run two-factor setup first.', status.HTTP_400_BAD_REQUEST)
    if not two_factor.verify_token(user.two_factor_secret, serializer.validated_data['token']):
        raise InvalidTwoFactorCode(status_code=status.HTTP_400_BAD_REQUEST)

    two_factor.enable(user)
    create_audit_log(request=request, action='two_factor_enable', model_name='User', object_id=user.id,
                     object_name=user.email)
    logger.info(f"Two-factor authentication enabled for {user.email}")
    return Response(two_factor.status_for(user))


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([TwoFactorRateThrottle])
def two_factor_verify(request):
    """Second login step: exchange a TOTP token or recovery code for tokens"""
    serializer = TwoFactorVerifySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user = User.objects.select_related('agency').filter(
        pk=serializer.validated_data['user_id'], is_active=True
    ).first()
    if user is None:
        raise InvalidTwoFactorCode()
    if not user.two_factor_enabled:
        return error_response('TWO_FACTOR_NOT_ENABLED', 'Two-factor authentication is not enabled.',
                              status.HTTP_400_BAD_REQUEST)

    locked_until = lockout_until(user.email)
    if locked_until:
        raise AccountLocked(details={'lockout_until': locked_until.isoformat()})

    token = serializer.validated_data.get('token')
    recovery_code = serializer.validated_data.get('recovery_code')
    if not two_factor.verify_code(user, token=token, recovery_code=recovery_code):
        record_attempt(request, user.email, False, user=user, failure_reason='invalid_2fa')
        raise InvalidTwoFactorCode()

    user.two_factor_verified_at = timezone.now()
    user.save(update_fields=['two_factor_verified_at', 'updated_at'])
    record_attempt(request, user.email, True, user=user)
    return _token_response(user, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_disable(request):
    """Switch 2FA off after re-checking the account password"""
    serializer = PasswordSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user = request.user
    if not user.check_password(serializer.validated_data['password']):
        raise InvalidCredentials('Password is incorrect.', status_code=status.HTTP_400_BAD_REQUEST)

    two_factor.disable(user)
    create_audit_log(request=request, action='two_factor_disable', model_name='User', object_id=user.id,
                     object_name=user.email)
    logger.info(f"Two-factor authentication disabled for {user.email}")
    return Response(two_factor.status_for(user))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def two_factor_status(request):
    return Response(two_factor.status_for(request.user))


# User views
def _visible_users(request):
    users = User.objects.select_related('agency').order_by('email')
    if user_role(request.user) == 'super_admin':
        agency_id = request.query_params.get('agency_id')
        return users.filter(agency_id=agency_id) if agency_id else users
    return users.filter(agency_id=request.user.agency_id)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def user_list(request):
    """List users of the caller's agency"""
    users = _visible_users(request)
    role = request.query_params.get('role')
    if role:
        users = users.filter(role=role)
    search = request.query_params.get('search')
    if search:
        users = users.filter(
            Q(email__icontains=search) | Q(first_name__icontains=search) | Q(last_name__icontains=search)
        )
    return paginated_response(request, users, UserSerializer)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def user_detail(request, pk):
    """Retrieve, update or deactivate a user of the caller's agency"""
    user = get_object_or_404(_visible_users(request), pk=pk)

    if request.method == 'GET':
        return Response(UserSerializer(user).data)
    elif request.method == 'PATCH':
        new_role = request.data.get('role')
        if new_role and not has_role_or_higher(user_role(request.user), new_role):
            return error_response('RBAC_INSUFFICIENT_ROLE', f'You cannot assign role {new_role}.',
                                  status.HTTP_403_FORBIDDEN)
        old_role = user.role
        serializer = UserSerializer(user, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='User', object_id=user.id,
                             object_name=user.email, changes={'old_role': old_role, 'data': request.data})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return error_response('VALIDATION_ERROR', 'You cannot deactivate your own account.',
                                  status.HTTP_400_BAD_REQUEST)
        user.is_active = False
        user.save(update_fields=['is_active', 'updated_at'])
        create_audit_log(request=request, action='delete', model_name='User', object_id=user.id,
                         object_name=user.email)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def setting_list_create(request):
    """List or create settings of the current agency"""
    agency = get_request_agency(request)
    if request.method == 'GET':
        settings = Setting.objects.filter(agency=agency).order_by('key')
        return Response(SettingSerializer(settings, many=True).data)

    if not IsAgencyAdmin().has_permission(request, None):
        return error_response('RBAC_INSUFFICIENT_ROLE', 'Requires role admin or higher.', status.HTTP_403_FORBIDDEN)
    if Setting.objects.filter(agency=agency, key=request.data.get('key')).exists():
        return error_response('CONFLICT', 'A setting with this key already exists.', status.HTTP_409_CONFLICT)
    serializer = SettingSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save(agency=agency)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def setting_detail(request, pk):
    """Retrieve, update or delete a setting of the current agency"""
    setting = get_object_or_404(Setting, pk=pk, agency=get_request_agency(request))

    if request.method == 'GET':
        return Response(SettingSerializer(setting).data)

    if not IsAgencyAdmin().has_permission(request, None):
        return error_response('RBAC_INSUFFICIENT_ROLE', 'Requires role admin or higher.', status.HTTP_403_FORBIDDEN)
    if request.method == 'PATCH':
        serializer = SettingSerializer(setting, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        setting.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    if user_role(request.user) != 'super_admin':
        queryset = queryset.filter(agency=get_request_agency(request))
        # Non-admins only see their own actions
        if not IsAgencyAdmin().has_permission(request, None):
            queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action')
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model')
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    date_from = request.query_params.get('date_from')
    date_to = request.query_params.get('date_to')
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    return paginated_response(request, queryset.order_by('-created_at'), AuditLogSerializer)
