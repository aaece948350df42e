"""
Tests for core functionality
Tests: login, lockout, two-factor authentication, roles, users, settings and audit logs
"""
import pyotp
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.test import APIClient

from .exceptions import InvalidStatusTransition
from .models import AuditLog, LoginAttempt, Setting, User
from .roles import get_role_level, has_role_or_higher
from .test_utils import AuthenticatedAPIClient, TestDataFactory
from .workflow import check_transition
from . import two_factor

STRONG_PASSWORD = 'Sturdy-Beam-42'


class RoleTests(SimpleTestCase):

    def test_lower_level_has_more_authority(self):
        self.assertTrue(has_role_or_higher('admin', 'project_manager'))
        self.assertTrue(has_role_or_higher('project_manager', 'project_manager'))
        self.assertFalse(has_role_or_higher('employee', 'project_manager'))

    def test_unknown_role_has_no_authority(self):
        self.assertEqual(get_role_level('wizard'), 99)
        self.assertFalse(has_role_or_higher('wizard', 'intern'))

    def test_check_transition(self):
        transitions = {'draft': ('approved', 'cancelled')}
        check_transition(transitions, 'draft', 'approved')
        check_transition(transitions, 'draft', 'draft')
        with self.assertRaises(InvalidStatusTransition) as ctx:
            check_transition(transitions, 'draft', 'received')
        self.assertEqual(ctx.exception.details, {'from': 'draft', 'to': 'received',
                                                 'allowed': ['approved', 'cancelled']})


class TwoFactorUnitTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user(agency=TestDataFactory.create_agency())

    def test_setup_stores_hashed_recovery_codes(self):
        data = two_factor.start_setup(self.user)
        self.assertEqual(len(data['recovery_codes']), 10)
        self.assertTrue(data['qr_code_url'].startswith('otpauth://totp/'))
        self.assertFalse(self.user.two_factor_enabled)
        self.assertNotIn(data['recovery_codes'][0], self.user.recovery_codes)
        self.assertIn(two_factor.hash_recovery_code(data['recovery_codes'][0]), self.user.recovery_codes)

    def test_token_format(self):
        secret = two_factor.generate_secret()
        self.assertTrue(two_factor.verify_token(secret, pyotp.TOTP(secret).now()))
        self.assertFalse(two_factor.verify_token(secret, '12345'))
        self.assertFalse(two_factor.verify_token(secret, 'abcdef'))
        self.assertFalse(two_factor.verify_token(None, '123456'))

    def test_recovery_code_is_single_use(self):
        code = two_factor.start_setup(self.user)['recovery_codes'][0]
        self.assertTrue(two_factor.consume_recovery_code(self.user, code.lower()))
        self.assertFalse(two_factor.consume_recovery_code(self.user, code))
        self.assertEqual(len(self.user.recovery_codes), 9)


class LoginTests(TestCase):
    """Test the login endpoint"""

    def setUp(self):
        cache.clear()
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(email='site.lead@test.com', role='project_manager',
                                                agency=self.agency)
        self.client = APIClient()

    def _login(self, password='testpass123', **extra):
        data = {'email': 'site.lead@test.com', 'password': password}
        data.update(extra)
        return self.client.post('/api/v1/auth/login/', data, format='json')

    def test_login_success(self):
        response = self._login()
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['agency_database'], self.agency.database_name)
        self.assertEqual(response.data['user']['role_level'], 10)
        self.assertTrue(LoginAttempt.objects.filter(email='site.lead@test.com', success=True).exists())
        self.assertTrue(AuditLog.objects.filter(action='login', user=self.user).exists())

    def test_email_is_case_insensitive(self):
        response = self.client.post('/api/v1/auth/login/', {'email': 'Site.Lead@Test.com',
                                                            'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_wrong_password(self):
        response = self._login(password='wrong')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'AUTH_INVALID_CREDENTIALS')
        self.assertFalse(response.data['success'])

    def test_unknown_email_looks_like_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'email': 'nobody@test.com', 'password': 'x'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'AUTH_INVALID_CREDENTIALS')

    def test_lockout_after_repeated_failures(self):
        for _ in range(5):
            self._login(password='wrong')
        response = self._login()
        self.assertEqual(response.status_code, status.HTTP_423_LOCKED)
        self.assertEqual(response.data['error']['code'], 'ACCOUNT_LOCKED')
        self.assertIn('lockout_until', response.data['error']['details'])

    def test_success_resets_failure_count(self):
        for _ in range(4):
            self._login(password='wrong')
        self.assertEqual(self._login().status_code, status.HTTP_200_OK)
        self._login(password='wrong')
        self.assertEqual(self._login().status_code, status.HTTP_200_OK)

    def test_inactive_agency(self):
        self.agency.is_active = False
        self.agency.save()
        response = self._login()
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'AGENCY_INACTIVE')

    def test_missing_fields(self):
        response = self.client.post('/api/v1/auth/login/', {'email': 'site.lead@test.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error']['code'], 'VALIDATION_ERROR')
        self.assertIn('password', response.json()['error']['details'])

    def test_refresh(self):
        refresh = self._login().data['refresh']
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_refresh_with_garbage_token(self):
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'AUTH_INVALID_TOKEN')


class TwoFactorAPITests(TestCase):
    """Test two-factor setup, login and recovery"""

    def setUp(self):
        cache.clear()
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(email='cfo@test.com', role='cfo', agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def _enable(self):
        setup = self.client.post('/api/v1/two-factor/setup/', {}, format='json').data
        token = pyotp.TOTP(setup['secret']).now()
        response = self.client.post('/api/v1/two-factor/verify-and-enable/', {'token': token}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return setup

    def test_enable(self):
        self._enable()
        response = self.client.get('/api/v1/two-factor/status/')
        self.assertTrue(response.data['enabled'])
        self.assertEqual(response.data['recovery_codes_remaining'], 10)

    def test_enable_rejects_bad_token(self):
        self.client.post('/api/v1/two-factor/setup/', {}, format='json')
        response = self.client.post('/api/v1/two-factor/verify-and-enable/', {'token': '000000'},
                                    format='json')
        if response.status_code == status.HTTP_200_OK:
            # 000000 happened to be the current code
            return
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'AUTH_INVALID_2FA')

    def test_enable_without_setup(self):
        response = self.client.post('/api/v1/two-factor/verify-and-enable/', {'token': '123456'},
                                    format='json')
        self.assertEqual(response.data['error']['code'], 'TWO_FACTOR_NOT_SETUP')

    def test_setup_twice_rejected_once_enabled(self):
        self._enable()
        response = self.client.post('/api/v1/two-factor/setup/', {}, format='json')
        self.assertEqual(response.data['error']['code'], 'TWO_FACTOR_ALREADY_ENABLED')

    def test_login_requires_second_step(self):
        setup = self._enable()
        anonymous = APIClient()
        response = anonymous.post('/api/v1/auth/login/', {'email': 'cfo@test.com', 'password': 'testpass123'},
                                  format='json')
        self.assertEqual(response.data, {'requires_2fa': True, 'user_id': self.user.id})

        response = anonymous.post('/api/v1/two-factor/verify/', {
            'user_id': self.user.id, 'token': pyotp.TOTP(setup['secret']).now(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_login_with_token_inline(self):
        setup = self._enable()
        response = APIClient().post('/api/v1/auth/login/', {
            'email': 'cfo@test.com', 'password': 'testpass123',
            'two_factor_token': pyotp.TOTP(setup['secret']).now(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_recovery_code_works_once(self):
        setup = self._enable()
        anonymous = APIClient()
        data = {'user_id': self.user.id, 'recovery_code': setup['recovery_codes'][0]}
        self.assertEqual(anonymous.post('/api/v1/two-factor/verify/', data, format='json').status_code,
                         status.HTTP_200_OK)
        response = anonymous.post('/api/v1/two-factor/verify/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'AUTH_INVALID_2FA')

    def test_verify_needs_token_or_code(self):
        self._enable()
        response = APIClient().post('/api/v1/two-factor/verify/', {'user_id': self.user.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_verify_when_not_enabled(self):
        response = APIClient().post('/api/v1/two-factor/verify/', {'user_id': self.user.id, 'token': '123456'},
                                    format='json')
        self.assertEqual(response.data['error']['code'], 'TWO_FACTOR_NOT_ENABLED')

    def test_disable_checks_password(self):
        self._enable()
        response = self.client.post('/api/v1/two-factor/disable/', {'password': 'wrong'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/v1/two-factor/disable/', {'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['enabled'])
        self.user.refresh_from_db()
        self.assertIsNone(self.user.two_factor_secret)
        self.assertEqual(self.user.recovery_codes, [])


class UserAPITests(TestCase):
    """Test registration and user management"""

    def setUp(self):
        cache.clear()
        self.agency = TestDataFactory.create_agency()
        self.admin = TestDataFactory.create_user(role='admin', agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def _register(self, role, email='new.hire@test.com'):
        return self.client.post('/api/v1/auth/register/', {
            'email': email, 'password': STRONG_PASSWORD, 'password_confirm': STRONG_PASSWORD,
            'first_name': 'New', 'last_name': 'Hire', 'role': role,
        }, format='json')

    def test_register_in_own_agency(self):
        response = self._register('employee')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        user = User.objects.get(email='new.hire@test.com')
        self.assertEqual(user.agency_id, self.agency.id)
        self.assertEqual(user.username, 'new.hire@test.com')

    def test_cannot_register_higher_role(self):
        response = self._register('ceo')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'RBAC_INSUFFICIENT_ROLE')

    def test_employee_cannot_register(self):
        self.client.authenticate_user(TestDataFactory.create_user(agency=self.agency))
        response = self._register('intern')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_password_mismatch(self):
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'x@test.com', 'password': STRONG_PASSWORD, 'password_confirm': 'Other-Beam-42',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_email(self):
        self._register('employee')
        response = self._register('employee')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_me(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_super_admin'])
        self.assertEqual(response.data['agency']['database_name'], self.agency.database_name)

    def test_me_super_admin(self):
        self.client.authenticate_user(TestDataFactory.create_super_admin())
        response = self.client.get('/api/v1/auth/me/')
        self.assertTrue(response.data['is_super_admin'])
        self.assertIsNone(response.data['agency'])

    def test_me_requires_token(self):
        self.client.logout()
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'AUTH_REQUIRED')

    def test_list_is_agency_scoped(self):
        TestDataFactory.create_user(agency=self.agency)
        TestDataFactory.create_user(agency=TestDataFactory.create_agency())
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.data['count'], 2)

    def test_cannot_promote_above_self(self):
        user = TestDataFactory.create_user(agency=self.agency)
        response = self.client.patch(f'/api/v1/users/{user.id}/', {'role': 'ceo'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_deactivate(self):
        user = TestDataFactory.create_user(agency=self.agency)
        response = self.client.delete(f'/api/v1/users/{user.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        user.refresh_from_db()
        self.assertFalse(user.is_active)

    def test_cannot_deactivate_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_agency_user_not_found(self):
        user = TestDataFactory.create_user(agency=TestDataFactory.create_agency())
        response = self.client.get(f'/api/v1/users/{user.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'NOT_FOUND')


class SettingAPITests(TestCase):

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.admin = TestDataFactory.create_user(role='admin', agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_create_and_conflict(self):
        data = {'key': 'currency', 'value': 'USD'}
        response = self.client.post('/api/v1/settings/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/settings/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['code'], 'CONFLICT')

    def test_same_key_in_other_agency(self):
        Setting.objects.create(agency=TestDataFactory.create_agency(), key='currency', value='EUR')
        response = self.client.post('/api/v1/settings/', {'key': 'currency', 'value': 'USD'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get('/api/v1/settings/')
        self.assertEqual([s['value'] for s in response.data], ['USD'])

    def test_employee_can_read_not_write(self):
        setting = Setting.objects.create(agency=self.agency, key='currency', value='USD')
        self.client.authenticate_user(TestDataFactory.create_user(agency=self.agency))
        self.assertEqual(self.client.get(f'/api/v1/settings/{setting.id}/').status_code, status.HTTP_200_OK)
        response = self.client.patch(f'/api/v1/settings/{setting.id}/', {'value': 'EUR'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AuditLogAPITests(TestCase):

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.admin = TestDataFactory.create_user(role='admin', agency=self.agency)
        self.employee = TestDataFactory.create_user(agency=self.agency)
        AuditLog.objects.create(agency=self.agency, user=self.admin, action='create', model_name='Product',
                                object_id='1')
        AuditLog.objects.create(agency=self.agency, user=self.employee, action='update', model_name='Product',
                                object_id='1')
        AuditLog.objects.create(agency=TestDataFactory.create_agency(), action='create', model_name='Product',
                                object_id='2')
        self.client = AuthenticatedAPIClient()

    def test_admin_sees_agency_logs(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/audit-logs/', {'action': 'update'})
        self.assertEqual(response.data['count'], 1)

    def test_employee_sees_own_logs(self):
        self.client.authenticate_user(self.employee)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['user_email'], self.employee.email)
