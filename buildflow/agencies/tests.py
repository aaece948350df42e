"""
Tests for agencies
Tests: database name validation, connection aliases, routing, middleware and the agency API
"""
import threading
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.core.signals import request_finished
from django.db import connections
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils.connection import ConnectionDoesNotExist
from rest_framework import status

from buildflow.core.models import AuditLog, User
from buildflow.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from buildflow.inventory.models import Product

from .context import get_current_database, use_agency_database
from .db import AgencyConnectionRegistry, InvalidDatabaseName, quote_identifier, registry, validate_database_name
from .models import Agency
from .routers import AgencyDatabaseRouter


class DatabaseNameTests(SimpleTestCase):

    def test_valid_names(self):
        for name in ('acme', 'acme_builders', '_tenant1', 'north-yard', 'A' * 63):
            self.assertEqual(validate_database_name(name), name)

    def test_name_is_trimmed(self):
        self.assertEqual(validate_database_name('  acme  '), 'acme')

    def test_invalid_names(self):
        for name in ('', '   ', None, '1acme', 'acme;drop', 'acme builders', 'a' * 64, 'ac"me'):
            with self.assertRaises(InvalidDatabaseName, msg=repr(name)):
                validate_database_name(name)

    def test_reserved_keywords(self):
        for name in ('select', 'USER', 'Table'):
            with self.assertRaises(InvalidDatabaseName):
                validate_database_name(name)

    def test_quote_identifier(self):
        self.assertEqual(quote_identifier('north-yard'), '"north-yard"')
        with self.assertRaises(InvalidDatabaseName):
            quote_identifier('x"; DROP DATABASE y; --')


class ConnectionRegistryTests(SimpleTestCase):

    def setUp(self):
        self.registry = AgencyConnectionRegistry(max_connections=2)

    def tearDown(self):
        self.registry.close_all()

    def test_alias_clones_default_settings(self):
        alias = self.registry.get_alias('acme')
        self.assertEqual(alias, 'agency_acme')
        self.assertEqual(connections.databases[alias]['NAME'], 'acme')
        self.assertEqual(connections.databases[alias]['ENGINE'], connections.databases['default']['ENGINE'])
        self.assertIn('acme', self.registry)

    def test_same_alias_returned(self):
        self.assertEqual(self.registry.get_alias('acme'), self.registry.get_alias('acme'))
        self.assertEqual(len(self.registry), 1)

    def test_least_recently_used_is_evicted(self):
        self.registry.get_alias('acme')
        self.registry.get_alias('globex')
        self.registry.get_alias('acme')
        self.registry.get_alias('initech')
        self.assertEqual(len(self.registry), 2)
        self.assertNotIn('globex', self.registry)
        self.assertNotIn('agency_globex', connections.databases)
        self.assertEqual(self.registry.aliases, ['agency_acme', 'agency_initech'])

    def test_remove(self):
        self.registry.get_alias('acme')
        self.registry.remove('acme')
        self.assertNotIn('acme', self.registry)
        self.assertNotIn('agency_acme', connections.databases)

    def test_invalid_name_not_registered(self):
        with self.assertRaises(InvalidDatabaseName):
            self.registry.get_alias('acme;drop')
        self.assertEqual(len(self.registry), 0)

    def test_alias_in_use_is_not_evicted(self):
        self.registry.acquire('acme')
        self.registry.get_alias('globex')
        self.registry.get_alias('initech')
        self.assertIn('acme', self.registry)
        self.assertIn('agency_acme', connections.databases)
        self.assertEqual(self.registry.aliases, ['agency_acme', 'agency_initech'])

        self.registry.release('acme')
        self.assertEqual(self.registry.in_use('acme'), 0)
        self.registry.get_alias('umbrella')
        self.assertNotIn('acme', self.registry)
        self.assertIn('agency_acme', self.registry.stale_aliases)

    def test_limit_exceeded_when_every_alias_is_held(self):
        self.registry.acquire('acme')
        self.registry.acquire('globex')
        alias = self.registry.get_alias('initech')
        self.assertEqual(alias, 'agency_initech')
        self.assertEqual(len(self.registry), 3)

    def test_reregistered_alias_is_not_stale(self):
        self.registry.get_alias('acme')
        self.registry.remove('acme')
        self.assertIn('agency_acme', self.registry.stale_aliases)
        self.registry.get_alias('acme')
        self.assertNotIn('agency_acme', self.registry.stale_aliases)


class StaleConnectionTests(SimpleTestCase):
    """Evicting an alias while another thread holds a connection to it"""

    def setUp(self):
        self.addCleanup(registry.remove, 'stale_acme')

    def test_other_thread_closes_connection_when_request_finishes(self):
        alias = registry.get_alias('stale_acme')
        opened = threading.Event()
        evicted = threading.Event()
        results = {}

        def worker():
            connection = connections[alias]
            results['before'] = connection.alias
            opened.set()
            evicted.wait(5)
            request_finished.send(sender=self.__class__)
            try:
                connections[alias]
            except ConnectionDoesNotExist:
                results['after'] = 'closed'
            else:
                results['after'] = 'open'

        thread = threading.Thread(target=worker)
        thread.start()
        self.assertTrue(opened.wait(5))
        registry.remove('stale_acme')
        evicted.set()
        thread.join(5)

        self.assertEqual(results, {'before': alias, 'after': 'closed'})

    @override_settings(AGENCY_ISOLATION='database')
    def test_active_context_holds_alias(self):
        with use_agency_database('stale_acme'):
            self.assertEqual(registry.in_use('stale_acme'), 1)
            with use_agency_database('stale_acme'):
                self.assertEqual(registry.in_use('stale_acme'), 2)
            self.assertEqual(registry.in_use('stale_acme'), 1)
        self.assertEqual(registry.in_use('stale_acme'), 0)


class RouterTests(SimpleTestCase):

    def setUp(self):
        self.router = AgencyDatabaseRouter()

    def test_row_isolation_uses_default(self):
        with use_agency_database('acme'):
            self.assertEqual(self.router.db_for_read(Product), 'default')
            self.assertEqual(get_current_database(), 'acme')
        self.assertIsNone(get_current_database())
        self.assertTrue(self.router.allow_migrate('default', 'inventory'))
        self.assertFalse(self.router.allow_migrate('agency_acme', 'inventory'))

    @override_settings(AGENCY_ISOLATION='database')
    def test_database_isolation_routes_tenant_apps(self):
        self.addCleanup(registry.remove, 'acme')
        with use_agency_database('acme') as alias:
            self.assertEqual(alias, 'agency_acme')
            self.assertEqual(self.router.db_for_read(Product), 'agency_acme')
            self.assertEqual(self.router.db_for_write(Product), 'agency_acme')
            self.assertEqual(self.router.db_for_read(User), 'default')
        self.assertEqual(self.router.db_for_read(Product), 'default')

    @override_settings(AGENCY_ISOLATION='database')
    def test_database_isolation_migrations(self):
        self.assertTrue(self.router.allow_migrate('agency_acme', 'procurement'))
        self.assertFalse(self.router.allow_migrate('default', 'procurement'))
        self.assertTrue(self.router.allow_migrate('default', 'core'))
        self.assertFalse(self.router.allow_migrate('agency_acme', 'agencies'))


class AgencyContextMiddlewareTests(TestCase):

    def setUp(self):
        self.agency = TestDataFactory.create_agency(database_name='acme_builders')
        self.user = TestDataFactory.create_user(agency=self.agency)
        self.client = AuthenticatedAPIClient()

    def test_invalid_header(self):
        self.client.authenticate_user(self.user, agency_database='acme;drop')
        response = self.client.get('/api/v1/inventory/warehouses/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error']['code'], 'INVALID_AGENCY_DATABASE')

    def test_inactive_agency_header(self):
        TestDataFactory.create_agency(database_name='dormant', is_active=False)
        self.client.authenticate_user(self.user, agency_database='dormant')
        response = self.client.get('/api/v1/inventory/warehouses/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json()['error']['code'], 'AGENCY_DB_NOT_FOUND')

    def test_matching_header(self):
        self.client.authenticate_user(self.user, agency_database='acme_builders')
        response = self.client.get('/api/v1/agencies/current/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['database_name'], 'acme_builders')


class AgencyAPITests(TestCase):
    """Test agency endpoints"""

    def setUp(self):
        self.super_admin = TestDataFactory.create_super_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.super_admin)

    def test_create_agency_with_admin(self):
        response = self.client.post('/api/v1/agencies/', {
            'name': 'Acme Builders',
            'domain': 'Acme.Example.com',
            'database_name': 'acme_builders',
            'admin_email': 'owner@acme.example.com',
            'admin_password': 'Sturdy-Beam-42',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['domain'], 'acme.example.com')
        self.assertEqual(response.data['provisioning']['database_name'], 'acme_builders')
        self.assertFalse(response.data['provisioning']['created'])
        admin = User.objects.get(email='owner@acme.example.com')
        self.assertEqual(admin.role, 'admin')
        self.assertEqual(admin.agency.database_name, 'acme_builders')
        self.assertTrue(AuditLog.objects.filter(action='agency_provision').exists())

    def test_create_rejects_bad_database_name(self):
        response = self.client.post('/api/v1/agencies/', {
            'name': 'Bad', 'domain': 'bad.example.com', 'database_name': 'select',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('database_name', response.data)

    def test_admin_email_needs_password(self):
        response = self.client.post('/api/v1/agencies/', {
            'name': 'Acme', 'domain': 'acme.example.com', 'database_name': 'acme',
            'admin_email': 'owner@acme.example.com',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_super_admin_creates(self):
        admin = TestDataFactory.create_user(role='admin', agency=TestDataFactory.create_agency())
        self.client.authenticate_user(admin)
        response = self.client.get('/api/v1/agencies/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_filter_active(self):
        TestDataFactory.create_agency()
        TestDataFactory.create_agency(is_active=False)
        response = self.client.get('/api/v1/agencies/', {'is_active': 'false'})
        self.assertEqual(len(response.data), 1)

    def test_check_domain(self):
        TestDataFactory.create_agency(domain='taken.example.com')
        self.client.logout()
        response = self.client.get('/api/v1/agencies/check-domain/', {'domain': 'Taken.Example.com'})
        self.assertFalse(response.data['available'])
        response = self.client.get('/api/v1/agencies/check-domain/', {'domain': 'free.example.com'})
        self.assertTrue(response.data['available'])
        response = self.client.get('/api/v1/agencies/check-domain/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_database_name_is_immutable(self):
        agency = TestDataFactory.create_agency(database_name='acme')
        response = self.client.patch(f'/api/v1/agencies/{agency.id}/', {
            'database_name': 'globex', 'subscription_plan': 'professional',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        agency.refresh_from_db()
        self.assertEqual(agency.database_name, 'acme')
        self.assertEqual(agency.subscription_plan, 'professional')

    def test_member_reads_own_agency_only(self):
        agency = TestDataFactory.create_agency()
        member = TestDataFactory.create_user(agency=agency)
        self.client.authenticate_user(member)
        self.assertEqual(self.client.get(f'/api/v1/agencies/{agency.id}/').status_code, status.HTTP_200_OK)
        response = self.client.patch(f'/api/v1/agencies/{agency.id}/', {'name': 'Mine'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        other = TestDataFactory.create_agency()
        self.assertEqual(self.client.get(f'/api/v1/agencies/{other.id}/').status_code,
                         status.HTTP_403_FORBIDDEN)

    def test_current_without_agency(self):
        response = self.client.get('/api/v1/agencies/current/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'RBAC_NO_AGENCY_CONTEXT')


class ProvisionAgencyCommandTests(TestCase):

    def test_creates_agency(self):
        out = StringIO()
        call_command('provision_agency', 'acme_builders', '--name', 'Acme', '--domain', 'acme.example.com',
                     stdout=out)
        self.assertTrue(Agency.objects.filter(database_name='acme_builders').exists())
        self.assertIn('Nothing to provision', out.getvalue())

    def test_new_agency_needs_name(self):
        with self.assertRaises(CommandError):
            call_command('provision_agency', 'acme_builders', stdout=StringIO())

    def test_rejects_bad_name(self):
        with self.assertRaises(CommandError):
            call_command('provision_agency', 'drop table', stdout=StringIO())
