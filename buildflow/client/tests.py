"""
Tests for the API client
Tests: retry and timeout handling, the HTTP transport and the typed services
"""
import json
import threading
from unittest import mock

import requests
from django.test import SimpleTestCase

from .base import ApiError, BaseApiService, RetryConfig
from .http import HttpTransport
from .services import AuthService, BuildFlowClient, InventoryService, RecordsService
from .session import SessionStore

BASE_URL = 'https://erp.example.com/api/v1/'


def make_response(status_code=200, body=None, headers=None):
    response = requests.Response()
    response.status_code = status_code
    response._content = b'' if body is None else json.dumps(body).encode()
    response.headers.update(headers or {})
    response.url = BASE_URL
    return response


def envelope(data):
    return {'success': True, 'data': data, 'error': None}


def error_envelope(code, message, details=None):
    return {'success': False, 'data': None, 'error': {'code': code, 'message': message, 'details': details}}


def make_transport(*responses, token='access-token', agency_database='acme_builders'):
    session = mock.Mock()
    session.headers = {}
    session.request.side_effect = list(responses)
    store = SessionStore(token=token, agency_database=agency_database)
    return HttpTransport(BASE_URL, store=store, session=session)


class RetryConfigTests(SimpleTestCase):

    def test_exponential_delays_are_capped(self):
        config = RetryConfig()
        self.assertEqual([config.delay_for(n) for n in range(5)], [1.0, 2.0, 4.0, 8.0, 10.0])


@mock.patch('buildflow.client.base.time.sleep')
class WithRetryTests(SimpleTestCase):

    def setUp(self):
        self.service = BaseApiService(transport=None)

    def test_retries_until_success(self, sleep):
        operation = mock.Mock(side_effect=[ApiError('boom', status_code=502), ConnectionError('reset'), 'ok'])
        self.assertEqual(self.service.with_retry(operation, retries=3), 'ok')
        self.assertEqual(operation.call_count, 3)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [1.0, 2.0])

    def test_client_errors_are_not_retried(self, sleep):
        operation = mock.Mock(side_effect=ApiError('nope', code='VALIDATION_ERROR', status_code=400))
        with self.assertRaises(ApiError):
            self.service.with_retry(operation, retries=3)
        self.assertEqual(operation.call_count, 1)
        sleep.assert_not_called()

    def test_last_error_is_raised(self, sleep):
        errors = [ApiError(f'fail {n}', status_code=500) for n in range(3)]
        operation = mock.Mock(side_effect=errors)
        with self.assertRaises(ApiError) as ctx:
            self.service.with_retry(operation, retries=2)
        self.assertIs(ctx.exception, errors[-1])
        self.assertEqual(operation.call_count, 3)
        self.assertEqual(sleep.call_count, 2)

    def test_zero_retries(self, sleep):
        operation = mock.Mock(side_effect=ApiError('down', status_code=503))
        with self.assertRaises(ApiError):
            self.service.with_retry(operation, retries=0)
        self.assertEqual(operation.call_count, 1)
        sleep.assert_not_called()


class ExecuteTests(SimpleTestCase):

    def setUp(self):
        self.service = BaseApiService(transport=None)

    def test_success(self):
        response = self.service.execute(lambda: {'id': 1})
        self.assertTrue(response.success)
        self.assertEqual(response.data, {'id': 1})
        self.assertIsNone(response.error)

    def test_failure_is_returned_not_raised(self):
        def operation():
            raise ApiError('Insufficient stock', code='INSUFFICIENT_STOCK', status_code=400)

        response = self.service.execute(operation)
        self.assertFalse(response.success)
        self.assertIsNone(response.data)
        self.assertEqual(response.error, 'Insufficient stock')
        self.assertEqual(response.error_code, 'INSUFFICIENT_STOCK')

    def test_unexpected_error(self):
        with mock.patch('buildflow.client.base.time.sleep'):
            response = self.service.execute(mock.Mock(side_effect=KeyError('data')), retries=1)
        self.assertFalse(response.success)
        self.assertIn('data', response.error)

    def test_timeout(self):
        release = threading.Event()
        self.addCleanup(release.set)
        response = self.service.execute(lambda: release.wait(5), retries=0, timeout=0.05)
        self.assertFalse(response.success)
        self.assertEqual(response.error_code, 'TIMEOUT')


class HttpTransportTests(SimpleTestCase):

    def test_headers(self):
        transport = make_transport(make_response(body=envelope([])))
        transport.get('inventory/warehouses/', {'page': 2})
        _, kwargs = transport.session.request.call_args
        self.assertEqual(transport.session.request.call_args.args,
                         ('GET', 'https://erp.example.com/api/v1/inventory/warehouses/'))
        self.assertEqual(kwargs['headers'], {'Authorization': 'Bearer access-token',
                                             'X-Agency-Database': 'acme_builders'})
        self.assertEqual(kwargs['params'], {'page': 2})

    def test_main_database_calls_skip_agency_header(self):
        transport = make_transport(make_response(body=envelope({})))
        transport.get('auth/me/', use_main_database=True)
        headers = transport.session.request.call_args.kwargs['headers']
        self.assertNotIn('X-Agency-Database', headers)
        self.assertIn('Authorization', headers)

    def test_anonymous_request(self):
        transport = make_transport(make_response(body=envelope({})), token=None, agency_database=None)
        transport.post('auth/login/', {'email': 'a@b.c'})
        self.assertEqual(transport.session.request.call_args.kwargs['headers'], {})

    def test_envelope_is_unwrapped(self):
        transport = make_transport(make_response(body=envelope({'id': 7})))
        self.assertEqual(transport.get('inventory/products/7/'), {'id': 7})

    def test_no_content(self):
        transport = make_transport(make_response(status_code=204))
        self.assertIsNone(transport.delete('inventory/products/7/'))

    def test_error_envelope(self):
        body = error_envelope('INSUFFICIENT_STOCK', 'Insufficient stock', {'available': '3.000'})
        transport = make_transport(make_response(status_code=400, body=body))
        with self.assertRaises(ApiError) as ctx:
            transport.post('inventory/transactions/', {})
        self.assertEqual(ctx.exception.code, 'INSUFFICIENT_STOCK')
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.message, 'Insufficient stock')
        self.assertEqual(ctx.exception.data['details'], {'available': '3.000'})

    def test_flat_error_body(self):
        transport = make_transport(make_response(status_code=500, body={'error': 'Database API error'}))
        with self.assertRaises(ApiError) as ctx:
            transport.get('reports/stock-value/')
        self.assertEqual(ctx.exception.message, 'Database API error')
        self.assertIsNone(ctx.exception.code)

    @mock.patch('buildflow.client.http.time.sleep')
    def test_rate_limit_honours_retry_after(self, sleep):
        transport = make_transport(
            make_response(status_code=429, headers={'Retry-After': '3'}),
            make_response(status_code=429, headers={'Retry-After': '60'}),
            make_response(body=envelope({'ok': True})),
        )
        self.assertEqual(transport.get('inventory/levels/'), {'ok': True})
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [3.0, 10.0])

    @mock.patch('buildflow.client.http.time.sleep')
    def test_rate_limit_gives_up_after_two_retries(self, sleep):
        limited = [make_response(status_code=429, body=error_envelope('RATE_LIMITED', 'Slow down'))
                   for _ in range(3)]
        transport = make_transport(*limited)
        with self.assertRaises(ApiError) as ctx:
            transport.get('inventory/levels/')
        self.assertEqual(ctx.exception.code, 'RATE_LIMITED')
        self.assertEqual(transport.session.request.call_count, 3)
        self.assertEqual(sleep.call_count, 2)

    def test_missing_agency_database_clears_session(self):
        body = error_envelope('AGENCY_DB_NOT_FOUND', 'Agency database "acme_builders" not found.')
        transport = make_transport(make_response(status_code=404, body=body))
        with self.assertRaises(ApiError):
            transport.get('inventory/products/')
        self.assertIsNone(transport.store.token)
        self.assertIsNone(transport.store.agency_database)

    def test_postgres_missing_database_code_clears_session(self):
        transport = make_transport(make_response(status_code=500, body={'code': '3D000',
                                                                        'message': 'database gone'}))
        with self.assertRaises(ApiError):
            transport.get('inventory/products/')
        self.assertFalse(transport.store.is_authenticated)

    def test_schema_error_keeps_session(self):
        transport = make_transport(make_response(status_code=500, body={
            'code': '42P01', 'message': 'relation "leads" does not exist'}))
        with self.assertRaises(ApiError) as ctx:
            transport.get('crm/leads/')
        self.assertEqual(ctx.exception.code, '42P01')
        self.assertEqual(transport.store.token, 'access-token')

    def test_network_error(self):
        transport = make_transport(requests.ConnectionError('refused'))
        with self.assertRaises(ApiError) as ctx:
            transport.get('auth/me/')
        self.assertEqual(ctx.exception.code, 'NETWORK_ERROR')
        self.assertIsNone(ctx.exception.status_code)


class AuthServiceTests(SimpleTestCase):

    def test_login_stores_session(self):
        payload = {'access': 'a1', 'refresh': 'r1', 'user': {'id': 5, 'agency_database': 'acme_builders'}}
        transport = make_transport(make_response(body=envelope(payload)), token=None, agency_database=None)
        response = AuthService(transport).login('owner@acme.example.com', 'secret')
        self.assertTrue(response.success)
        self.assertEqual(transport.store.token, 'a1')
        self.assertEqual(transport.store.refresh_token, 'r1')
        self.assertEqual(transport.store.user_id, 5)
        self.assertEqual(transport.store.agency_database, 'acme_builders')

    def test_login_waiting_for_second_factor(self):
        transport = make_transport(make_response(body=envelope({'requires_2fa': True, 'user_id': 5})),
                                   token=None, agency_database=None)
        response = AuthService(transport).login('owner@acme.example.com', 'secret')
        self.assertTrue(response.data['requires_2fa'])
        self.assertFalse(transport.store.is_authenticated)

    def test_failed_login(self):
        body = error_envelope('AUTH_INVALID_CREDENTIALS', 'Invalid email or password.')
        transport = make_transport(make_response(status_code=401, body=body), token=None)
        response = AuthService(transport).login('owner@acme.example.com', 'wrong')
        self.assertFalse(response.success)
        self.assertEqual(response.error_code, 'AUTH_INVALID_CREDENTIALS')
        self.assertEqual(transport.session.request.call_count, 1)

    def test_logout(self):
        transport = make_transport()
        AuthService(transport).logout()
        self.assertFalse(transport.store.is_authenticated)
        self.assertIsNone(transport.store.agency_database)


class ServiceTests(SimpleTestCase):

    @mock.patch('buildflow.client.base.time.sleep')
    def test_stock_movement_is_not_retried(self, sleep):
        transport = make_transport(make_response(status_code=502, body={'error': 'Bad gateway'}))
        response = InventoryService(transport).create_transaction('in', 1, 2, 5)
        self.assertFalse(response.success)
        self.assertEqual(transport.session.request.call_count, 1)
        self.assertEqual(transport.session.request.call_args.kwargs['json']['quantity'], '5')

    @mock.patch('buildflow.client.base.time.sleep')
    def test_reads_are_retried(self, sleep):
        transport = make_transport(
            make_response(status_code=502, body={'error': 'Bad gateway'}),
            make_response(body=envelope({'results': [], 'count': 0})),
        )
        response = InventoryService(transport).list_products(low_stock=True)
        self.assertTrue(response.success)
        self.assertEqual(transport.session.request.call_args.kwargs['params'], {'low_stock': 'true'})

    def test_records_count(self):
        transport = make_transport(make_response(body=envelope({'count': 4})))
        response = RecordsService(transport).count('products', where={'is_active': True})
        self.assertEqual(response.data, 4)
        params = transport.session.request.call_args.kwargs['params']
        self.assertEqual(json.loads(params['where']), {'is_active': True})

    def test_records_select_one(self):
        transport = make_transport(make_response(body=envelope([{'id': 3}])))
        response = RecordsService(transport).select_one('clients', where={'email': 'a@b.c'})
        self.assertEqual(response.data, {'id': 3})
        body = transport.session.request.call_args.kwargs['json']
        self.assertEqual(body['limit'], 1)
        self.assertEqual(body['where'], {'email': 'a@b.c'})

    def test_client_shares_one_session(self):
        client = BuildFlowClient(BASE_URL, session=mock.Mock(headers={}))
        self.assertIs(client.crm.session, client.auth.session)
        self.assertIs(client.records.http, client.inventory.http)
