"""
Tests for the records API
Tests: statement builder output, agency scoping and the generic CRUD endpoints
"""
from decimal import Decimal
from unittest import mock

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from rest_framework import status

from buildflow.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from buildflow.inventory.models import InventoryLevel, Warehouse

from . import builder
from .builder import FilterCondition, QueryBuilderError
from .service import RecordError, RecordNotFound, RecordService, TableNotAllowed, tenant_models


class WhereClauseTests(SimpleTestCase):
    """Test WHERE rendering from a column mapping"""

    def test_empty_mapping(self):
        self.assertEqual(builder.build_where_clause({}), ('', []))
        self.assertEqual(builder.build_where_clause(None), ('', []))

    def test_equality_null_and_list(self):
        sql, params = builder.build_where_clause({'status': 'active', 'deleted_at': None, 'id': [1, 2]})
        self.assertEqual(sql, 'WHERE "status" = %s AND "deleted_at" IS NULL AND "id" IN (%s, %s)')
        self.assertEqual(params, ['active', 1, 2])

    def test_empty_list_matches_nothing(self):
        sql, params = builder.build_where_clause({'id': []})
        self.assertEqual(sql, 'WHERE 1 = 0')
        self.assertEqual(params, [])

    def test_operator_mapping(self):
        sql, params = builder.build_where_clause({'amount': {'operator': '>=', 'value': 10}})
        self.assertEqual(sql, 'WHERE "amount" >= %s')
        self.assertEqual(params, [10])

    def test_unknown_operator_rejected(self):
        with self.assertRaises(QueryBuilderError):
            builder.build_where_clause({'amount': {'operator': '; DROP', 'value': 1}})

    def test_in_operator_needs_a_list(self):
        sql, params = builder.build_where_clause({'status': {'operator': 'in', 'value': ['a', 'b']}})
        self.assertEqual(sql, 'WHERE "status" IN (%s, %s)')
        self.assertEqual(params, ['a', 'b'])
        with self.assertRaises(QueryBuilderError):
            builder.build_where_clause({'status': {'operator': 'in', 'value': 'a'}})

    def test_numeric_placeholders_start_index(self):
        sql, params = builder.build_where_clause({'a': 1, 'b': 2}, start_index=3, placeholder_style='numeric')
        self.assertEqual(sql, 'WHERE "a" = $3 AND "b" = $4')
        self.assertEqual(params, [1, 2])

    def test_invalid_identifier_rejected(self):
        with self.assertRaises(QueryBuilderError):
            builder.build_where_clause({'name"; --': 'x'})


class FilterClauseTests(SimpleTestCase):
    """Test filter lists and or-groups"""

    def test_comparison_filters(self):
        sql, params = builder.build_filters_clause([
            {'column': 'qty', 'operator': 'gt', 'value': 5},
            {'column': 'name', 'operator': 'like', 'value': 'Ce%'},
        ])
        self.assertEqual(sql, 'WHERE "qty" > %s AND "name" LIKE %s')
        self.assertEqual(params, [5, 'Ce%'])

    def test_eq_none_becomes_is_null(self):
        sql, params = builder.build_filters_clause([FilterCondition('closed_at', 'eq', None)])
        self.assertEqual(sql, 'WHERE "closed_at" IS NULL')
        self.assertEqual(params, [])

    def test_negated_and_in(self):
        sql, params = builder.build_filters_clause([
            {'column': 'status', 'operator': 'in', 'value': ['a', 'b'], 'negated': True},
        ])
        self.assertEqual(sql, 'WHERE NOT ("status" IN (%s, %s))')
        self.assertEqual(params, ['a', 'b'])

    def test_unknown_operator_and_empty_in_are_skipped(self):
        sql, params = builder.build_filters_clause([
            {'column': 'status', 'operator': 'between', 'value': 1},
            {'column': 'status', 'operator': 'in', 'value': []},
        ])
        self.assertEqual((sql, params), ('', []))

    def test_or_group(self):
        sql, params = builder.build_filters_clause([
            {'column': '__or__', 'operator': 'or', 'value': 'name.ilike.%acme%,email.eq.a@b.com,bad,x.gt.1'},
        ])
        self.assertEqual(sql, 'WHERE ("name" ILIKE %s OR "email" = %s)')
        self.assertEqual(params, ['%acme%', 'a@b.com'])

    def test_or_group_ignores_negated(self):
        sql, params = builder.build_filters_clause([
            {'column': '__or__', 'operator': 'or', 'value': 'status.eq.new,status.eq.lost', 'negated': True},
            {'column': 'source', 'operator': 'eq', 'value': 'web', 'negated': True},
        ])
        self.assertEqual(sql, 'WHERE ("status" = %s OR "status" = %s) AND NOT ("source" = %s)')
        self.assertEqual(params, ['new', 'lost', 'web'])

    def test_parse_or_filter_keeps_dots_in_value(self):
        conditions = builder.parse_or_filter('email.eq.first.last@example.com')
        self.assertEqual(len(conditions), 1)
        self.assertEqual(conditions[0].value, 'first.last@example.com')

    def test_is_literal_validation(self):
        sql, _ = builder.build_filters_clause([{'column': 'is_active', 'operator': 'is', 'value': True}])
        self.assertEqual(sql, 'WHERE "is_active" IS TRUE')
        with self.assertRaises(QueryBuilderError):
            builder.build_filters_clause([{'column': 'is_active', 'operator': 'is', 'value': 'maybe'}])


class StatementTests(SimpleTestCase):
    """Test full statements"""

    def test_select_with_order_limit_offset(self):
        sql, params = builder.select_query('leads', select='id, status', where={'status': 'new'},
                                           order_by='created_at desc nulls last', limit=10, offset=20,
                                           placeholder_style='numeric')
        self.assertEqual(
            sql,
            'SELECT "id", "status" FROM "leads" WHERE "status" = $1 '
            'ORDER BY "created_at" DESC NULLS LAST LIMIT $2 OFFSET $3'
        )
        self.assertEqual(params, ['new', 10, 20])

    def test_filters_take_precedence_over_where(self):
        sql, params = builder.count_query('leads', where={'status': 'new'},
                                          filters=[{'column': 'status', 'operator': 'eq', 'value': 'won'}])
        self.assertEqual(sql, 'SELECT COUNT(*) AS count FROM "leads" WHERE "status" = %s')
        self.assertEqual(params, ['won'])

    def test_bad_order_by_rejected(self):
        with self.assertRaises(QueryBuilderError):
            builder.select_query('leads', order_by='id; DROP TABLE leads')

    def test_negative_limit_rejected(self):
        with self.assertRaises(QueryBuilderError):
            builder.select_query('leads', limit=-1)

    def test_insert_injects_agency_for_scoped_tables(self):
        sql, params = builder.insert_query('leads', {'company_name': 'Acme'}, agency_id='a-1')
        self.assertEqual(sql, 'INSERT INTO "leads" ("company_name", "agency_id") VALUES (%s, %s) RETURNING *')
        self.assertEqual(params, ['Acme', 'a-1'])

    def test_insert_drops_agency_for_settings_table(self):
        sql, params = builder.insert_query('agency_settings', {'key': 'k', 'agency_id': 'a-1'}, agency_id='a-1')
        self.assertNotIn('agency_id', sql)
        self.assertEqual(params, ['k'])

    def test_update_numbers_where_after_set(self):
        sql, params = builder.update_query('leads', {'status': 'lost'}, {'id': 7}, now='NOW',
                                           placeholder_style='numeric')
        self.assertEqual(
            sql,
            'UPDATE "leads" SET "status" = $1, "updated_at" = $2 WHERE "id" = $3 RETURNING *'
        )
        self.assertEqual(params, ['lost', 'NOW', 7])

    def test_update_and_delete_require_where(self):
        with self.assertRaises(QueryBuilderError):
            builder.update_query('leads', {'status': 'lost'}, {})
        with self.assertRaises(QueryBuilderError):
            builder.delete_query('leads', {})

    def test_batch_insert(self):
        self.assertEqual(builder.batch_insert_query('leads', []), (None, []))
        sql, params = builder.batch_insert_query('clients', [{'name': 'A'}, {'name': 'B'}])
        self.assertEqual(sql, 'INSERT INTO "clients" ("name") VALUES (%s), (%s) RETURNING *')
        self.assertEqual(params, ['A', 'B'])

    def test_upsert(self):
        sql, params = builder.upsert_query('warehouses', {'code': 'MAIN', 'name': 'Main'}, 'code')
        self.assertEqual(
            sql,
            'INSERT INTO "warehouses" ("code", "name") VALUES (%s, %s) '
            'ON CONFLICT ("code") DO UPDATE SET "name" = EXCLUDED."name" RETURNING *'
        )
        self.assertEqual(params, ['MAIN', 'Main'])

    def test_upsert_missing_key(self):
        with self.assertRaises(QueryBuilderError):
            builder.upsert_query('warehouses', {'name': 'Main'}, 'code')

    def test_upsert_updates_only_listed_columns(self):
        sql, params = builder.upsert_query(
            'warehouses', {'code': 'MAIN', 'name': 'Main', 'address': '', 'is_active': True},
            'code', update_columns=['name'],
        )
        self.assertEqual(
            sql,
            'INSERT INTO "warehouses" ("code", "name", "address", "is_active") VALUES (%s, %s, %s, %s) '
            'ON CONFLICT ("code") DO UPDATE SET "name" = EXCLUDED."name" RETURNING *'
        )
        self.assertEqual(params, ['MAIN', 'Main', '', True])

    def test_upsert_without_update_columns_does_nothing(self):
        sql, _ = builder.upsert_query('warehouses', {'code': 'MAIN', 'name': 'Main'}, 'code', update_columns=[])
        self.assertTrue(sql.endswith('ON CONFLICT ("code") DO NOTHING RETURNING *'))

    def test_upsert_update_column_must_be_in_data(self):
        with self.assertRaises(QueryBuilderError):
            builder.upsert_query('warehouses', {'code': 'MAIN'}, 'code', update_columns=['name'])

    def test_limit_zero_is_kept(self):
        sql, params = builder.select_query('leads', limit=0)
        self.assertEqual(sql, 'SELECT * FROM "leads" LIMIT %s')
        self.assertEqual(params, [0])


class RecordServiceTests(TestCase):
    """Test the record service against the tenant tables"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.other_agency = TestDataFactory.create_agency()
        self.service = RecordService(agency_id=self.agency.id)

    def test_only_agency_tables_are_exposed(self):
        tables = tenant_models()
        self.assertIn('warehouses', tables)
        self.assertIn('leads', tables)
        self.assertNotIn('purchase_order_items', tables)
        self.assertNotIn('users', tables)
        with self.assertRaises(TableNotAllowed):
            self.service.select_records('users')

    def test_insert_sets_agency(self):
        row = self.service.insert_record('warehouses', {'name': 'Main', 'code': 'MAIN'})
        self.assertEqual(row['agency_id'], self.agency.id)
        warehouse = Warehouse.objects.get(pk=row['id'])
        self.assertEqual(warehouse.agency_id, self.agency.id)

    def test_select_is_scoped(self):
        TestDataFactory.create_warehouse(self.agency, code='A1')
        TestDataFactory.create_warehouse(self.other_agency, code='B1')
        rows = self.service.select_records('warehouses')
        self.assertEqual([row['code'] for row in rows], ['A1'])
        self.assertEqual(self.service.count_records('warehouses'), 1)

    def test_update_cannot_reach_other_agency(self):
        foreign = TestDataFactory.create_warehouse(self.other_agency, code='B1')
        with self.assertRaises(RecordNotFound):
            self.service.update_record('warehouses', {'name': 'Hijacked'}, {'id': foreign.id})
        foreign.refresh_from_db()
        self.assertNotEqual(foreign.name, 'Hijacked')

    def test_unknown_column_rejected(self):
        with self.assertRaises(RecordError):
            self.service.insert_record('warehouses', {'name': 'Main', 'code': 'M', 'nope': 1})

    def _fetch_without_returning(self, statement):
        """Make ``statement`` queries (INSERT, UPDATE) come back without rows"""
        real_fetch = self.service._fetch_all

        def fetch(sql, params):
            rows = real_fetch(sql, params)
            return [] if sql.startswith(statement) else rows

        return mock.patch.object(self.service, '_fetch_all', side_effect=fetch)

    def test_update_returns_unchanged_row(self):
        warehouse = TestDataFactory.create_warehouse(self.agency, name='Same', code='SAME')
        with self._fetch_without_returning('UPDATE'):
            row = self.service.update_record('warehouses', {'name': 'Same'}, {'id': warehouse.id})
        self.assertEqual(row['id'], warehouse.id)
        self.assertEqual(row['name'], 'Same')

        with self.assertRaises(RecordNotFound):
            self.service.update_record('warehouses', {'name': 'Gone'}, {'id': 999999})

    def test_batch_update(self):
        first = TestDataFactory.create_warehouse(self.agency, code='ONE')
        second = TestDataFactory.create_warehouse(self.agency, code='TWO')
        rows = self.service.batch_update('warehouses', [
            {'id': first.id, 'name': 'First'},
            {'id': second.id, 'name': 'Second'},
        ])
        self.assertEqual([row['name'] for row in rows], ['First', 'Second'])
        second.refresh_from_db()
        self.assertEqual(second.name, 'Second')

    def test_batch_update_rolls_back_on_missing_id(self):
        warehouse = TestDataFactory.create_warehouse(self.agency, name='Kept', code='ONE')
        with self.assertRaises(RecordError):
            self.service.batch_update('warehouses', [
                {'id': warehouse.id, 'name': 'Changed'},
                {'name': 'No id'},
            ])
        with self.assertRaises(RecordNotFound):
            self.service.batch_update('warehouses', [
                {'id': warehouse.id, 'name': 'Changed'},
                {'id': 999999, 'name': 'Missing'},
            ])
        warehouse.refresh_from_db()
        self.assertEqual(warehouse.name, 'Kept')

    def test_upsert_keeps_columns_not_sent(self):
        warehouse = TestDataFactory.create_warehouse(self.agency, name='Main', code='MAIN', is_active=False)
        Warehouse.objects.filter(pk=warehouse.pk).update(address='Dock 7')
        foreign = TestDataFactory.create_warehouse(self.other_agency, name='Foreign', code='MAIN')
        warehouse.refresh_from_db()
        created_at = warehouse.created_at

        row = self.service.upsert_record('warehouses', {'code': 'MAIN', 'name': 'Renamed'}, 'code')

        self.assertEqual(row['id'], warehouse.id)
        warehouse.refresh_from_db()
        self.assertEqual(warehouse.name, 'Renamed')
        self.assertFalse(warehouse.is_active)
        self.assertEqual(warehouse.address, 'Dock 7')
        self.assertEqual(warehouse.created_at, created_at)
        foreign.refresh_from_db()
        self.assertEqual(foreign.name, 'Foreign')
        self.assertEqual(Warehouse.objects.filter(agency_id=self.agency.id).count(), 1)

    def test_upsert_inserts_with_defaults(self):
        row = self.service.upsert_record('warehouses', {'code': 'NEW', 'name': 'New'}, 'code')
        self.assertTrue(row['is_active'])
        self.assertEqual(row['address'], '')
        self.assertEqual(row['agency_id'], self.agency.id)

    def test_upsert_lookup_by_foreign_key_name(self):
        product = TestDataFactory.create_product(self.agency)
        main = TestDataFactory.create_warehouse(self.agency, code='MAIN')
        site = TestDataFactory.create_warehouse(self.agency, code='SITE')
        InventoryLevel.objects.create(agency_id=self.agency.id, product=product, warehouse=main,
                                      quantity=Decimal('1'))
        level = InventoryLevel.objects.create(agency_id=self.agency.id, product=product, warehouse=site,
                                              quantity=Decimal('2'))

        with self._fetch_without_returning('INSERT'):
            row = self.service.upsert_record(
                'inventory_levels',
                {'product': product.id, 'warehouse': site.id, 'quantity': '7'},
                ['product', 'warehouse'],
            )

        self.assertEqual(row['id'], level.id)
        self.assertEqual(row['quantity'], Decimal('7'))

    def test_get_paginated(self):
        for code in ('W1', 'W2', 'W3', 'W4', 'W5'):
            TestDataFactory.create_warehouse(self.agency, code=code)
        TestDataFactory.create_warehouse(self.other_agency, code='W6')

        result = self.service.get_paginated('warehouses', page=2, page_size=2, order_by='code')
        self.assertEqual([row['code'] for row in result['data']], ['W3', 'W4'])
        self.assertEqual((result['total'], result['page'], result['page_size']), (5, 2, 2))

        result = self.service.get_paginated('warehouses', page=3, page_size=2, order_by='code')
        self.assertEqual([row['code'] for row in result['data']], ['W5'])

        result = self.service.get_paginated('warehouses', page=0, page_size=2, order_by='code')
        self.assertEqual(result['page'], 1)
        self.assertEqual([row['code'] for row in result['data']], ['W1', 'W2'])

    def test_execute_transaction_rolls_back(self):
        def create_then_fail(service):
            service.insert_record('warehouses', {'name': 'Temp', 'code': 'TMP'})
            raise RecordError('stop')

        with self.assertRaises(RecordError):
            self.service.execute_transaction(create_then_fail)
        self.assertFalse(Warehouse.objects.filter(code='TMP').exists())

        row = self.service.execute_transaction(
            lambda service: service.insert_record('warehouses', {'name': 'Kept', 'code': 'KEEP'})
        )
        self.assertTrue(Warehouse.objects.filter(pk=row['id']).exists())

    def test_batch_insert(self):
        self.assertEqual(self.service.batch_insert('warehouses', []), [])
        rows = self.service.batch_insert('warehouses', [
            {'name': 'North', 'code': 'N'},
            {'name': 'South', 'code': 'S'},
        ])
        self.assertEqual(sorted(row['code'] for row in rows), ['N', 'S'])
        self.assertEqual(Warehouse.objects.filter(agency_id=self.agency.id).count(), 2)


class RecordAPITests(TestCase):
    """Test records endpoints"""

    def setUp(self):
        cache.clear()
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_and_list(self):
        response = self.client.post('/api/v1/records/warehouses/', {'name': 'Main', 'code': 'MAIN'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'MAIN')

        response = self.client.get('/api/v1/records/warehouses/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['data'][0]['name'], 'Main')

    def test_response_envelope(self):
        response = self.client.get('/api/v1/records/warehouses/count/')
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data'], {'count': 0})
        self.assertIsNone(body['error'])

    def test_query_endpoint(self):
        TestDataFactory.create_warehouse(self.agency, code='AAA')
        TestDataFactory.create_warehouse(self.agency, code='BBB')
        response = self.client.post('/api/v1/records/warehouses/query/', {
            'filters': [{'column': 'code', 'operator': 'eq', 'value': 'BBB'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['code'], 'BBB')

    def test_bad_where_json(self):
        response = self.client.get('/api/v1/records/warehouses/', {'where': '{not json'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_QUERY')

    def test_unknown_table(self):
        response = self.client.get('/api/v1/records/users/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'NOT_FOUND')

    def test_update_and_delete(self):
        warehouse = TestDataFactory.create_warehouse(self.agency, code='UPD')
        response = self.client.patch(f'/api/v1/records/warehouses/{warehouse.id}/', {'name': 'Renamed'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'Renamed')

        response = self.client.delete(f'/api/v1/records/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Warehouse.objects.filter(pk=warehouse.id).exists())

    def test_upsert_endpoint(self):
        warehouse = TestDataFactory.create_warehouse(self.agency, name='Main', code='MAIN', is_active=False)
        response = self.client.post('/api/v1/records/warehouses/upsert/', {
            'unique_key': 'code',
            'data': {'code': 'MAIN', 'name': 'Renamed'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], warehouse.id)
        self.assertEqual(response.data['name'], 'Renamed')
        self.assertFalse(response.data['is_active'])

    def test_upsert_endpoint_requires_key_and_data(self):
        response = self.client.post('/api/v1/records/warehouses/upsert/', {'data': {'code': 'MAIN'}},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')

    def test_batch_create(self):
        response = self.client.post('/api/v1/records/warehouses/', [
            {'name': 'North', 'code': 'N'},
            {'name': 'South', 'code': 'S'},
        ], format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data), 2)

    def test_list_pagination(self):
        for code in ('W1', 'W2', 'W3'):
            TestDataFactory.create_warehouse(self.agency, code=code)
        response = self.client.get('/api/v1/records/warehouses/', {'page': 2, 'page_size': 2, 'order_by': 'code'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['code'] for row in response.data['data']], ['W3'])
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(response.data['page'], 2)
        self.assertEqual(response.data['page_size'], 2)

    def test_delete_missing_record(self):
        response = self.client.delete('/api/v1/records/warehouses/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_user_without_agency_is_refused(self):
        admin = TestDataFactory.create_super_admin()
        self.client.authenticate_user(admin)
        response = self.client.get('/api/v1/records/warehouses/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'RBAC_NO_AGENCY_CONTEXT')
