"""
Tests for Reports module
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from buildflow.core.cache_utils import get_agency_cache_version, invalidate_agency_cache
from buildflow.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from buildflow.inventory.services import apply_transaction

from . import queries


class ReportsAPITests(TestCase):
    """Test Reports API endpoints"""

    def setUp(self):
        cache.clear()
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

        self.warehouse = TestDataFactory.create_warehouse(self.agency, name='Main')
        self.category = TestDataFactory.create_category(self.agency, name='Cement')
        self.cement = TestDataFactory.create_product(self.agency, category=self.category, unit_cost=Decimal('8.00'),
                                                     reorder_level=Decimal('20'))
        self.sand = TestDataFactory.create_product(self.agency, unit_cost=Decimal('2.50'),
                                                   reorder_level=Decimal('5'))
        apply_transaction(self.agency.id, 'in', self.cement, self.warehouse, 10)
        apply_transaction(self.agency.id, 'in', self.sand, self.warehouse, 100)
        cache.clear()

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/reports/inventory-summary/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_inventory_summary(self):
        response = self.client.get('/api/v1/reports/inventory-summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        summary = response.data['summary']
        self.assertEqual(summary['total_products'], 2)
        self.assertEqual(summary['total_warehouses'], 1)
        self.assertEqual(summary['total_quantity'], 110.0)
        self.assertEqual(summary['low_stock_count'], 1)
        self.assertEqual(summary['out_of_stock_count'], 0)
        self.assertEqual(response.data['movements_last_30_days']['in'], 2)

    def test_stock_value(self):
        response = self.client.get('/api/v1/reports/stock-value/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_value'], 330.0)
        self.assertEqual(response.data['by_warehouse'][0]['warehouse_name'], 'Main')
        categories = {row['category_name']: row['value'] for row in response.data['by_category']}
        self.assertEqual(categories, {'Uncategorized': 250.0, 'Cement': 80.0})

    def test_procurement_summary(self):
        supplier = TestDataFactory.create_supplier(self.agency, name='Acme Supply')
        order = TestDataFactory.create_purchase_order(self.agency, supplier=supplier, status='sent')
        TestDataFactory.create_purchase_order_item(order, self.cement, Decimal('10'), Decimal('8.00'))
        TestDataFactory.create_purchase_order(self.agency, supplier=supplier)

        response = self.client.get('/api/v1/reports/procurement-summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['orders_by_status']['sent']['count'], 1)
        self.assertEqual(response.data['orders_by_status']['draft']['count'], 1)
        self.assertEqual(response.data['total_committed'], 80.0)
        self.assertEqual(response.data['open_orders'], 1)
        self.assertEqual(response.data['top_suppliers'][0]['supplier_name'], 'Acme Supply')

    def test_procurement_summary_bad_date(self):
        response = self.client.get('/api/v1/reports/procurement-summary/', {'date_from': '14/01/2025'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')

    def test_crm_pipeline(self):
        TestDataFactory.create_lead(self.agency, status='new', estimated_value=Decimal('1000'), probability=10)
        TestDataFactory.create_lead(self.agency, status='proposal', estimated_value=Decimal('4000'),
                                    probability=50)
        TestDataFactory.create_lead(self.agency, status='won')
        TestDataFactory.create_lead(self.agency, status='lost')
        TestDataFactory.create_lead(self.agency, status='lost')

        response = self.client.get('/api/v1/reports/crm-pipeline/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['open_leads'], 2)
        self.assertEqual(response.data['open_value'], 5000.0)
        self.assertEqual(response.data['weighted_value'], 2100.0)
        self.assertEqual(response.data['win_rate'], 33.33)
        stages = {stage['status']: stage['count'] for stage in response.data['stages']}
        self.assertEqual(stages['lost'], 2)

    def test_reports_are_per_agency(self):
        other = TestDataFactory.create_agency()
        other_user = TestDataFactory.create_user(agency=other)
        self.client.get('/api/v1/reports/inventory-summary/')

        self.client.authenticate_user(other_user)
        response = self.client.get('/api/v1/reports/inventory-summary/')
        self.assertEqual(response.data['summary']['total_products'], 0)


class ReportCacheTests(TestCase):
    """Test per agency report caching"""

    def setUp(self):
        cache.clear()
        self.agency = TestDataFactory.create_agency()
        self.warehouse = TestDataFactory.create_warehouse(self.agency)
        self.product = TestDataFactory.create_product(self.agency)
        cache.clear()

    def test_result_is_cached(self):
        first = queries.inventory_summary(self.agency.id)
        TestDataFactory.create_product(self.agency)
        self.assertEqual(queries.inventory_summary(self.agency.id), first)

    def test_invalidation_bumps_version(self):
        queries.inventory_summary(self.agency.id)
        self.assertEqual(get_agency_cache_version(self.agency.id), 1)
        invalidate_agency_cache(self.agency.id)
        self.assertEqual(get_agency_cache_version(self.agency.id), 2)

    def test_tenant_write_invalidates_after_commit(self):
        before = queries.inventory_summary(self.agency.id)['summary']['total_products']
        with self.captureOnCommitCallbacks(execute=True):
            TestDataFactory.create_product(self.agency)
        after = queries.inventory_summary(self.agency.id)['summary']['total_products']
        self.assertEqual(after, before + 1)

    def test_other_agency_cache_untouched(self):
        other = TestDataFactory.create_agency()
        queries.inventory_summary(other.id)
        with self.captureOnCommitCallbacks(execute=True):
            TestDataFactory.create_product(self.agency)
        self.assertEqual(get_agency_cache_version(other.id), 1)
