"""
Comprehensive test suite for Inventory module
Tests: stock movements, transfers, low stock alerts, SKU generation and agency isolation
"""
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from rest_framework import status

from buildflow.agencies.context import use_agency_database
from buildflow.core.exceptions import ApiException, InsufficientStock
from buildflow.core.test_utils import AuthenticatedAPIClient, TestDataFactory

from . import services
from .models import InventoryLevel, InventoryTransaction, Product
from .services import apply_transaction
from .utils import generate_product_sku, get_prefix_for_product


class SkuGenerationTests(TestCase):
    """Test category based SKU generation"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()

    def test_prefix_from_category_code(self):
        category = TestDataFactory.create_category(self.agency, name='Cement', code_prefix='cem')
        product = Product(name='Portland', category=category)
        self.assertEqual(get_prefix_for_product(product), 'CEM')

    def test_prefix_from_category_name(self):
        category = TestDataFactory.create_category(self.agency, name='Steel bars')
        product = Product(name='Rebar 12mm', category=category)
        self.assertEqual(get_prefix_for_product(product), 'STE')

    def test_prefix_from_product_name_and_fallback(self):
        self.assertEqual(get_prefix_for_product(Product(name='Gravel')), 'GRA')
        self.assertEqual(get_prefix_for_product(Product(name='X')), 'PRD')

    def test_sequence_continues_per_agency(self):
        category = TestDataFactory.create_category(self.agency, name='Cement', code_prefix='CEM')
        TestDataFactory.create_product(self.agency, sku='CEM-0007', category=category)
        other = TestDataFactory.create_agency()
        TestDataFactory.create_product(other, sku='CEM-0050')

        product = Product(name='Portland', category=category)
        self.assertEqual(generate_product_sku(product, self.agency.id), 'CEM-0008')


class ApplyTransactionTests(TestCase):
    """Test stock movements through apply_transaction"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.main = TestDataFactory.create_warehouse(self.agency, code='MAIN')
        self.site = TestDataFactory.create_warehouse(self.agency, code='SITE')
        self.product = TestDataFactory.create_product(self.agency)

    def _level(self, warehouse):
        return InventoryLevel.objects.get(product=self.product, warehouse=warehouse).quantity

    def _apply(self, transaction_type, quantity, **kwargs):
        with use_agency_database(self.agency.database_name):
            return apply_transaction(self.agency.id, transaction_type, self.product, self.main, quantity, **kwargs)

    def test_stock_in_creates_level(self):
        movement = self._apply('in', Decimal('25'))
        self.assertEqual(self._level(self.main), Decimal('25.000'))
        self.assertEqual(movement.agency_id, self.agency.id)
        self.assertEqual(movement.transaction_type, 'in')

    def test_stock_out(self):
        self._apply('in', 10)
        self._apply('out', 4)
        self.assertEqual(self._level(self.main), Decimal('6.000'))

    def test_insufficient_stock(self):
        self._apply('in', 3)
        with self.assertRaises(InsufficientStock) as ctx:
            self._apply('out', 5)
        self.assertEqual(ctx.exception.details['available'], '3.000')
        self.assertEqual(ctx.exception.details['requested'], '5')
        self.assertEqual(self._level(self.main), Decimal('3.000'))
        self.assertEqual(InventoryTransaction.objects.filter(transaction_type='out').count(), 0)

    def test_adjustment_signed(self):
        self._apply('in', 10)
        self._apply('adjustment', -2)
        self._apply('adjustment', 5)
        self.assertEqual(self._level(self.main), Decimal('13.000'))

    def test_negative_adjustment_cannot_go_below_zero(self):
        self._apply('in', 1)
        with self.assertRaises(InsufficientStock):
            self._apply('adjustment', -2)

    def test_transfer_moves_stock(self):
        self._apply('in', 10)
        movement = self._apply('transfer', 4, to_warehouse=self.site)
        self.assertEqual(self._level(self.main), Decimal('6.000'))
        self.assertEqual(self._level(self.site), Decimal('4.000'))
        self.assertEqual(movement.to_warehouse_id, self.site.id)

    def test_transfer_locks_levels_in_warehouse_order(self):
        """Opposite transfers take the row locks in the same order"""
        with use_agency_database(self.agency.database_name):
            apply_transaction(self.agency.id, 'in', self.product, self.site, 10)
            with mock.patch('buildflow.inventory.services._locked_level',
                            wraps=services._locked_level) as locked:
                apply_transaction(self.agency.id, 'transfer', self.product, self.site, 4,
                                  to_warehouse=self.main)
        locked_warehouses = [call.args[1] for call in locked.call_args_list]
        self.assertEqual(locked_warehouses, sorted([self.main, self.site], key=lambda w: w.pk))
        self.assertEqual(self._level(self.site), Decimal('6.000'))
        self.assertEqual(self._level(self.main), Decimal('4.000'))

    def test_transfer_validation(self):
        self._apply('in', 10)
        with self.assertRaises(ApiException):
            self._apply('transfer', 4)
        with self.assertRaises(ApiException):
            self._apply('transfer', 4, to_warehouse=self.main)

    def test_quantity_must_be_positive(self):
        with self.assertRaises(ApiException):
            self._apply('in', 0)
        with self.assertRaises(ApiException):
            self._apply('adjustment', 0)


class WarehouseAPITests(TestCase):
    """Test warehouse endpoints"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency, role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_warehouse(self):
        response = self.client.post('/api/v1/inventory/warehouses/', {'name': 'Main Yard', 'code': 'main'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'MAIN')

    def test_duplicate_code_rejected(self):
        TestDataFactory.create_warehouse(self.agency, code='MAIN')
        response = self.client.post('/api/v1/inventory/warehouses/', {'name': 'Other', 'code': 'main'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('code', response.data)

    def test_same_code_in_other_agency_allowed(self):
        other = TestDataFactory.create_agency()
        TestDataFactory.create_warehouse(other, code='MAIN')
        response = self.client.post('/api/v1/inventory/warehouses/', {'name': 'Main', 'code': 'MAIN'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_delete_warehouse_with_stock(self):
        warehouse = TestDataFactory.create_warehouse(self.agency)
        product = TestDataFactory.create_product(self.agency)
        TestDataFactory.set_stock(product, warehouse, 5)
        response = self.client.delete(f'/api/v1/inventory/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'WAREHOUSE_NOT_EMPTY')

    def test_delete_warehouse_with_history(self):
        warehouse = TestDataFactory.create_warehouse(self.agency)
        product = TestDataFactory.create_product(self.agency)
        apply_transaction(self.agency.id, 'in', product, warehouse, 2)
        apply_transaction(self.agency.id, 'out', product, warehouse, 2)
        response = self.client.delete(f'/api/v1/inventory/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'WAREHOUSE_IN_USE')

    def test_delete_empty_warehouse(self):
        warehouse = TestDataFactory.create_warehouse(self.agency)
        response = self.client.delete(f'/api/v1/inventory/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_employee_cannot_delete(self):
        warehouse = TestDataFactory.create_warehouse(self.agency)
        employee = TestDataFactory.create_user(agency=self.agency, role='employee')
        self.client.authenticate_user(employee)
        response = self.client.delete(f'/api/v1/inventory/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'RBAC_INSUFFICIENT_ROLE')


class ProductAPITests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency, role='project_manager')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.category = TestDataFactory.create_category(self.agency, name='Cement', code_prefix='CEM')

    def test_create_product_generates_sku(self):
        response = self.client.post('/api/v1/inventory/products/', {
            'name': 'Portland Cement 50kg',
            'category': self.category.id,
            'unit_cost': '8.50',
            'selling_price': '11.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sku'], 'CEM-0001')
        self.assertEqual(response.data['category_name'], 'Cement')

    def test_create_product_with_sku(self):
        response = self.client.post('/api/v1/inventory/products/', {'name': 'Sand', 'sku': 'sand-01'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sku'], 'SAND-01')

    def test_negative_price_rejected(self):
        response = self.client.post('/api/v1/inventory/products/', {'name': 'Sand', 'unit_cost': '-1'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_category_from_other_agency_rejected(self):
        other = TestDataFactory.create_agency()
        foreign = TestDataFactory.create_category(other)
        response = self.client.post('/api/v1/inventory/products/', {'name': 'Sand', 'category': foreign.id},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('category', response.data)

    def test_list_is_scoped_and_paginated(self):
        TestDataFactory.create_product(self.agency, name='Ours')
        TestDataFactory.create_product(TestDataFactory.create_agency(), name='Theirs')
        response = self.client.get('/api/v1/inventory/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['name'], 'Ours')

    def test_search_filter(self):
        TestDataFactory.create_product(self.agency, name='Red Brick')
        TestDataFactory.create_product(self.agency, name='Timber')
        response = self.client.get('/api/v1/inventory/products/', {'search': 'brick'})
        self.assertEqual(response.data['count'], 1)

    def test_low_stock_filter(self):
        warehouse = TestDataFactory.create_warehouse(self.agency)
        low = TestDataFactory.create_product(self.agency, name='Low', reorder_level=Decimal('10'))
        ok = TestDataFactory.create_product(self.agency, name='Ok', reorder_level=Decimal('10'))
        TestDataFactory.set_stock(low, warehouse, 3)
        TestDataFactory.set_stock(ok, warehouse, 30)
        response = self.client.get('/api/v1/inventory/products/', {'low_stock': 'true'})
        names = [item['name'] for item in response.data['results']]
        self.assertEqual(names, ['Low'])

    def test_delete_deactivates(self):
        product = TestDataFactory.create_product(self.agency)
        response = self.client.delete(f'/api/v1/inventory/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        product.refresh_from_db()
        self.assertFalse(product.is_active)

    def test_generate_code(self):
        product = TestDataFactory.create_product(self.agency, sku='TEMP', category=self.category)
        response = self.client.post(f'/api/v1/inventory/products/{product.id}/generate-code/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sku'], 'CEM-0001')

    def test_product_of_other_agency_not_found(self):
        foreign = TestDataFactory.create_product(TestDataFactory.create_agency())
        response = self.client.get(f'/api/v1/inventory/products/{foreign.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class StockAPITests(TestCase):
    """Test stock movement, level and alert endpoints"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.main = TestDataFactory.create_warehouse(self.agency, code='MAIN')
        self.site = TestDataFactory.create_warehouse(self.agency, code='SITE')
        self.product = TestDataFactory.create_product(self.agency, reorder_level=Decimal('5'))

    def _post(self, data):
        return self.client.post('/api/v1/inventory/transactions/', data, format='json')

    def test_stock_in(self):
        response = self._post({'transaction_type': 'in', 'product': self.product.id, 'warehouse': self.main.id,
                               'quantity': '12.5', 'unit_cost': '9.00'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created_by_id'], self.user.id)
        level = InventoryLevel.objects.get(product=self.product, warehouse=self.main)
        self.assertEqual(level.quantity, Decimal('12.500'))

    def test_stock_out_insufficient(self):
        response = self._post({'transaction_type': 'out', 'product': self.product.id, 'warehouse': self.main.id,
                               'quantity': '1'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INSUFFICIENT_STOCK')
        self.assertEqual(response.data['error']['details']['available'], '0.000')

    def test_transfer_requires_destination(self):
        response = self._post({'transaction_type': 'transfer', 'product': self.product.id,
                               'warehouse': self.main.id, 'quantity': '1'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('to_warehouse', response.data)

    def test_transfer(self):
        apply_transaction(self.agency.id, 'in', self.product, self.main, 10)
        response = self._post({'transaction_type': 'transfer', 'product': self.product.id,
                               'warehouse': self.main.id, 'to_warehouse': self.site.id, 'quantity': '4'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get(f'/api/v1/inventory/products/{self.product.id}/levels/')
        quantities = {item['warehouse']: item['quantity'] for item in response.data}
        self.assertEqual(quantities, {self.main.id: '6.000', self.site.id: '4.000'})

    def test_transaction_list_filtered_by_warehouse(self):
        apply_transaction(self.agency.id, 'in', self.product, self.main, 10)
        apply_transaction(self.agency.id, 'transfer', self.product, self.main, 3, to_warehouse=self.site)
        response = self.client.get('/api/v1/inventory/transactions/', {'warehouse': self.site.id})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['transaction_type'], 'transfer')

    def test_low_stock_alerts(self):
        TestDataFactory.set_stock(self.product, self.main, 2)
        plenty = TestDataFactory.create_product(self.agency, reorder_level=Decimal('5'))
        TestDataFactory.set_stock(plenty, self.main, 50)
        response = self.client.get('/api/v1/inventory/alerts/low-stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['product'], self.product.id)

    def test_header_for_other_agency_rejected(self):
        other = TestDataFactory.create_agency()
        self.client.authenticate_user(self.user, agency_database=other.database_name)
        response = self.client.get('/api/v1/inventory/warehouses/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'RBAC_AGENCY_MISMATCH')

    def test_unknown_agency_header(self):
        self.client.authenticate_user(self.user, agency_database='no_such_agency')
        response = self.client.get('/api/v1/inventory/warehouses/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json()['error']['code'], 'AGENCY_DB_NOT_FOUND')
