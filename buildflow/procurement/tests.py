"""
Comprehensive test suite for Procurement module
Tests: requisition approval, purchase order numbering and totals, status workflow and goods receipts
"""
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from buildflow.core.numbering import next_document_number
from buildflow.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from buildflow.inventory.models import InventoryLevel, InventoryTransaction

from .models import PurchaseOrder, PurchaseRequisition


def today_stem(prefix):
    return f"{prefix}-{timezone.localdate().strftime('%Y%m%d')}-"


class DocumentNumberTests(TestCase):
    """Test sequential document numbers"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.supplier = TestDataFactory.create_supplier(self.agency)

    def test_first_number_of_the_day(self):
        number = next_document_number(PurchaseOrder, 'po_number', 'PO', self.agency.id)
        self.assertEqual(number, f"{today_stem('PO')}0001")

    def test_numbers_continue_and_are_per_agency(self):
        stem = today_stem('PO')
        TestDataFactory.create_purchase_order(self.agency, supplier=self.supplier, po_number=f'{stem}0004')
        other = TestDataFactory.create_agency()
        TestDataFactory.create_purchase_order(other, po_number=f'{stem}0010')
        self.assertEqual(next_document_number(PurchaseOrder, 'po_number', 'PO', self.agency.id), f'{stem}0005')


class PurchaseOrderModelTests(TestCase):
    """Test purchase order totals and receipt state"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.order = TestDataFactory.create_purchase_order(self.agency)
        self.product = TestDataFactory.create_product(self.agency)

    def test_totals(self):
        TestDataFactory.create_purchase_order_item(self.order, self.product, Decimal('10'), Decimal('100.00'))
        TestDataFactory.create_purchase_order_item(self.order, self.product, Decimal('5'), Decimal('50.00'))
        self.order.tax_amount = Decimal('125.00')
        self.order.shipping_cost = Decimal('30.00')
        self.order.discount_amount = Decimal('5.00')
        self.assertEqual(self.order.recalculate_totals(), Decimal('1400.00'))
        self.assertEqual(self.order.subtotal, Decimal('1250.00'))

    def test_remaining_and_fully_received(self):
        item = TestDataFactory.create_purchase_order_item(self.order, self.product, Decimal('10'))
        self.assertFalse(self.order.is_fully_received())
        item.received_quantity = Decimal('4')
        self.assertEqual(item.remaining_quantity, Decimal('6'))
        item.received_quantity = Decimal('10')
        item.save()
        self.assertTrue(self.order.is_fully_received())


class RequisitionAPITests(TestCase):
    """Test purchase requisition endpoints"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.employee = TestDataFactory.create_user(agency=self.agency, role='employee')
        self.manager = TestDataFactory.create_user(agency=self.agency, role='project_manager')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.employee)
        self.product = TestDataFactory.create_product(self.agency)

    def _create(self, status_value='pending'):
        return self.client.post('/api/v1/procurement/requisitions/', {
            'department': 'Site works',
            'status': status_value,
            'items': [
                {'product': self.product.id, 'description': 'Cement bags', 'quantity': '20',
                 'unit_price': '7.50'},
                {'description': 'Misc fixings', 'quantity': '1', 'unit_price': '40.00'},
            ],
        }, format='json')

    def test_create_requisition(self):
        response = self._create()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['requisition_number'].startswith(today_stem('PR')))
        self.assertEqual(response.data['total_amount'], '190.00')
        self.assertEqual(response.data['requested_by_id'], self.employee.id)

    def test_cannot_start_approved(self):
        response = self._create(status_value='approved')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_employee_cannot_approve(self):
        requisition_id = self._create().data['id']
        response = self.client.patch(f'/api/v1/procurement/requisitions/{requisition_id}/', {'status': 'approved'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'RBAC_INSUFFICIENT_ROLE')

    def test_manager_approves(self):
        requisition_id = self._create().data['id']
        self.client.authenticate_user(self.manager)
        response = self.client.patch(f'/api/v1/procurement/requisitions/{requisition_id}/', {'status': 'approved'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'approved')
        self.assertEqual(response.data['approved_by_id'], self.manager.id)
        self.assertIsNotNone(response.data['approved_at'])

    def test_invalid_transition(self):
        requisition_id = self._create(status_value='draft').data['id']
        self.client.authenticate_user(self.manager)
        response = self.client.patch(f'/api/v1/procurement/requisitions/{requisition_id}/', {'status': 'approved'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_STATUS_TRANSITION')
        self.assertEqual(response.data['error']['details']['from'], 'draft')

    def test_items_locked_after_submission(self):
        requisition_id = self._create().data['id']
        response = self.client.patch(f'/api/v1/procurement/requisitions/{requisition_id}/', {
            'items': [{'description': 'More', 'quantity': '1'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class PurchaseOrderAPITests(TestCase):
    """Test purchase order endpoints"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency, role='project_manager')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.supplier = TestDataFactory.create_supplier(self.agency)
        self.warehouse = TestDataFactory.create_warehouse(self.agency)
        self.product = TestDataFactory.create_product(self.agency)

    def _order_data(self, **overrides):
        data = {
            'supplier': self.supplier.id,
            'warehouse': self.warehouse.id,
            'tax_amount': '10.00',
            'items': [
                {'product': self.product.id, 'quantity': '10', 'unit_price': '25.00'},
            ],
        }
        data.update(overrides)
        return data

    def test_create_order(self):
        response = self.client.post('/api/v1/procurement/purchase-orders/', self._order_data(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['po_number'], f"{today_stem('PO')}0001")
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(response.data['subtotal'], '250.00')
        self.assertEqual(response.data['total_amount'], '260.00')
        self.assertEqual(len(response.data['items']), 1)

    def test_second_order_gets_next_number(self):
        self.client.post('/api/v1/procurement/purchase-orders/', self._order_data(), format='json')
        response = self.client.post('/api/v1/procurement/purchase-orders/', self._order_data(), format='json')
        self.assertEqual(response.data['po_number'], f"{today_stem('PO')}0002")

    def test_create_without_items(self):
        response = self.client.post('/api/v1/procurement/purchase-orders/', self._order_data(items=[]),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)

    def test_supplier_of_other_agency_rejected(self):
        foreign = TestDataFactory.create_supplier(TestDataFactory.create_agency())
        response = self.client.post('/api/v1/procurement/purchase-orders/', self._order_data(supplier=foreign.id),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('supplier', response.data)

    def test_requisition_must_be_approved(self):
        requisition = PurchaseRequisition.objects.create(agency_id=self.agency.id, requisition_number='PR-X-0001',
                                                         status='pending')
        response = self.client.post('/api/v1/procurement/purchase-orders/',
                                    self._order_data(requisition=requisition.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('requisition', response.data)

    def test_update_items_recalculates(self):
        created = self.client.post('/api/v1/procurement/purchase-orders/', self._order_data(), format='json').data
        item_id = created['items'][0]['id']
        response = self.client.patch(f"/api/v1/procurement/purchase-orders/{created['id']}/", {
            'items': [
                {'id': item_id, 'product': self.product.id, 'quantity': '4', 'unit_price': '25.00'},
                {'product': self.product.id, 'quantity': '1', 'unit_price': '5.00'},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['subtotal'], '105.00')
        self.assertEqual(len(response.data['items']), 2)
        self.assertIn(item_id, [item['id'] for item in response.data['items']])

    def test_status_workflow(self):
        order_id = self.client.post('/api/v1/procurement/purchase-orders/', self._order_data(),
                                    format='json').data['id']
        url = f'/api/v1/procurement/purchase-orders/{order_id}/'

        response = self.client.patch(url, {'status': 'acknowledged'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_STATUS_TRANSITION')

        response = self.client.patch(url, {'status': 'sent'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.patch(url, {'status': 'received'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch(url, {'items': [{'product': self.product.id, 'quantity': '1',
                                                      'unit_price': '1.00'}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_drafts_can_be_deleted(self):
        order = TestDataFactory.create_purchase_order(self.agency, supplier=self.supplier, status='sent')
        response = self.client.delete(f'/api/v1/procurement/purchase-orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        draft = TestDataFactory.create_purchase_order(self.agency, supplier=self.supplier)
        response = self.client.delete(f'/api/v1/procurement/purchase-orders/{draft.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_filter_by_status(self):
        TestDataFactory.create_purchase_order(self.agency, supplier=self.supplier, status='sent')
        TestDataFactory.create_purchase_order(self.agency, supplier=self.supplier)
        response = self.client.get('/api/v1/procurement/purchase-orders/', {'status': 'sent'})
        self.assertEqual(response.data['count'], 1)


class GoodsReceiptAPITests(TestCase):
    """Test goods receipts and their effect on stock"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.warehouse = TestDataFactory.create_warehouse(self.agency)
        self.product = TestDataFactory.create_product(self.agency)
        self.order = TestDataFactory.create_purchase_order(self.agency, warehouse=self.warehouse, status='sent')
        self.item = TestDataFactory.create_purchase_order_item(self.order, self.product, Decimal('10'),
                                                               Decimal('12.00'))

    def _receive(self, received, rejected='0'):
        return self.client.post('/api/v1/procurement/goods-receipts/', {
            'purchase_order': self.order.id,
            'items': [{'order_item': self.item.id, 'received_quantity': received,
                       'rejected_quantity': rejected}],
        }, format='json')

    def _stock(self):
        level = InventoryLevel.objects.filter(product=self.product, warehouse=self.warehouse).first()
        return level.quantity if level else Decimal('0')

    def test_partial_receipt(self):
        response = self._receive('4')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['grn_number'].startswith(today_stem('GRN')))
        self.assertEqual(response.data['order_status'], 'partially_received')
        self.assertEqual(self._stock(), Decimal('4.000'))

        movement = InventoryTransaction.objects.get(reference_type='goods_receipt')
        self.assertEqual(movement.reference_id, response.data['grn_number'])
        self.assertEqual(movement.unit_cost, Decimal('12.00'))

    def test_full_receipt_in_two_steps(self):
        self._receive('4')
        response = self._receive('6')
        self.assertEqual(response.data['order_status'], 'received')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'received')
        self.assertEqual(self._stock(), Decimal('10.000'))

    def test_rejected_quantity_not_stocked(self):
        response = self._receive('5', rejected='2')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(self._stock(), Decimal('3.000'))
        self.item.refresh_from_db()
        self.assertEqual(self.item.received_quantity, Decimal('3.000'))

    def test_over_receipt(self):
        response = self._receive('11')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'OVER_RECEIPT')
        self.assertEqual(self._stock(), Decimal('0'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'sent')

    def test_draft_order_cannot_be_received(self):
        self.order.status = 'draft'
        self.order.save()
        response = self._receive('1')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_STATUS_TRANSITION')

    def test_item_from_other_order_rejected(self):
        other_order = TestDataFactory.create_purchase_order(self.agency, warehouse=self.warehouse, status='sent')
        other_item = TestDataFactory.create_purchase_order_item(other_order, self.product)
        response = self.client.post('/api/v1/procurement/goods-receipts/', {
            'purchase_order': self.order.id,
            'items': [{'order_item': other_item.id, 'received_quantity': '1'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)

    def test_rejected_more_than_received(self):
        response = self._receive('2', rejected='3')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
