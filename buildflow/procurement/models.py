from decimal import Decimal

from django.db import models

from buildflow.agencies.models import AgencyScopedModel
from buildflow.inventory.models import Product, Warehouse


class Supplier(AgencyScopedModel):
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=50, blank=True)
    contact_person = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    payment_terms = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'suppliers'
        ordering = ['name']


class PurchaseRequisition(AgencyScopedModel):
    """Internal request to buy goods, approved before it becomes an order"""
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('pending', 'Pending Approval'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('cancelled', 'Cancelled'),
    ]
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('normal', 'Normal'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]
    TRANSITIONS = {
        'draft': {'pending', 'cancelled'},
        'pending': {'approved', 'rejected', 'cancelled'},
        'approved': {'cancelled'},
        'rejected': {'draft'},
        'cancelled': set(),
    }

    requisition_number = models.CharField(max_length=100)
    requested_by_id = models.BigIntegerField(null=True, blank=True)
    department = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')
    priority = models.CharField(max_length=20, choices=PRIORITY_CHOICES, default='normal')
    required_date = models.DateField(null=True, blank=True)
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    approved_by_id = models.BigIntegerField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_reason = models.TextField(blank=True)

    def __str__(self):
        return self.requisition_number

    def recalculate_total(self):
        self.total_amount = sum((item.total_price for item in self.items.all()), Decimal('0.00'))
        return self.total_amount

    class Meta:
        db_table = 'purchase_requisitions'
        ordering = ['-created_at']
        unique_together = [['agency_id', 'requisition_number']]
        indexes = [
            models.Index(fields=['status'], name='purchase_req_status_idx'),
        ]


class PurchaseRequisitionItem(models.Model):
    requisition = models.ForeignKey(PurchaseRequisition, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='requisition_items')
    description = models.TextField()
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    unit_of_measure = models.CharField(max_length=20, default='pcs')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def total_price(self):
        return self.quantity * (self.unit_price or Decimal('0'))

    class Meta:
        db_table = 'purchase_requisition_items'
        ordering = ['id']


class PurchaseOrder(AgencyScopedModel):
    """Order placed with a supplier"""
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('sent', 'Sent'),
        ('acknowledged', 'Acknowledged'),
        ('partially_received', 'Partially Received'),
        ('received', 'Received'),
        ('cancelled', 'Cancelled'),
    ]
    TRANSITIONS = {
        'draft': {'sent', 'cancelled'},
        'sent': {'acknowledged', 'partially_received', 'received', 'cancelled'},
        'acknowledged': {'partially_received', 'received', 'cancelled'},
        'partially_received': {'received'},
        'received': set(),
        'cancelled': set(),
    }
    RECEIVABLE_STATUSES = ('sent', 'acknowledged', 'partially_received')

    po_number = models.CharField(max_length=100)
    requisition = models.ForeignKey(PurchaseRequisition, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='purchase_orders')
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchase_orders')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='purchase_orders')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')
    order_date = models.DateField()
    expected_delivery_date = models.DateField(null=True, blank=True)
    delivery_address = models.TextField(blank=True)
    payment_terms = models.CharField(max_length=255, blank=True)
    subtotal = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    shipping_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    created_by_id = models.BigIntegerField(null=True, blank=True)

    def __str__(self):
        return self.po_number

    def recalculate_totals(self):
        """Subtotal from the items; total adds tax and shipping and takes off the discount"""
        self.subtotal = sum((item.line_total for item in self.items.all()), Decimal('0.00'))
        self.total_amount = self.subtotal + self.tax_amount + self.shipping_cost - self.discount_amount
        return self.total_amount

    def is_fully_received(self):
        return all(item.received_quantity >= item.quantity for item in self.items.all())

    class Meta:
        db_table = 'purchase_orders'
        ordering = ['-order_date', '-created_at']
        unique_together = [['agency_id', 'po_number']]
        indexes = [
            models.Index(fields=['status'], name='purchase_ord_status_idx'),
            models.Index(fields=['supplier', 'status'], name='purchase_ord_supplier_idx'),
        ]


class PurchaseOrderItem(models.Model):
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')
    description = models.TextField(blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=15, decimal_places=2)
    unit_of_measure = models.CharField(max_length=20, default='pcs')
    received_quantity = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    notes = models.TextField(blank=True)

    @property
    def line_total(self):
        return self.quantity * self.unit_price

    @property
    def remaining_quantity(self):
        return max(self.quantity - self.received_quantity, Decimal('0'))

    class Meta:
        db_table = 'purchase_order_items'
        ordering = ['id']


class GoodsReceipt(AgencyScopedModel):
    """Delivery received against a purchase order (GRN)"""
    grn_number = models.CharField(max_length=100)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name='receipts')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='goods_receipts')
    received_date = models.DateField()
    received_by_id = models.BigIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True)

    def __str__(self):
        return self.grn_number

    class Meta:
        db_table = 'goods_receipts'
        ordering = ['-received_date', '-created_at']
        unique_together = [['agency_id', 'grn_number']]


class GoodsReceiptItem(models.Model):
    goods_receipt = models.ForeignKey(GoodsReceipt, on_delete=models.CASCADE, related_name='items')
    order_item = models.ForeignKey(PurchaseOrderItem, on_delete=models.PROTECT, related_name='receipt_items')
    received_quantity = models.DecimalField(max_digits=12, decimal_places=3)
    rejected_quantity = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    batch_number = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)

    @property
    def accepted_quantity(self):
        return self.received_quantity - self.rejected_quantity

    class Meta:
        db_table = 'goods_receipt_items'
        ordering = ['id']
