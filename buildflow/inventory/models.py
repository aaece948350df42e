from decimal import Decimal

from django.db import models

from buildflow.agencies.models import AgencyScopedModel


class Warehouse(AgencyScopedModel):
    """Physical stock location"""
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=50)
    address = models.TextField(blank=True)
    manager_id = models.BigIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.name} ({self.code})"

    class Meta:
        db_table = 'warehouses'
        ordering = ['name']
        unique_together = [['agency_id', 'code']]


class ProductCategory(AgencyScopedModel):
    name = models.CharField(max_length=255)
    code_prefix = models.CharField(max_length=10, blank=True)
    description = models.TextField(blank=True)
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='children')
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'product_categories'
        ordering = ['name']
        verbose_name_plural = 'product categories'


class Product(AgencyScopedModel):
    """Stock keeping unit"""
    sku = models.CharField(max_length=100)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.ForeignKey(ProductCategory, on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name='products')
    unit_of_measure = models.CharField(max_length=20, default='pcs')
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    reorder_level = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    reorder_quantity = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    is_active = models.BooleanField(default=True)
    created_by_id = models.BigIntegerField(null=True, blank=True)

    def __str__(self):
        return f"{self.name} ({self.sku})"

    class Meta:
        db_table = 'products'
        ordering = ['name']
        unique_together = [['agency_id', 'sku']]
        indexes = [
            models.Index(fields=['agency_id', 'is_active'], name='products_agency_active_idx'),
        ]


class InventoryLevel(AgencyScopedModel):
    """Quantity of one product in one warehouse"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='levels')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.CASCADE, related_name='levels')
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    reserved_quantity = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))

    @property
    def available_quantity(self):
        return self.quantity - self.reserved_quantity

    class Meta:
        db_table = 'inventory_levels'
        unique_together = [['product', 'warehouse']]


class InventoryTransaction(AgencyScopedModel):
    """Every stock movement. Levels are only ever changed through these."""
    TYPE_CHOICES = [
        ('in', 'Stock In'),
        ('out', 'Stock Out'),
        ('adjustment', 'Adjustment'),
        ('transfer', 'Transfer'),
    ]

    transaction_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='transactions')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='transactions')
    to_warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, null=True, blank=True,
                                     related_name='incoming_transfers')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    reference_type = models.CharField(max_length=50, blank=True)
    reference_id = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    created_by_id = models.BigIntegerField(null=True, blank=True)

    class Meta:
        db_table = 'inventory_transactions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product', '-created_at'], name='inv_tx_product_created_idx'),
            models.Index(fields=['reference_type', 'reference_id'], name='inv_tx_reference_idx'),
        ]
