"""
Stock movements. Inventory levels only change through apply_transaction.
"""
import logging
from decimal import Decimal

from django.db import transaction

from buildflow.agencies.context import tenant_alias
from buildflow.core.exceptions import ApiException, InsufficientStock

from .models import InventoryLevel, InventoryTransaction

logger = logging.getLogger('buildflow.inventory')

POSITIVE_TYPES = ('in', 'out', 'transfer')


def _locked_level(product, warehouse, agency_id, using):
    level, _ = InventoryLevel.objects.using(using).select_for_update().get_or_create(
        product=product,
        warehouse=warehouse,
        defaults={'agency_id': agency_id},
    )
    return level


def _locked_transfer_levels(product, source, destination, agency_id, using):
    """Lock the source and destination levels, always in warehouse pk order"""
    locked = {}
    for warehouse in sorted((source, destination), key=lambda w: w.pk):
        locked[warehouse.pk] = _locked_level(product, warehouse, agency_id, using)
    return locked[source.pk], locked[destination.pk]


def _withdraw(level, quantity):
    if level.quantity < quantity:
        raise InsufficientStock(details={
            'product_id': level.product_id,
            'warehouse_id': level.warehouse_id,
            'available': str(level.quantity),
            'requested': str(quantity),
        })
    level.quantity -= quantity


def apply_transaction(agency_id, transaction_type, product, warehouse, quantity,
                      to_warehouse=None, unit_cost=None, reference_type='', reference_id='',
                      notes='', created_by_id=None):
    """
    Record a stock movement and update the affected levels atomically.

    ``quantity`` is positive for in/out/transfer; for adjustment it is a signed delta.
    Raises InsufficientStock when a level would go negative.
    """
    quantity = Decimal(str(quantity))
    if transaction_type in POSITIVE_TYPES and quantity <= 0:
        raise ApiException('Quantity must be greater than zero.', code='VALIDATION_ERROR')
    if transaction_type == 'adjustment' and quantity == 0:
        raise ApiException('Adjustment quantity cannot be zero.', code='VALIDATION_ERROR')
    if transaction_type == 'transfer':
        if to_warehouse is None:
            raise ApiException('Transfers require a destination warehouse.', code='VALIDATION_ERROR')
        if to_warehouse.pk == warehouse.pk:
            raise ApiException('Cannot transfer to the same warehouse.', code='VALIDATION_ERROR')

    using = tenant_alias()
    with transaction.atomic(using=using):
        if transaction_type == 'transfer':
            level, destination = _locked_transfer_levels(product, warehouse, to_warehouse, agency_id, using)
        else:
            level = _locked_level(product, warehouse, agency_id, using)

        if transaction_type == 'in':
            level.quantity += quantity
        elif transaction_type == 'out':
            _withdraw(level, quantity)
        elif transaction_type == 'adjustment':
            if quantity < 0:
                _withdraw(level, -quantity)
            else:
                level.quantity += quantity
        elif transaction_type == 'transfer':
            _withdraw(level, quantity)
            destination.quantity += quantity
            destination.save(using=using, update_fields=['quantity', 'updated_at'])
        else:
            raise ApiException(f'Unknown transaction type: {transaction_type}', code='VALIDATION_ERROR')

        level.save(using=using, update_fields=['quantity', 'updated_at'])

        movement = InventoryTransaction.objects.using(using).create(
            agency_id=agency_id,
            transaction_type=transaction_type,
            product=product,
            warehouse=warehouse,
            to_warehouse=to_warehouse if transaction_type == 'transfer' else None,
            quantity=quantity,
            unit_cost=unit_cost,
            reference_type=reference_type or '',
            reference_id=str(reference_id or ''),
            notes=notes or '',
            created_by_id=created_by_id,
        )

    logger.info(
        f"Stock {transaction_type} of {quantity} for product {product.sku} "
        f"at warehouse {warehouse.code} (level now {level.quantity})"
    )
    return movement
