import logging

from django.db import transaction
from django.utils import timezone

from buildflow.agencies.context import tenant_alias
from buildflow.core.exceptions import ApiException, InvalidStatusTransition
from buildflow.core.numbering import next_document_number
from buildflow.inventory.services import apply_transaction

from .models import GoodsReceipt, GoodsReceiptItem, PurchaseOrder, PurchaseOrderItem

logger = logging.getLogger('buildflow.procurement')


def receive_goods(agency_id, validated_data, received_by_id=None):
    """
    Book a goods receipt against a purchase order.

    Accepted quantities go into stock through ``in`` inventory transactions
    and the order moves to partially_received or received.
    """
    using = tenant_alias()
    items_data = validated_data['items']

    with transaction.atomic(using=using):
        order = PurchaseOrder.objects.using(using).select_for_update().get(pk=validated_data['purchase_order'].pk)
        if order.status not in PurchaseOrder.RECEIVABLE_STATUSES:
            raise InvalidStatusTransition(
                f'Cannot receive goods for an order that is {order.status}.',
                details={'from': order.status, 'allowed': list(PurchaseOrder.RECEIVABLE_STATUSES)},
            )

        receipt = GoodsReceipt.objects.using(using).create(
            agency_id=agency_id,
            grn_number=next_document_number(GoodsReceipt, 'grn_number', 'GRN', agency_id, using=using),
            purchase_order=order,
            warehouse=validated_data['warehouse'],
            received_date=validated_data.get('received_date') or timezone.localdate(),
            received_by_id=received_by_id,
            notes=validated_data.get('notes', ''),
        )

        for item_data in items_data:
            order_item = PurchaseOrderItem.objects.using(using).select_for_update().select_related('product').get(
                pk=item_data['order_item'].pk)
            received = item_data['received_quantity']
            if received > order_item.remaining_quantity:
                raise ApiException(
                    'Received quantity exceeds the quantity still due.',
                    code='OVER_RECEIPT',
                    details={'order_item': order_item.id, 'remaining': str(order_item.remaining_quantity),
                             'received': str(received)},
                )

            receipt_item = GoodsReceiptItem.objects.using(using).create(
                goods_receipt=receipt,
                order_item=order_item,
                received_quantity=received,
                rejected_quantity=item_data.get('rejected_quantity') or 0,
                batch_number=item_data.get('batch_number', ''),
                notes=item_data.get('notes', ''),
            )
            accepted = receipt_item.accepted_quantity
            if accepted > 0:
                apply_transaction(
                    agency_id=agency_id,
                    transaction_type='in',
                    product=order_item.product,
                    warehouse=receipt.warehouse,
                    quantity=accepted,
                    unit_cost=order_item.unit_price,
                    reference_type='goods_receipt',
                    reference_id=receipt.grn_number,
                    created_by_id=received_by_id,
                )
                order_item.received_quantity += accepted
                order_item.save(using=using, update_fields=['received_quantity'])

        order.status = 'received' if order.is_fully_received() else 'partially_received'
        order.save(using=using, update_fields=['status', 'updated_at'])

    logger.info(f"Goods receipt {receipt.grn_number} booked for {order.po_number}; order is now {order.status}")
    return receipt
