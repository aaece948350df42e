import logging

from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from buildflow.agencies.context import scoped, tenant_alias
from buildflow.agencies.permissions import RequireAgencyContext
from buildflow.core.pagination import paginated_response
from buildflow.core.permissions import role_denied
from buildflow.core.responses import error_response
from buildflow.core.utils import create_audit_log

from .filters import GoodsReceiptFilter, PurchaseOrderFilter, PurchaseRequisitionFilter, SupplierFilter
from .models import GoodsReceipt, PurchaseOrder, PurchaseRequisition, Supplier
from .serializers import (
    GoodsReceiptSerializer, PurchaseOrderSerializer, PurchaseRequisitionSerializer, SupplierSerializer,
)
from .services import receive_goods

logger = logging.getLogger('buildflow.procurement')

APPROVER_ROLE = 'project_manager'


# Supplier endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def supplier_list_create(request):
    """List suppliers or create a new supplier"""
    if request.method == 'GET':
        filterset = SupplierFilter(request.query_params, queryset=scoped(Supplier, request))
        return paginated_response(request, filterset.qs, SupplierSerializer)

    serializer = SupplierSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            supplier = serializer.save(agency_id=request.agency.id)
        create_audit_log(request=request, action='create', model_name='Supplier', object_id=supplier.id,
                         object_name=supplier.name, object_reference=supplier.code)
        return Response(SupplierSerializer(supplier).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def supplier_detail(request, pk):
    """Retrieve or update a supplier"""
    supplier = get_object_or_404(scoped(Supplier, request), pk=pk)

    if request.method == 'GET':
        return Response(SupplierSerializer(supplier).data)

    serializer = SupplierSerializer(supplier, data=request.data, partial=True, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            serializer.save()
        create_audit_log(request=request, action='update', model_name='Supplier', object_id=supplier.id,
                         object_name=supplier.name, changes={'new': request.data})
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Requisition endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def requisition_list_create(request):
    """List purchase requisitions or raise a new one"""
    if request.method == 'GET':
        queryset = scoped(PurchaseRequisition, request).prefetch_related('items', 'items__product')
        filterset = PurchaseRequisitionFilter(request.query_params, queryset=queryset)
        return paginated_response(request, filterset.qs, PurchaseRequisitionSerializer)

    serializer = PurchaseRequisitionSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            requisition = serializer.save(agency_id=request.agency.id)
        logger.info(f"Requisition {requisition.requisition_number} raised by {request.user.email}")
        create_audit_log(request=request, action='create', model_name='PurchaseRequisition',
                         object_id=requisition.id, object_name=f"Requisition {requisition.requisition_number}",
                         object_reference=requisition.requisition_number,
                         changes={'total_amount': str(requisition.total_amount)})
        return Response(PurchaseRequisitionSerializer(requisition).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def requisition_detail(request, pk):
    """Retrieve a requisition, edit it or move it through approval"""
    requisition = get_object_or_404(scoped(PurchaseRequisition, request), pk=pk)

    if request.method == 'GET':
        return Response(PurchaseRequisitionSerializer(requisition).data)

    new_status = request.data.get('status')
    if new_status in ('approved', 'rejected'):
        denied = role_denied(request, APPROVER_ROLE)
        if denied:
            return denied

    old_status = requisition.status
    serializer = PurchaseRequisitionSerializer(requisition, data=request.data, partial=True,
                                               context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    with transaction.atomic(using=tenant_alias()):
        requisition = serializer.save()

    action = 'status_change' if requisition.status != old_status else 'update'
    create_audit_log(request=request, action=action, model_name='PurchaseRequisition', object_id=requisition.id,
                     object_name=f"Requisition {requisition.requisition_number}",
                     object_reference=requisition.requisition_number,
                     changes={'old': {'status': old_status}, 'new': request.data})
    return Response(PurchaseRequisitionSerializer(requisition).data)


# Purchase order endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def purchase_order_list_create(request):
    """List purchase orders or create a new order with its items"""
    if request.method == 'GET':
        queryset = scoped(PurchaseOrder, request).select_related('supplier').prefetch_related(
            'items', 'items__product')
        filterset = PurchaseOrderFilter(request.query_params, queryset=queryset)
        return paginated_response(request, filterset.qs.order_by('-id'), PurchaseOrderSerializer)

    serializer = PurchaseOrderSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    with transaction.atomic(using=tenant_alias()):
        order = serializer.save(agency_id=request.agency.id, created_by_id=request.user.id)
    logger.info(f"Purchase order {order.po_number} created by {request.user.email} for {order.total_amount}")
    create_audit_log(
        request=request,
        action='create',
        model_name='PurchaseOrder',
        object_id=order.id,
        object_name=f"Purchase Order {order.po_number}",
        object_reference=order.po_number,
        changes={'supplier': order.supplier.name, 'total_amount': str(order.total_amount),
                 'items_count': order.items.count()},
    )
    return Response(PurchaseOrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def purchase_order_detail(request, pk):
    """Retrieve, update or delete a purchase order"""
    order = get_object_or_404(scoped(PurchaseOrder, request).select_related('supplier'), pk=pk)

    if request.method == 'GET':
        return Response(PurchaseOrderSerializer(order).data)

    if request.method == 'PATCH':
        old_status = order.status
        old_total = str(order.total_amount)
        serializer = PurchaseOrderSerializer(order, data=request.data, partial=True, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        with transaction.atomic(using=tenant_alias()):
            order = serializer.save()
        action = 'status_change' if order.status != old_status else 'update'
        create_audit_log(request=request, action=action, model_name='PurchaseOrder', object_id=order.id,
                         object_name=f"Purchase Order {order.po_number}", object_reference=order.po_number,
                         changes={'old': {'status': old_status, 'total_amount': old_total},
                                  'new': {'status': order.status, 'total_amount': str(order.total_amount)}})
        return Response(PurchaseOrderSerializer(order).data)

    if order.status != 'draft':
        return error_response('INVALID_STATUS_TRANSITION', 'Only draft orders can be deleted; cancel it instead.',
                              status.HTTP_400_BAD_REQUEST, details={'status': order.status})
    order_id, po_number = order.id, order.po_number
    with transaction.atomic(using=tenant_alias()):
        order.delete()
    create_audit_log(request=request, action='delete', model_name='PurchaseOrder', object_id=order_id,
                     object_name=f"Purchase Order {po_number}", object_reference=po_number)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Goods receipt endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def goods_receipt_list_create(request):
    """List goods receipts or book a delivery into stock"""
    if request.method == 'GET':
        queryset = scoped(GoodsReceipt, request).select_related('purchase_order').prefetch_related(
            'items', 'items__order_item__product')
        filterset = GoodsReceiptFilter(request.query_params, queryset=queryset)
        return paginated_response(request, filterset.qs, GoodsReceiptSerializer)

    serializer = GoodsReceiptSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    receipt = receive_goods(request.agency.id, serializer.validated_data, received_by_id=request.user.id)
    order = receipt.purchase_order
    create_audit_log(
        request=request,
        action='goods_receipt',
        model_name='GoodsReceipt',
        object_id=receipt.id,
        object_name=f"Goods Receipt {receipt.grn_number}",
        object_reference=order.po_number,
        changes={'grn_number': receipt.grn_number, 'order_status': order.status,
                 'items': [{'order_item': item.order_item_id, 'accepted': str(item.accepted_quantity)}
                           for item in receipt.items.all()]},
    )
    data = GoodsReceiptSerializer(receipt).data
    data['order_status'] = order.status
    return Response(data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def goods_receipt_detail(request, pk):
    receipt = get_object_or_404(scoped(GoodsReceipt, request).select_related('purchase_order'), pk=pk)
    return Response(GoodsReceiptSerializer(receipt).data)
