import logging

from django.db import transaction
from django.db.models import F, ProtectedError, Sum
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

from .filters import InventoryTransactionFilter, ProductFilter
from .models import InventoryLevel, InventoryTransaction, Product, ProductCategory, Warehouse
from .serializers import (
    InventoryLevelSerializer, InventoryTransactionSerializer, ProductCategorySerializer,
    ProductSerializer, WarehouseSerializer,
)
from .services import apply_transaction
from .utils import generate_product_sku

logger = logging.getLogger('buildflow.inventory')


# Warehouse endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def warehouse_list_create(request):
    """List warehouses or create a new one"""
    if request.method == 'GET':
        warehouses = scoped(Warehouse, request)
        is_active = request.query_params.get('is_active')
        if is_active is not None:
            warehouses = warehouses.filter(is_active=is_active.lower() == 'true')
        serializer = WarehouseSerializer(warehouses, many=True)
        return Response(serializer.data)

    serializer = WarehouseSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            warehouse = serializer.save(agency_id=request.agency.id)
        create_audit_log(request=request, action='create', model_name='Warehouse', object_id=warehouse.id,
                         object_name=warehouse.name, object_reference=warehouse.code)
        return Response(WarehouseSerializer(warehouse).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def warehouse_detail(request, pk):
    """Retrieve, update or delete a warehouse"""
    warehouse = get_object_or_404(scoped(Warehouse, request), pk=pk)

    if request.method == 'GET':
        return Response(WarehouseSerializer(warehouse).data)

    if request.method == 'PATCH':
        serializer = WarehouseSerializer(warehouse, data=request.data, partial=True, context={'request': request})
        if serializer.is_valid():
            with transaction.atomic(using=tenant_alias()):
                serializer.save()
            create_audit_log(request=request, action='update', model_name='Warehouse', object_id=warehouse.id,
                             object_name=warehouse.name, changes={'new': request.data})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    denied = role_denied(request, 'project_manager')
    if denied:
        return denied

    stock = warehouse.levels.aggregate(total=Sum('quantity'))['total']
    if stock:
        return error_response('WAREHOUSE_NOT_EMPTY', 'Warehouse still holds stock.', status.HTTP_400_BAD_REQUEST,
                              details={'quantity': str(stock)})

    warehouse_id, warehouse_name = warehouse.id, warehouse.name
    try:
        with transaction.atomic(using=tenant_alias()):
            warehouse.delete()
    except ProtectedError:
        return error_response('WAREHOUSE_IN_USE', 'Warehouse has stock history; deactivate it instead.',
                              status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='delete', model_name='Warehouse', object_id=warehouse_id,
                     object_name=warehouse_name)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Category endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def category_list_create(request):
    """List product categories or create a new one"""
    if request.method == 'GET':
        categories = scoped(ProductCategory, request).select_related('parent')
        serializer = ProductCategorySerializer(categories, many=True, context={'request': request})
        return Response(serializer.data)

    serializer = ProductCategorySerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            category = serializer.save(agency_id=request.agency.id)
        create_audit_log(request=request, action='create', model_name='ProductCategory', object_id=category.id,
                         object_name=category.name)
        return Response(ProductCategorySerializer(category).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def category_detail(request, pk):
    """Retrieve, update or delete a product category"""
    category = get_object_or_404(scoped(ProductCategory, request), pk=pk)

    if request.method == 'GET':
        return Response(ProductCategorySerializer(category).data)

    if request.method == 'PATCH':
        serializer = ProductCategorySerializer(category, data=request.data, partial=True,
                                               context={'request': request})
        if serializer.is_valid():
            with transaction.atomic(using=tenant_alias()):
                serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    denied = role_denied(request, 'project_manager')
    if denied:
        return denied
    category_id, category_name = category.id, category.name
    with transaction.atomic(using=tenant_alias()):
        category.delete()
    create_audit_log(request=request, action='delete', model_name='ProductCategory', object_id=category_id,
                     object_name=category_name)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Product endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def product_list_create(request):
    """List products or create a new product"""
    if request.method == 'GET':
        queryset = scoped(Product, request).select_related('category').annotate(stock_total=Sum('levels__quantity'))
        filterset = ProductFilter(request.query_params, queryset=queryset)
        return paginated_response(request, filterset.qs, ProductSerializer)

    serializer = ProductSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    using = tenant_alias()
    with transaction.atomic(using=using):
        product = serializer.save(agency_id=request.agency.id, created_by_id=request.user.id)
        if not product.sku:
            product.sku = generate_product_sku(product, request.agency.id, using=using)
            product.save(update_fields=['sku', 'updated_at'])

    logger.info(f"Product {product.sku} created by {request.user.email}")
    create_audit_log(request=request, action='create', model_name='Product', object_id=product.id,
                     object_name=product.name, object_reference=product.sku)
    return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def product_detail(request, pk):
    """Retrieve, update or deactivate a product"""
    product = get_object_or_404(scoped(Product, request).select_related('category'), pk=pk)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)

    if request.method == 'PATCH':
        old_values = {'name': product.name, 'sku': product.sku, 'unit_cost': str(product.unit_cost),
                      'selling_price': str(product.selling_price)}
        serializer = ProductSerializer(product, data=request.data, partial=True, context={'request': request})
        if serializer.is_valid():
            if 'sku' in serializer.validated_data and not serializer.validated_data['sku']:
                serializer.validated_data.pop('sku')
            with transaction.atomic(using=tenant_alias()):
                serializer.save()
            create_audit_log(request=request, action='update', model_name='Product', object_id=product.id,
                             object_name=product.name, object_reference=product.sku,
                             changes={'old': old_values, 'new': request.data})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # Products keep their movement history, so they are deactivated rather than removed
    denied = role_denied(request, 'project_manager')
    if denied:
        return denied
    with transaction.atomic(using=tenant_alias()):
        product.is_active = False
        product.save(update_fields=['is_active', 'updated_at'])
    create_audit_log(request=request, action='delete', model_name='Product', object_id=product.id,
                     object_name=product.name, object_reference=product.sku)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def product_levels(request, pk):
    """Stock of one product in every warehouse"""
    product = get_object_or_404(scoped(Product, request), pk=pk)
    levels = product.levels.select_related('product', 'warehouse').order_by('warehouse__name')
    serializer = InventoryLevelSerializer(levels, many=True)
    return Response(serializer.data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def product_generate_code(request, pk):
    """Assign a new category-based SKU to a product"""
    product = get_object_or_404(scoped(Product, request).select_related('category'), pk=pk)
    using = tenant_alias()
    old_sku = product.sku
    with transaction.atomic(using=using):
        product.sku = generate_product_sku(product, request.agency.id, using=using)
        product.save(update_fields=['sku', 'updated_at'])
    create_audit_log(request=request, action='update', model_name='Product', object_id=product.id,
                     object_name=product.name, object_reference=product.sku,
                     changes={'old': {'sku': old_sku}, 'new': {'sku': product.sku}})
    return Response({'id': product.id, 'sku': product.sku})


# Stock endpoints
@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def level_list(request):
    """Inventory levels, optionally for one warehouse"""
    levels = scoped(InventoryLevel, request).select_related('product', 'warehouse').order_by(
        'product__name', 'warehouse__name')
    warehouse_id = request.query_params.get('warehouse')
    if warehouse_id:
        levels = levels.filter(warehouse_id=warehouse_id)
    return paginated_response(request, levels, InventoryLevelSerializer, default_limit=50)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def transaction_list_create(request):
    """List stock movements or record a new one"""
    if request.method == 'GET':
        queryset = scoped(InventoryTransaction, request).select_related('product', 'warehouse')
        filterset = InventoryTransactionFilter(request.query_params, queryset=queryset)
        return paginated_response(request, filterset.qs, InventoryTransactionSerializer)

    serializer = InventoryTransactionSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    movement = apply_transaction(
        agency_id=request.agency.id,
        transaction_type=data['transaction_type'],
        product=data['product'],
        warehouse=data['warehouse'],
        quantity=data['quantity'],
        to_warehouse=data.get('to_warehouse'),
        unit_cost=data.get('unit_cost'),
        reference_type=data.get('reference_type', ''),
        reference_id=data.get('reference_id', ''),
        notes=data.get('notes', ''),
        created_by_id=request.user.id,
    )
    create_audit_log(
        request=request,
        action='stock_adjust',
        model_name='InventoryTransaction',
        object_id=movement.id,
        object_name=movement.product.name,
        object_reference=movement.product.sku,
        changes={'transaction_type': movement.transaction_type, 'quantity': str(movement.quantity),
                 'warehouse_id': movement.warehouse_id, 'to_warehouse_id': movement.to_warehouse_id},
    )
    return Response(InventoryTransactionSerializer(movement).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def low_stock_alerts(request):
    """Levels at or below their product's reorder level"""
    levels = scoped(InventoryLevel, request).select_related('product', 'warehouse').filter(
        product__is_active=True,
        quantity__lte=F('product__reorder_level'),
    ).order_by('quantity')
    warehouse_id = request.query_params.get('warehouse')
    if warehouse_id:
        levels = levels.filter(warehouse_id=warehouse_id)
    serializer = InventoryLevelSerializer(levels, many=True)
    return Response({'count': len(serializer.data), 'results': serializer.data})
