from decimal import Decimal

from django.utils import timezone
from rest_framework import serializers

from buildflow.agencies.fields import AgencyRelatedField, context_agency_id
from buildflow.core.numbering import next_document_number
from buildflow.core.workflow import check_transition
from buildflow.inventory.models import Product, Warehouse

from .models import (
    GoodsReceipt, GoodsReceiptItem, PurchaseOrder, PurchaseOrderItem, PurchaseRequisition,
    PurchaseRequisitionItem, Supplier,
)


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = ['id', 'name', 'code', 'contact_person', 'email', 'phone', 'address', 'payment_terms',
                  'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_code(self, value):
        value = (value or '').strip().upper()
        if not value:
            return value
        queryset = Supplier.objects.filter(agency_id=context_agency_id(self.context), code=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A supplier with this code already exists.')
        return value


class PurchaseRequisitionItemSerializer(serializers.ModelSerializer):
    product = AgencyRelatedField(queryset=Product.objects.all(), required=False, allow_null=True)
    product_name = serializers.CharField(source='product.name', read_only=True, default=None)
    total_price = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)

    class Meta:
        model = PurchaseRequisitionItem
        fields = ['id', 'product', 'product_name', 'description', 'quantity', 'unit_price', 'total_price',
                  'unit_of_measure', 'notes']
        read_only_fields = ['id']

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError('Quantity must be greater than zero.')
        return value


class PurchaseRequisitionSerializer(serializers.ModelSerializer):
    items = PurchaseRequisitionItemSerializer(many=True, required=False)

    class Meta:
        model = PurchaseRequisition
        fields = [
            'id', 'requisition_number', 'requested_by_id', 'department', 'status', 'priority',
            'required_date', 'total_amount', 'notes', 'approved_by_id', 'approved_at', 'rejected_reason',
            'items', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'requisition_number', 'requested_by_id', 'total_amount', 'approved_by_id',
                            'approved_at', 'created_at', 'updated_at']

    def validate_status(self, value):
        if self.instance is None:
            if value not in ('draft', 'pending'):
                raise serializers.ValidationError('New requisitions start as draft or pending.')
            return value
        check_transition(PurchaseRequisition.TRANSITIONS, self.instance.status, value)
        return value

    def validate(self, attrs):
        if self.instance is not None and 'items' in attrs and self.instance.status != 'draft':
            raise serializers.ValidationError({'items': 'Items can only be changed while the requisition is a draft.'})
        return attrs

    def create(self, validated_data):
        items_data = validated_data.pop('items', [])
        request = self.context.get('request')
        validated_data['requisition_number'] = next_document_number(
            PurchaseRequisition, 'requisition_number', 'PR', validated_data['agency_id'])
        if request is not None:
            validated_data['requested_by_id'] = request.user.id
        requisition = super().create(validated_data)
        for item_data in items_data:
            PurchaseRequisitionItem.objects.create(requisition=requisition, **item_data)
        requisition.recalculate_total()
        requisition.save(update_fields=['total_amount', 'updated_at'])
        return requisition

    def update(self, instance, validated_data):
        items_data = validated_data.pop('items', None)
        new_status = validated_data.get('status')
        request = self.context.get('request')
        if new_status == 'approved' and instance.status != 'approved':
            validated_data['approved_at'] = timezone.now()
            if request is not None:
                validated_data['approved_by_id'] = request.user.id

        instance = super().update(instance, validated_data)
        if items_data is not None:
            instance.items.all().delete()
            for item_data in items_data:
                PurchaseRequisitionItem.objects.create(requisition=instance, **item_data)
            instance.recalculate_total()
            instance.save(update_fields=['total_amount', 'updated_at'])
        return instance


class PurchaseOrderItemSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(required=False)
    product = AgencyRelatedField(queryset=Product.objects.all())
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    line_total = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    remaining_quantity = serializers.DecimalField(max_digits=12, decimal_places=3, read_only=True)

    class Meta:
        model = PurchaseOrderItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'description', 'quantity', 'unit_price',
                  'unit_of_measure', 'received_quantity', 'remaining_quantity', 'line_total', 'notes']
        read_only_fields = ['received_quantity']

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError('Quantity must be greater than zero.')
        return value

    def validate_unit_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Unit price must not be negative.')
        return value


class PurchaseOrderSerializer(serializers.ModelSerializer):
    items = PurchaseOrderItemSerializer(many=True)
    supplier = AgencyRelatedField(queryset=Supplier.objects.all())
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    warehouse = AgencyRelatedField(queryset=Warehouse.objects.all(), required=False, allow_null=True)
    requisition = AgencyRelatedField(queryset=PurchaseRequisition.objects.all(), required=False, allow_null=True)
    order_date = serializers.DateField(required=False)

    class Meta:
        model = PurchaseOrder
        fields = [
            'id', 'po_number', 'requisition', 'supplier', 'supplier_name', 'warehouse', 'status',
            'order_date', 'expected_delivery_date', 'delivery_address', 'payment_terms', 'subtotal',
            'tax_amount', 'shipping_cost', 'discount_amount', 'total_amount', 'notes', 'created_by_id',
            'items', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'po_number', 'subtotal', 'total_amount', 'created_by_id', 'created_at',
                            'updated_at']

    def validate_status(self, value):
        if self.instance is None:
            if value != 'draft':
                raise serializers.ValidationError('New purchase orders start as draft.')
            return value
        if value in ('partially_received', 'received'):
            raise serializers.ValidationError('Receiving status is set by goods receipts.')
        check_transition(PurchaseOrder.TRANSITIONS, self.instance.status, value)
        return value

    def validate_requisition(self, value):
        if value is not None and value.status != 'approved':
            raise serializers.ValidationError('Only approved requisitions can be ordered.')
        return value

    def validate(self, attrs):
        for field in ('tax_amount', 'shipping_cost', 'discount_amount'):
            if attrs.get(field) is not None and attrs[field] < 0:
                raise serializers.ValidationError({field: 'Must not be negative.'})
        if self.instance is None and not attrs.get('items'):
            raise serializers.ValidationError({'items': 'At least one item is required.'})
        if self.instance is not None and 'items' in attrs and self.instance.status != 'draft':
            raise serializers.ValidationError({'items': 'Items can only be changed while the order is a draft.'})
        return attrs

    def create(self, validated_data):
        items_data = validated_data.pop('items', [])
        validated_data.setdefault('order_date', timezone.localdate())
        validated_data['po_number'] = next_document_number(
            PurchaseOrder, 'po_number', 'PO', validated_data['agency_id'])
        order = super().create(validated_data)
        for item_data in items_data:
            item_data.pop('id', None)
            PurchaseOrderItem.objects.create(purchase_order=order, **item_data)
        order.recalculate_totals()
        order.save(update_fields=['subtotal', 'total_amount', 'updated_at'])
        return order

    def update(self, instance, validated_data):
        items_data = validated_data.pop('items', None)
        instance = super().update(instance, validated_data)

        if items_data is not None:
            existing = {item.id: item for item in instance.items.all()}
            keep_ids = set()
            for item_data in items_data:
                item_id = item_data.pop('id', None)
                if item_id in existing:
                    item = existing[item_id]
                    for attr, value in item_data.items():
                        setattr(item, attr, value)
                    item.save()
                    keep_ids.add(item_id)
                else:
                    item = PurchaseOrderItem.objects.create(purchase_order=instance, **item_data)
                    keep_ids.add(item.id)
            instance.items.exclude(id__in=keep_ids).delete()

        instance.recalculate_totals()
        instance.save(update_fields=['subtotal', 'total_amount', 'updated_at'])
        return instance


class GoodsReceiptItemSerializer(serializers.ModelSerializer):
    order_item = serializers.PrimaryKeyRelatedField(queryset=PurchaseOrderItem.objects.all())
    product_name = serializers.CharField(source='order_item.product.name', read_only=True)
    accepted_quantity = serializers.DecimalField(max_digits=12, decimal_places=3, read_only=True)

    class Meta:
        model = GoodsReceiptItem
        fields = ['id', 'order_item', 'product_name', 'received_quantity', 'rejected_quantity',
                  'accepted_quantity', 'batch_number', 'notes']
        read_only_fields = ['id']

    def validate(self, attrs):
        received = attrs['received_quantity']
        rejected = attrs.get('rejected_quantity') or Decimal('0')
        if received <= 0:
            raise serializers.ValidationError({'received_quantity': 'Must be greater than zero.'})
        if rejected < 0 or rejected > received:
            raise serializers.ValidationError({'rejected_quantity': 'Must be between zero and the received quantity.'})
        return attrs


class GoodsReceiptSerializer(serializers.ModelSerializer):
    items = GoodsReceiptItemSerializer(many=True)
    purchase_order = AgencyRelatedField(queryset=PurchaseOrder.objects.all())
    po_number = serializers.CharField(source='purchase_order.po_number', read_only=True)
    warehouse = AgencyRelatedField(queryset=Warehouse.objects.all(), required=False)
    received_date = serializers.DateField(required=False)

    class Meta:
        model = GoodsReceipt
        fields = ['id', 'grn_number', 'purchase_order', 'po_number', 'warehouse', 'received_date',
                  'received_by_id', 'notes', 'items', 'created_at']
        read_only_fields = ['id', 'grn_number', 'received_by_id', 'created_at']

    def validate(self, attrs):
        order = attrs['purchase_order']
        if not attrs.get('warehouse'):
            if order.warehouse is None:
                raise serializers.ValidationError({'warehouse': 'Required when the order has no warehouse.'})
            attrs['warehouse'] = order.warehouse
        if not attrs.get('items'):
            raise serializers.ValidationError({'items': 'At least one item is required.'})
        for item in attrs['items']:
            if item['order_item'].purchase_order_id != order.id:
                raise serializers.ValidationError({'items': 'Items must belong to the purchase order.'})
        return attrs
