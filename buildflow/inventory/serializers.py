from django.db.models import Sum
from rest_framework import serializers

from buildflow.agencies.fields import AgencyRelatedField, context_agency_id

from .models import InventoryLevel, InventoryTransaction, Product, ProductCategory, Warehouse


class WarehouseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Warehouse
        fields = ['id', 'name', 'code', 'address', 'manager_id', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_code(self, value):
        value = value.strip().upper()
        queryset = Warehouse.objects.filter(agency_id=context_agency_id(self.context), code=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A warehouse with this code already exists.')
        return value


class ProductCategorySerializer(serializers.ModelSerializer):
    parent = AgencyRelatedField(queryset=ProductCategory.objects.all(), required=False, allow_null=True)
    parent_name = serializers.CharField(source='parent.name', read_only=True, default=None)

    class Meta:
        model = ProductCategory
        fields = ['id', 'name', 'code_prefix', 'description', 'parent', 'parent_name', 'is_active',
                  'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_code_prefix(self, value):
        value = (value or '').strip().upper()
        if value and not value.isalnum():
            raise serializers.ValidationError('Code prefix may only contain letters and digits.')
        return value

    def validate_parent(self, value):
        if value is not None and self.instance is not None and value.pk == self.instance.pk:
            raise serializers.ValidationError('A category cannot be its own parent.')
        return value


class ProductSerializer(serializers.ModelSerializer):
    category = AgencyRelatedField(queryset=ProductCategory.objects.all(), required=False, allow_null=True)
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    sku = serializers.CharField(max_length=100, required=False, allow_blank=True)
    total_quantity = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'sku', 'name', 'description', 'category', 'category_name', 'unit_of_measure',
            'unit_cost', 'selling_price', 'reorder_level', 'reorder_quantity', 'is_active',
            'total_quantity', 'created_by_id', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_by_id', 'created_at', 'updated_at']

    def get_total_quantity(self, obj):
        if hasattr(obj, 'stock_total'):
            total = obj.stock_total
        else:
            total = obj.levels.aggregate(total=Sum('quantity'))['total']
        return str(total) if total is not None else '0.000'

    def validate_sku(self, value):
        value = (value or '').strip().upper()
        if not value:
            return value
        queryset = Product.objects.filter(agency_id=context_agency_id(self.context), sku=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A product with this SKU already exists.')
        return value

    def validate(self, attrs):
        for field in ('unit_cost', 'selling_price', 'reorder_level', 'reorder_quantity'):
            if attrs.get(field) is not None and attrs[field] < 0:
                raise serializers.ValidationError({field: 'Must not be negative.'})
        return attrs


class InventoryLevelSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    sku = serializers.CharField(source='product.sku', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)
    reorder_level = serializers.DecimalField(source='product.reorder_level', max_digits=12, decimal_places=3,
                                             read_only=True)
    available_quantity = serializers.DecimalField(max_digits=12, decimal_places=3, read_only=True)

    class Meta:
        model = InventoryLevel
        fields = ['id', 'product', 'product_name', 'sku', 'warehouse', 'warehouse_name', 'quantity',
                  'reserved_quantity', 'available_quantity', 'reorder_level', 'updated_at']
        read_only_fields = fields


class InventoryTransactionSerializer(serializers.ModelSerializer):
    product = AgencyRelatedField(queryset=Product.objects.all())
    warehouse = AgencyRelatedField(queryset=Warehouse.objects.all())
    to_warehouse = AgencyRelatedField(queryset=Warehouse.objects.all(), required=False, allow_null=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)

    class Meta:
        model = InventoryTransaction
        fields = [
            'id', 'transaction_type', 'product', 'product_name', 'warehouse', 'warehouse_name',
            'to_warehouse', 'quantity', 'unit_cost', 'reference_type', 'reference_id', 'notes',
            'created_by_id', 'created_at',
        ]
        read_only_fields = ['id', 'created_by_id', 'created_at']

    def validate(self, attrs):
        if attrs.get('transaction_type') == 'transfer' and not attrs.get('to_warehouse'):
            raise serializers.ValidationError({'to_warehouse': 'Required for transfers.'})
        return attrs
