from django.contrib import admin

from .models import InventoryLevel, InventoryTransaction, Product, ProductCategory, Warehouse


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'agency_id', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'code']


@admin.register(ProductCategory)
class ProductCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'code_prefix', 'parent', 'agency_id']
    search_fields = ['name', 'code_prefix']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['sku', 'name', 'category', 'unit_cost', 'selling_price', 'reorder_level', 'is_active']
    list_filter = ['is_active']
    search_fields = ['sku', 'name']


@admin.register(InventoryLevel)
class InventoryLevelAdmin(admin.ModelAdmin):
    list_display = ['product', 'warehouse', 'quantity', 'reserved_quantity', 'updated_at']


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(admin.ModelAdmin):
    list_display = ['transaction_type', 'product', 'warehouse', 'to_warehouse', 'quantity', 'created_at']
    list_filter = ['transaction_type']
    readonly_fields = ['created_at']
