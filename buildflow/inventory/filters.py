import django_filters
from django.db.models import F, Q, Sum

from .models import InventoryTransaction, Product


class ProductFilter(django_filters.FilterSet):
    """Filter for Product model using django-filter"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    active = django_filters.CharFilter(method='filter_active', label='Active')
    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')

    class Meta:
        model = Product
        fields = ['search', 'category', 'active', 'low_stock']

    def filter_search(self, queryset, name, value):
        """Search name, SKU and description"""
        search = (value or '').strip()
        if not search:
            return queryset
        return queryset.filter(
            Q(name__icontains=search) | Q(sku__icontains=search) | Q(description__icontains=search)
        )

    def filter_active(self, queryset, name, value):
        if value is None or value == '':
            return queryset
        return queryset.filter(is_active=value.lower() == 'true')

    def filter_low_stock(self, queryset, name, value):
        """Products whose total quantity across warehouses is at or below the reorder level"""
        if not value or value.lower() != 'true':
            return queryset
        if 'stock_total' not in queryset.query.annotations:
            queryset = queryset.annotate(stock_total=Sum('levels__quantity'))
        return queryset.filter(
            Q(stock_total__lte=F('reorder_level')) | Q(stock_total__isnull=True)
        )


class InventoryTransactionFilter(django_filters.FilterSet):
    product = django_filters.NumberFilter(field_name='product_id')
    warehouse = django_filters.NumberFilter(method='filter_warehouse')
    transaction_type = django_filters.CharFilter(field_name='transaction_type')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = InventoryTransaction
        fields = ['product', 'warehouse', 'transaction_type', 'date_from', 'date_to']

    def filter_warehouse(self, queryset, name, value):
        """Movements out of or into the warehouse"""
        return queryset.filter(Q(warehouse_id=value) | Q(to_warehouse_id=value))
