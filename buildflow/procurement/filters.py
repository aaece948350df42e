import django_filters
from django.db.models import Q

from .models import GoodsReceipt, PurchaseOrder, PurchaseRequisition, Supplier


class SupplierFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    active = django_filters.CharFilter(method='filter_active', label='Active')

    class Meta:
        model = Supplier
        fields = ['search', 'active']

    def filter_search(self, queryset, name, value):
        search = (value or '').strip()
        if not search:
            return queryset
        return queryset.filter(
            Q(name__icontains=search) | Q(code__icontains=search) |
            Q(contact_person__icontains=search) | Q(email__icontains=search)
        )

    def filter_active(self, queryset, name, value):
        if value is None or value == '':
            return queryset
        return queryset.filter(is_active=value.lower() == 'true')


class PurchaseRequisitionFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name='status')
    priority = django_filters.CharFilter(field_name='priority')
    requested_by = django_filters.NumberFilter(field_name='requested_by_id')

    class Meta:
        model = PurchaseRequisition
        fields = ['status', 'priority', 'requested_by']


class PurchaseOrderFilter(django_filters.FilterSet):
    """Filter purchase orders by supplier, status, number and order date"""
    supplier = django_filters.NumberFilter(field_name='supplier_id')
    status = django_filters.CharFilter(field_name='status')
    search = django_filters.CharFilter(field_name='po_number', lookup_expr='icontains')
    date_from = django_filters.DateFilter(field_name='order_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='order_date', lookup_expr='lte')

    class Meta:
        model = PurchaseOrder
        fields = ['supplier', 'status', 'search', 'date_from', 'date_to']


class GoodsReceiptFilter(django_filters.FilterSet):
    purchase_order = django_filters.NumberFilter(field_name='purchase_order_id')
    warehouse = django_filters.NumberFilter(field_name='warehouse_id')
    date_from = django_filters.DateFilter(field_name='received_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='received_date', lookup_expr='lte')

    class Meta:
        model = GoodsReceipt
        fields = ['purchase_order', 'warehouse', 'date_from', 'date_to']
