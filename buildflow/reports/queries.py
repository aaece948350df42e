"""
Report queries. Each takes the agency id first so results are cached per agency.
"""
from datetime import timedelta
from decimal import Decimal

from django.db.models import Count, DecimalField, ExpressionWrapper, F, Q, Sum
from django.utils import timezone

from buildflow.core.cache_utils import REPORTS_CACHE_TTL, cached_query
from buildflow.crm.models import CrmActivity, Lead
from buildflow.inventory.models import InventoryLevel, InventoryTransaction, Product, Warehouse
from buildflow.procurement.models import PurchaseOrder, PurchaseRequisition

ZERO = Decimal('0')


def _money(value):
    return float(value or ZERO)


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix='reports')
def inventory_summary(agency_id, warehouse_id=None):
    levels = InventoryLevel.objects.filter(agency_id=agency_id, product__is_active=True)
    if warehouse_id:
        levels = levels.filter(warehouse_id=warehouse_id)

    totals = levels.aggregate(
        total_quantity=Sum('quantity'),
        total_reserved=Sum('reserved_quantity'),
        low_stock_count=Count('id', filter=Q(quantity__gt=0, quantity__lte=F('product__reorder_level'))),
        out_of_stock_count=Count('id', filter=Q(quantity__lte=0)),
    )

    since = timezone.now() - timedelta(days=30)
    movements = InventoryTransaction.objects.filter(agency_id=agency_id, created_at__gte=since)
    if warehouse_id:
        movements = movements.filter(Q(warehouse_id=warehouse_id) | Q(to_warehouse_id=warehouse_id))
    by_type = {row['transaction_type']: row['count']
               for row in movements.values('transaction_type').annotate(count=Count('id'))}

    total_quantity = totals['total_quantity'] or ZERO
    total_reserved = totals['total_reserved'] or ZERO
    return {
        'summary': {
            'total_products': Product.objects.filter(agency_id=agency_id, is_active=True).count(),
            'total_warehouses': Warehouse.objects.filter(agency_id=agency_id, is_active=True).count(),
            'total_quantity': float(total_quantity),
            'total_reserved': float(total_reserved),
            'total_available': float(total_quantity - total_reserved),
            'low_stock_count': totals['low_stock_count'],
            'out_of_stock_count': totals['out_of_stock_count'],
        },
        'movements_last_30_days': {kind: by_type.get(kind, 0) for kind, _ in InventoryTransaction.TYPE_CHOICES},
    }


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix='reports')
def stock_value(agency_id, warehouse_id=None):
    """Stock valued at product unit cost, per warehouse and per category"""
    value_expr = ExpressionWrapper(F('quantity') * F('product__unit_cost'),
                                   output_field=DecimalField(max_digits=20, decimal_places=2))
    levels = InventoryLevel.objects.filter(agency_id=agency_id, product__is_active=True)
    if warehouse_id:
        levels = levels.filter(warehouse_id=warehouse_id)

    by_warehouse = [
        {
            'warehouse_id': row['warehouse_id'],
            'warehouse_name': row['warehouse__name'],
            'quantity': float(row['stock_quantity'] or ZERO),
            'value': _money(row['value']),
        }
        for row in levels.values('warehouse_id', 'warehouse__name').annotate(
            stock_quantity=Sum('quantity'), value=Sum(value_expr)).order_by('warehouse__name')
    ]
    by_category = [
        {
            'category_id': row['product__category_id'],
            'category_name': row['product__category__name'] or 'Uncategorized',
            'value': _money(row['value']),
        }
        for row in levels.values('product__category_id', 'product__category__name').annotate(
            value=Sum(value_expr)).order_by('-value')
    ]
    return {
        'total_value': _money(levels.aggregate(total=Sum(value_expr))['total']),
        'by_warehouse': by_warehouse,
        'by_category': by_category,
    }


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix='reports')
def procurement_summary(agency_id, date_from=None, date_to=None):
    orders = PurchaseOrder.objects.filter(agency_id=agency_id)
    if date_from:
        orders = orders.filter(order_date__gte=date_from)
    if date_to:
        orders = orders.filter(order_date__lte=date_to)

    by_status = {
        row['status']: {'count': row['count'], 'total_amount': _money(row['total'])}
        for row in orders.values('status').annotate(count=Count('id'), total=Sum('total_amount'))
    }
    committed = orders.exclude(status__in=['draft', 'cancelled'])
    top_suppliers = [
        {'supplier_id': row['supplier_id'], 'supplier_name': row['supplier__name'],
         'orders': row['count'], 'total_amount': _money(row['total'])}
        for row in committed.values('supplier_id', 'supplier__name').annotate(
            count=Count('id'), total=Sum('total_amount')).order_by('-total')[:5]
    ]
    return {
        'orders_by_status': {
            status: by_status.get(status, {'count': 0, 'total_amount': 0.0})
            for status, _ in PurchaseOrder.STATUS_CHOICES
        },
        'total_committed': _money(committed.aggregate(total=Sum('total_amount'))['total']),
        'open_orders': orders.filter(status__in=PurchaseOrder.RECEIVABLE_STATUSES).count(),
        'pending_requisitions': PurchaseRequisition.objects.filter(agency_id=agency_id, status='pending').count(),
        'top_suppliers': top_suppliers,
    }


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix='reports')
def crm_pipeline(agency_id, assigned_to_id=None):
    """Lead counts and values per stage, with win rate"""
    leads = Lead.objects.filter(agency_id=agency_id)
    if assigned_to_id:
        leads = leads.filter(assigned_to_id=assigned_to_id)

    rows = {row['status']: row for row in leads.values('status').annotate(
        count=Count('id'), value=Sum('estimated_value'))}
    stages = []
    weighted_total = ZERO
    for status, label in Lead.STATUS_CHOICES:
        row = rows.get(status, {})
        value = row.get('value') or ZERO
        stages.append({'status': status, 'label': label, 'count': row.get('count', 0), 'value': float(value)})

    for lead in leads.filter(status__in=Lead.PIPELINE).only('estimated_value', 'probability'):
        weighted_total += lead.estimated_value * lead.probability / 100

    won = rows.get('won', {}).get('count', 0)
    lost = rows.get('lost', {}).get('count', 0)
    open_leads = leads.filter(status__in=Lead.PIPELINE)
    return {
        'stages': stages,
        'open_leads': open_leads.count(),
        'open_value': _money(open_leads.aggregate(total=Sum('estimated_value'))['total']),
        'weighted_value': float(weighted_total),
        'won': won,
        'lost': lost,
        'win_rate': round(won / (won + lost) * 100, 2) if won + lost else 0.0,
        'converted_clients': leads.filter(converted_client__isnull=False).count(),
        'pending_activities': CrmActivity.objects.filter(agency_id=agency_id, status='pending').count(),
    }
