"""
Typed services over the BuildFlow REST API.

Every method returns an ApiResponse and never raises.
"""
import json
import logging

from .base import DEFAULT_REQUEST_TIMEOUT, ApiResponse, BaseApiService
from .http import HttpTransport

logger = logging.getLogger(__name__)


def _clean(params):
    return {key: value for key, value in (params or {}).items() if value is not None}


class AuthService(BaseApiService):

    def login(self, email, password, two_factor_token=None, recovery_code=None):
        """
        Log in. When the account has two-factor enabled and no code was given
        the data is ``{'requires_2fa': True, 'user_id': ...}`` and nothing is
        stored yet.
        """
        payload = _clean({'email': email, 'password': password,
                          'two_factor_token': two_factor_token, 'recovery_code': recovery_code})

        def operation():
            data = self.http.post('auth/login/', payload, use_main_database=True)
            if data and data.get('access'):
                self.session.save_login(data)
                logger.info(f"Logged in as {email}")
            return data

        return self.execute(operation, retries=0)

    def refresh(self):
        def operation():
            data = self.http.post('auth/refresh/', {'refresh': self.session.refresh_token},
                                  use_main_database=True)
            self.session.save_login(data)
            return data

        return self.execute(operation, retries=0)

    def me(self):
        return self.execute(lambda: self.http.get('auth/me/', use_main_database=True))

    def register(self, email, password, role='employee', **fields):
        payload = dict(fields, email=email, password=password, password_confirm=password, role=role)
        return self.execute(lambda: self.http.post('auth/register/', payload, use_main_database=True), retries=0)

    def logout(self):
        self.session.clear()
        return ApiResponse(data=None, error=None, success=True)


class TwoFactorService(BaseApiService):

    def setup(self):
        return self.execute(lambda: self.http.post('two-factor/setup/', {}, use_main_database=True), retries=0)

    def verify_and_enable(self, token):
        return self.execute(lambda: self.http.post('two-factor/verify-and-enable/', {'token': token},
                                                   use_main_database=True), retries=0)

    def verify(self, user_id, token=None, recovery_code=None):
        """Second login step. Stores the session on success."""
        payload = _clean({'user_id': user_id, 'token': token, 'recovery_code': recovery_code})

        def operation():
            data = self.http.post('two-factor/verify/', payload, use_main_database=True)
            self.session.save_login(data)
            return data

        return self.execute(operation, retries=0)

    def disable(self, password):
        return self.execute(lambda: self.http.post('two-factor/disable/', {'password': password},
                                                   use_main_database=True), retries=0)

    def status(self):
        return self.execute(lambda: self.http.get('two-factor/status/', use_main_database=True))


class InventoryService(BaseApiService):

    # Warehouses
    def list_warehouses(self, **filters):
        return self.execute(lambda: self.http.get('inventory/warehouses/', _clean(filters)))

    def create_warehouse(self, data):
        return self.execute(lambda: self.http.post('inventory/warehouses/', data), retries=0)

    def update_warehouse(self, warehouse_id, data):
        return self.execute(lambda: self.http.patch(f'inventory/warehouses/{warehouse_id}/', data), retries=0)

    def delete_warehouse(self, warehouse_id):
        return self.execute(lambda: self.http.delete(f'inventory/warehouses/{warehouse_id}/'), retries=0)

    # Categories
    def list_categories(self):
        return self.execute(lambda: self.http.get('inventory/categories/'))

    def create_category(self, data):
        return self.execute(lambda: self.http.post('inventory/categories/', data), retries=0)

    # Products
    def list_products(self, search=None, category=None, low_stock=None, page=None, limit=None):
        params = _clean({'search': search, 'category': category, 'page': page, 'limit': limit,
                         'low_stock': 'true' if low_stock else None})
        return self.execute(lambda: self.http.get('inventory/products/', params))

    def get_product(self, product_id):
        return self.execute(lambda: self.http.get(f'inventory/products/{product_id}/'))

    def create_product(self, data):
        return self.execute(lambda: self.http.post('inventory/products/', data), retries=0)

    def update_product(self, product_id, data):
        return self.execute(lambda: self.http.patch(f'inventory/products/{product_id}/', data), retries=0)

    def delete_product(self, product_id):
        return self.execute(lambda: self.http.delete(f'inventory/products/{product_id}/'), retries=0)

    def generate_product_code(self, product_id):
        return self.execute(lambda: self.http.post(f'inventory/products/{product_id}/generate-code/'), retries=0)

    def product_levels(self, product_id):
        return self.execute(lambda: self.http.get(f'inventory/products/{product_id}/levels/'))

    # Stock
    def list_levels(self, **filters):
        return self.execute(lambda: self.http.get('inventory/levels/', _clean(filters)))

    def low_stock_alerts(self):
        return self.execute(lambda: self.http.get('inventory/alerts/low-stock/'))

    def list_transactions(self, **filters):
        return self.execute(lambda: self.http.get('inventory/transactions/', _clean(filters)))

    def create_transaction(self, transaction_type, product, warehouse, quantity, **fields):
        payload = dict(fields, transaction_type=transaction_type, product=product, warehouse=warehouse,
                       quantity=str(quantity))
        # stock movements are not idempotent
        return self.execute(lambda: self.http.post('inventory/transactions/', payload), retries=0)


class ProcurementService(BaseApiService):

    def list_suppliers(self, **filters):
        return self.execute(lambda: self.http.get('procurement/suppliers/', _clean(filters)))

    def create_supplier(self, data):
        return self.execute(lambda: self.http.post('procurement/suppliers/', data), retries=0)

    def update_supplier(self, supplier_id, data):
        return self.execute(lambda: self.http.patch(f'procurement/suppliers/{supplier_id}/', data), retries=0)

    # Requisitions
    def list_requisitions(self, **filters):
        return self.execute(lambda: self.http.get('procurement/requisitions/', _clean(filters)))

    def create_requisition(self, data):
        return self.execute(lambda: self.http.post('procurement/requisitions/', data), retries=0)

    def set_requisition_status(self, requisition_id, status, **fields):
        payload = dict(fields, status=status)
        return self.execute(lambda: self.http.patch(f'procurement/requisitions/{requisition_id}/', payload),
                            retries=0)

    def approve_requisition(self, requisition_id):
        return self.set_requisition_status(requisition_id, 'approved')

    # Purchase orders
    def list_purchase_orders(self, **filters):
        return self.execute(lambda: self.http.get('procurement/purchase-orders/', _clean(filters)))

    def get_purchase_order(self, order_id):
        return self.execute(lambda: self.http.get(f'procurement/purchase-orders/{order_id}/'))

    def create_purchase_order(self, data):
        return self.execute(lambda: self.http.post('procurement/purchase-orders/', data), retries=0)

    def update_purchase_order(self, order_id, data):
        return self.execute(lambda: self.http.patch(f'procurement/purchase-orders/{order_id}/', data), retries=0)

    def set_purchase_order_status(self, order_id, status):
        return self.update_purchase_order(order_id, {'status': status})

    def delete_purchase_order(self, order_id):
        return self.execute(lambda: self.http.delete(f'procurement/purchase-orders/{order_id}/'), retries=0)

    # Goods receipts
    def list_goods_receipts(self, **filters):
        return self.execute(lambda: self.http.get('procurement/goods-receipts/', _clean(filters)))

    def receive_goods(self, purchase_order, items, **fields):
        payload = dict(fields, purchase_order=purchase_order, items=items)
        return self.execute(lambda: self.http.post('procurement/goods-receipts/', payload), retries=0)


class CrmService(BaseApiService):

    # Clients
    def list_clients(self, **filters):
        return self.execute(lambda: self.http.get('crm/clients/', _clean(filters)))

    def create_client(self, data):
        return self.execute(lambda: self.http.post('crm/clients/', data), retries=0)

    def update_client(self, client_id, data):
        return self.execute(lambda: self.http.patch(f'crm/clients/{client_id}/', data), retries=0)

    # Lead sources
    def list_lead_sources(self):
        return self.execute(lambda: self.http.get('crm/lead-sources/'))

    def create_lead_source(self, data):
        return self.execute(lambda: self.http.post('crm/lead-sources/', data), retries=0)

    # Leads
    def list_leads(self, **filters):
        return self.execute(lambda: self.http.get('crm/leads/', _clean(filters)))

    def get_lead(self, lead_id):
        return self.execute(lambda: self.http.get(f'crm/leads/{lead_id}/'))

    def create_lead(self, data):
        return self.execute(lambda: self.http.post('crm/leads/', data), retries=0)

    def update_lead(self, lead_id, data):
        return self.execute(lambda: self.http.patch(f'crm/leads/{lead_id}/', data), retries=0)

    def move_lead(self, lead_id, status, lost_reason=None):
        return self.update_lead(lead_id, _clean({'status': status, 'lost_reason': lost_reason}))

    def convert_lead(self, lead_id, **client_fields):
        return self.execute(lambda: self.http.post(f'crm/leads/{lead_id}/convert/', client_fields), retries=0)

    # Activities
    def list_activities(self, **filters):
        return self.execute(lambda: self.http.get('crm/activities/', _clean(filters)))

    def log_activity(self, data):
        return self.execute(lambda: self.http.post('crm/activities/', data), retries=0)

    def complete_activity(self, activity_id, outcome=None):
        payload = _clean({'status': 'completed', 'outcome': outcome})
        return self.execute(lambda: self.http.patch(f'crm/activities/{activity_id}/', payload), retries=0)


class ReportsService(BaseApiService):

    def inventory_summary(self):
        return self.execute(lambda: self.http.get('reports/inventory-summary/'))

    def stock_value(self):
        return self.execute(lambda: self.http.get('reports/stock-value/'))

    def procurement_summary(self, date_from=None, date_to=None):
        params = _clean({'date_from': date_from, 'date_to': date_to})
        return self.execute(lambda: self.http.get('reports/procurement-summary/', params))

    def crm_pipeline(self):
        return self.execute(lambda: self.http.get('reports/crm-pipeline/'))


class RecordsService(BaseApiService):
    """Generic table access through /records/"""

    def select(self, table, where=None, filters=None, select='*', order_by='', limit=None, offset=None):
        body = _clean({'select': select, 'where': where, 'filters': filters, 'order_by': order_by,
                       'limit': limit, 'offset': offset})
        return self.execute(lambda: self.http.post(f'records/{table}/query/', body))

    def select_one(self, table, where=None, **kwargs):
        response = self.select(table, where=where, limit=1, **kwargs)
        if response.success:
            response.data = response.data[0] if response.data else None
        return response

    def paginate(self, table, page=1, page_size=20, where=None, order_by=''):
        params = _clean({'page': page, 'page_size': page_size, 'order_by': order_by or None,
                         'where': json.dumps(where) if where else None})
        return self.execute(lambda: self.http.get(f'records/{table}/', params))

    def count(self, table, where=None):
        params = _clean({'where': json.dumps(where) if where else None})

        def operation():
            return self.http.get(f'records/{table}/count/', params)['count']

        return self.execute(operation)

    def insert(self, table, data):
        """Insert one row (a dict) or several (a list of dicts)"""
        return self.execute(lambda: self.http.post(f'records/{table}/', data), retries=0)

    def update(self, table, record_id, data):
        return self.execute(lambda: self.http.patch(f'records/{table}/{record_id}/', data), retries=0)

    def upsert(self, table, data, unique_key):
        body = {'data': data, 'unique_key': unique_key}
        return self.execute(lambda: self.http.post(f'records/{table}/upsert/', body), retries=0)

    def delete(self, table, record_id):
        return self.execute(lambda: self.http.delete(f'records/{table}/{record_id}/'), retries=0)


class BuildFlowClient:
    """All services over one transport and session"""

    def __init__(self, base_url, store=None, timeout=None, session=None):
        self.http = HttpTransport(base_url, store=store, timeout=timeout or DEFAULT_REQUEST_TIMEOUT, session=session)
        self.auth = AuthService(self.http)
        self.two_factor = TwoFactorService(self.http)
        self.inventory = InventoryService(self.http)
        self.procurement = ProcurementService(self.http)
        self.crm = CrmService(self.http)
        self.reports = ReportsService(self.http)
        self.records = RecordsService(self.http)

    @property
    def session(self):
        return self.http.store
