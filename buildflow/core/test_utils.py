"""
Test utilities and factories for creating test data
"""
import random
import string
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from buildflow.agencies.models import Agency
from buildflow.crm.models import Client, CrmActivity, Lead, LeadSource
from buildflow.inventory.models import InventoryLevel, Product, ProductCategory, Warehouse
from buildflow.procurement.models import PurchaseOrder, PurchaseOrderItem, Supplier

from .tokens import AgencyRefreshToken

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_agency(name=None, database_name=None, domain=None, is_active=True, subscription_plan='free'):
        """Create a test agency"""
        suffix = TestDataFactory.random_string(6).lower()
        return Agency.objects.create(
            name=name or f'Agency {suffix}',
            database_name=database_name or f'agency_{suffix}',
            domain=domain or f'{suffix}.buildflow.test',
            is_active=is_active,
            subscription_plan=subscription_plan,
        )

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='employee', agency=None,
                    is_staff=False, is_superuser=False, **extra):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'.lower()
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            agency=agency,
            is_staff=is_staff,
            is_superuser=is_superuser,
            **extra
        )

    @staticmethod
    def create_super_admin(**kwargs):
        kwargs.setdefault('role', 'super_admin')
        return TestDataFactory.create_user(agency=None, **kwargs)

    @staticmethod
    def create_warehouse(agency, name=None, code=None, is_active=True):
        """Create a test warehouse"""
        if not name:
            name = f'Warehouse_{TestDataFactory.random_string(6)}'
        if not code:
            code = f'WH_{TestDataFactory.random_string(6).upper()}'
        return Warehouse.objects.create(
            agency_id=agency.id,
            name=name,
            code=code,
            address=f'Test Address {name}',
            is_active=is_active,
        )

    @staticmethod
    def create_category(agency, name=None, code_prefix=''):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return ProductCategory.objects.create(agency_id=agency.id, name=name, code_prefix=code_prefix)

    @staticmethod
    def create_product(agency, name=None, sku=None, category=None, unit_cost=Decimal('10.00'),
                       selling_price=Decimal('15.00'), reorder_level=Decimal('5.000'), is_active=True):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU_{TestDataFactory.random_string(8).upper()}'
        return Product.objects.create(
            agency_id=agency.id,
            name=name,
            sku=sku,
            category=category,
            unit_cost=unit_cost,
            selling_price=selling_price,
            reorder_level=reorder_level,
            is_active=is_active,
        )

    @staticmethod
    def set_stock(product, warehouse, quantity):
        """Set a stock level directly, without a transaction"""
        level, _ = InventoryLevel.objects.update_or_create(
            product=product,
            warehouse=warehouse,
            defaults={'agency_id': product.agency_id, 'quantity': Decimal(str(quantity))},
        )
        return level

    @staticmethod
    def create_supplier(agency, name=None, code=None):
        """Create a test supplier"""
        if not name:
            name = f'Supplier_{TestDataFactory.random_string(6)}'
        return Supplier.objects.create(
            agency_id=agency.id,
            name=name,
            code=code or f'SUP_{TestDataFactory.random_string(5).upper()}',
            email=f'{TestDataFactory.random_string(6).lower()}@supplier.test',
        )

    @staticmethod
    def create_purchase_order(agency, supplier=None, warehouse=None, status='draft', po_number=None):
        """Create a test purchase order without items"""
        return PurchaseOrder.objects.create(
            agency_id=agency.id,
            po_number=po_number or f'PO-TEST-{TestDataFactory.random_string(6).upper()}',
            supplier=supplier or TestDataFactory.create_supplier(agency),
            warehouse=warehouse,
            status=status,
            order_date=timezone.localdate(),
        )

    @staticmethod
    def create_purchase_order_item(purchase_order, product, quantity=Decimal('10.000'),
                                   unit_price=Decimal('100.00')):
        """Create a purchase order item and refresh the order totals"""
        item = PurchaseOrderItem.objects.create(
            purchase_order=purchase_order,
            product=product,
            quantity=quantity,
            unit_price=unit_price,
        )
        purchase_order.recalculate_totals()
        purchase_order.save(update_fields=['subtotal', 'total_amount', 'updated_at'])
        return item

    @staticmethod
    def create_client(agency, name=None):
        if not name:
            name = f'Client_{TestDataFactory.random_string(6)}'
        return Client.objects.create(agency_id=agency.id, name=name, email=f'{name.lower()}@client.test')

    @staticmethod
    def create_lead_source(agency, name=None):
        return LeadSource.objects.create(agency_id=agency.id, name=name or f'Source_{TestDataFactory.random_string(6)}')

    @staticmethod
    def create_lead(agency, company_name=None, status='new', estimated_value=Decimal('1000.00'), probability=0,
                    source=None, lead_number=None):
        """Create a test lead"""
        return Lead.objects.create(
            agency_id=agency.id,
            lead_number=lead_number or f'LD-TEST-{TestDataFactory.random_string(6).upper()}',
            company_name=company_name or f'Company_{TestDataFactory.random_string(6)}',
            contact_name='Test Contact',
            email='contact@lead.test',
            status=status,
            estimated_value=estimated_value,
            probability=probability,
            source=source,
        )

    @staticmethod
    def create_activity(agency, lead=None, client=None, activity_type='call', status='pending'):
        return CrmActivity.objects.create(
            agency_id=agency.id,
            lead=lead,
            client=client,
            activity_type=activity_type,
            subject=f'Activity {TestDataFactory.random_string(4)}',
            activity_date=timezone.now(),
            status=status,
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user, agency_database=None):
        """Authenticate the client with a user, optionally selecting an agency database"""
        refresh = AgencyRefreshToken.for_user(user)
        headers = {'HTTP_AUTHORIZATION': f'Bearer {refresh.access_token}'}
        if agency_database:
            headers['HTTP_X_AGENCY_DATABASE'] = agency_database
        self.credentials(**headers)
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
