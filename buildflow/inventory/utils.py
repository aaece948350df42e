"""
Utility functions for inventory operations
"""
import re
import uuid

from .models import Product

_PREFIX_CHARS = re.compile(r'[^A-Z0-9]')


def get_prefix_for_product(product):
    """Code prefix from the category, else 3 characters of the category or product name"""
    category = product.category if product else None
    if category is not None:
        if category.code_prefix:
            return _PREFIX_CHARS.sub('', category.code_prefix.upper())[:10] or 'PRD'
        category_name = _PREFIX_CHARS.sub('', category.name.upper())
        if len(category_name) >= 3:
            return category_name[:3]

    if product and product.name:
        product_name = _PREFIX_CHARS.sub('', product.name.upper())
        if len(product_name) >= 3:
            return product_name[:3]

    return 'PRD'


def get_max_number_for_prefix(agency_id, prefix, using=None):
    """Get the maximum number already used for a given prefix in one agency"""
    manager = Product.objects.db_manager(using) if using else Product.objects
    existing = manager.filter(agency_id=agency_id, sku__startswith=f'{prefix}-')

    max_number = 0
    for sku in existing.values_list('sku', flat=True):
        # Format: PREFIX-NUMBER
        parts = sku.split('-', 1)
        if len(parts) == 2 and parts[1].isdigit():
            max_number = max(max_number, int(parts[1]))
    return max_number


def generate_product_sku(product, agency_id, using=None):
    """
    Generate a category-based SKU for a product.
    Format: PREFIX-NUMBER (e.g., CEM-0001)
    """
    prefix = get_prefix_for_product(product)
    next_number = get_max_number_for_prefix(agency_id, prefix, using=using) + 1

    manager = Product.objects.db_manager(using) if using else Product.objects
    sku = _format_sku(prefix, next_number)
    attempts = 0
    while manager.filter(agency_id=agency_id, sku=sku).exists():
        attempts += 1
        if attempts > 1000:
            return f"{sku}-{str(uuid.uuid4())[:8].upper()}"
        sku = _format_sku(prefix, next_number + attempts)
    return sku


def _format_sku(prefix, number):
    if number <= 9999:
        return f"{prefix}-{number:04d}"
    return f"{prefix}-{number:05d}"
