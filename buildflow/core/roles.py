"""Role hierarchy. A lower level means more authority."""

ROLE_HIERARCHY = {
    'super_admin': 1,
    'ceo': 2,
    'cto': 3,
    'cfo': 4,
    'coo': 5,
    'admin': 6,
    'operations_manager': 7,
    'department_head': 8,
    'team_lead': 9,
    'project_manager': 10,
    'hr': 11,
    'finance_manager': 12,
    'sales_manager': 13,
    'marketing_manager': 14,
    'quality_assurance': 15,
    'it_support': 16,
    'legal_counsel': 17,
    'business_analyst': 18,
    'customer_success': 19,
    'employee': 20,
    'contractor': 21,
    'intern': 22,
}

UNKNOWN_ROLE_LEVEL = 99

ROLE_CHOICES = [(role, role.replace('_', ' ').title()) for role in ROLE_HIERARCHY]


def get_role_level(role):
    return ROLE_HIERARCHY.get(role, UNKNOWN_ROLE_LEVEL)


def has_role_or_higher(user_role, minimum_role):
    """True when ``user_role`` carries at least the authority of ``minimum_role``"""
    return get_role_level(user_role) <= get_role_level(minimum_role)


def is_valid_role(role):
    return role in ROLE_HIERARCHY
