"""
Sequential document numbers such as PO-20250114-0001
"""
from django.utils import timezone


def next_document_number(model, field, prefix, agency_id, using=None, date=None):
    """
    Next ``PREFIX-YYYYMMDD-NNNN`` number for ``model.field`` within one agency.

    Numbering restarts every day. Callers hold a transaction so the number
    and the row are written together; a unique constraint on
    (agency_id, field) catches the rare concurrent collision.
    """
    date = date or timezone.localdate()
    stem = f"{prefix}-{date.strftime('%Y%m%d')}-"
    manager = model.objects.db_manager(using) if using else model.objects
    existing = manager.filter(agency_id=agency_id, **{f'{field}__startswith': stem}).values_list(field, flat=True)

    max_number = 0
    for number in existing:
        suffix = number[len(stem):]
        if suffix.isdigit():
            max_number = max(max_number, int(suffix))
    return f"{stem}{max_number + 1:04d}"
