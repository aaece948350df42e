import logging

from django.db import transaction
from django.utils import timezone

from buildflow.agencies.context import tenant_alias
from buildflow.core.exceptions import ApiException, InvalidStatusTransition

from .models import Client, Lead

logger = logging.getLogger('buildflow.crm')


def convert_lead(lead, created_by_id=None, overrides=None):
    """
    Turn a lead into a client and close the lead as won.

    Client fields default to the lead's contact details; ``overrides`` replace them.
    """
    if lead.converted_client_id:
        raise ApiException('Lead has already been converted.', code='LEAD_ALREADY_CONVERTED',
                           details={'client_id': lead.converted_client_id})
    if not lead.is_open:
        raise InvalidStatusTransition(
            f'Cannot convert a lead that is {lead.status}.',
            details={'from': lead.status, 'to': 'won', 'allowed': Lead.PIPELINE},
        )

    client_data = {
        'name': lead.contact_name or lead.company_name,
        'company_name': lead.company_name,
        'contact_person': lead.contact_name,
        'email': lead.email,
        'phone': lead.phone,
        'notes': lead.notes,
    }
    client_data.update(overrides or {})

    using = tenant_alias()
    with transaction.atomic(using=using):
        client = Client.objects.using(using).create(
            agency_id=lead.agency_id,
            status='active',
            created_by_id=created_by_id,
            **client_data,
        )
        lead.status = 'won'
        lead.probability = 100
        lead.converted_client = client
        lead.converted_at = timezone.now()
        lead.save(using=using, update_fields=['status', 'probability', 'converted_client', 'converted_at',
                                              'updated_at'])

    logger.info(f"Lead {lead.lead_number} converted to client {client.id}")
    return client
