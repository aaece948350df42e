"""
Tests for the CRM module
Tests: lead pipeline transitions, lead conversion, activities and lead sources
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from buildflow.core.exceptions import ApiException, InvalidStatusTransition
from buildflow.core.models import AuditLog
from buildflow.core.test_utils import AuthenticatedAPIClient, TestDataFactory

from .models import Client, Lead
from .services import convert_lead


class ConvertLeadTests(TestCase):
    """Test convert_lead directly"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()

    def test_convert_creates_client(self):
        lead = TestDataFactory.create_lead(self.agency, company_name='Acme Builders', status='negotiation')
        client = convert_lead(lead, created_by_id=7)
        lead.refresh_from_db()
        self.assertEqual(lead.status, 'won')
        self.assertEqual(lead.probability, 100)
        self.assertEqual(lead.converted_client_id, client.id)
        self.assertIsNotNone(lead.converted_at)
        self.assertEqual(client.agency_id, self.agency.id)
        self.assertEqual(client.company_name, 'Acme Builders')
        self.assertEqual(client.name, 'Test Contact')
        self.assertEqual(client.created_by_id, 7)

    def test_overrides(self):
        lead = TestDataFactory.create_lead(self.agency)
        client = convert_lead(lead, overrides={'name': 'Acme Ltd', 'email': 'billing@acme.test'})
        self.assertEqual(client.name, 'Acme Ltd')
        self.assertEqual(client.email, 'billing@acme.test')

    def test_cannot_convert_twice(self):
        lead = TestDataFactory.create_lead(self.agency)
        convert_lead(lead)
        with self.assertRaises(ApiException) as ctx:
            convert_lead(lead)
        self.assertEqual(ctx.exception.error_code, 'LEAD_ALREADY_CONVERTED')
        self.assertEqual(Client.objects.count(), 1)

    def test_cannot_convert_lost_lead(self):
        lead = TestDataFactory.create_lead(self.agency, status='lost')
        with self.assertRaises(InvalidStatusTransition):
            convert_lead(lead)


class LeadAPITests(TestCase):
    """Test lead endpoints and pipeline rules"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency, role='sales_manager')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.source = TestDataFactory.create_lead_source(self.agency, name='Referral')

    def _patch(self, lead, data):
        return self.client.patch(f'/api/v1/crm/leads/{lead.id}/', data, format='json')

    def test_create_lead(self):
        response = self.client.post('/api/v1/crm/leads/', {
            'company_name': 'Northwind Homes',
            'contact_name': 'Dana Ortiz',
            'source': self.source.id,
            'estimated_value': '45000.00',
            'probability': 20,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['lead_number'].startswith('LD-'))
        self.assertEqual(response.data['status'], 'new')
        self.assertEqual(response.data['source_name'], 'Referral')
        self.assertEqual(response.data['created_by_id'], self.user.id)

    def test_create_closed_lead_rejected(self):
        response = self.client.post('/api/v1/crm/leads/', {'company_name': 'X', 'status': 'won'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('status', response.data)

    def test_probability_bounds(self):
        response = self.client.post('/api/v1/crm/leads/', {'company_name': 'X', 'probability': 150},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_forward_moves(self):
        lead = TestDataFactory.create_lead(self.agency)
        for stage in ('contacted', 'qualified', 'proposal', 'negotiation'):
            response = self._patch(lead, {'status': stage})
            self.assertEqual(response.status_code, status.HTTP_200_OK, stage)
        lead.refresh_from_db()
        self.assertEqual(lead.status, 'negotiation')
        self.assertTrue(AuditLog.objects.filter(action='status_change', object_id=str(lead.id)).exists())

    def test_backward_move_rejected(self):
        lead = TestDataFactory.create_lead(self.agency, status='proposal')
        response = self._patch(lead, {'status': 'contacted'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_STATUS_TRANSITION')
        self.assertIn('negotiation', response.data['error']['details']['allowed'])

    def test_won_only_through_convert(self):
        lead = TestDataFactory.create_lead(self.agency, status='negotiation')
        response = self._patch(lead, {'status': 'won'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_lost_requires_reason(self):
        lead = TestDataFactory.create_lead(self.agency, status='qualified')
        response = self._patch(lead, {'status': 'lost'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('lost_reason', response.data)

        response = self._patch(lead, {'status': 'lost', 'lost_reason': 'Went with a competitor'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_lost_lead_can_reopen(self):
        lead = TestDataFactory.create_lead(self.agency, status='lost')
        response = self._patch(lead, {'status': 'new'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_convert_endpoint(self):
        lead = TestDataFactory.create_lead(self.agency, company_name='Contoso', status='proposal',
                                           estimated_value=Decimal('1000.00'))
        response = self.client.post(f'/api/v1/crm/leads/{lead.id}/convert/', {'name': 'Contoso Ltd'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['lead']['status'], 'won')
        self.assertEqual(response.data['client']['name'], 'Contoso Ltd')
        self.assertEqual(response.data['lead']['converted_client'], response.data['client']['id'])

        response = self.client.post(f'/api/v1/crm/leads/{lead.id}/convert/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'LEAD_ALREADY_CONVERTED')

    def test_filters(self):
        TestDataFactory.create_lead(self.agency, status='new', source=self.source)
        TestDataFactory.create_lead(self.agency, status='lost')
        TestDataFactory.create_lead(TestDataFactory.create_agency(), status='new')

        response = self.client.get('/api/v1/crm/leads/', {'open': 'true'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/crm/leads/', {'source': self.source.id})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/crm/leads/')
        self.assertEqual(response.data['count'], 2)

    def test_delete_requires_manager(self):
        lead = TestDataFactory.create_lead(self.agency)
        employee = TestDataFactory.create_user(agency=self.agency, role='intern')
        self.client.authenticate_user(employee)
        response = self.client.delete(f'/api/v1/crm/leads/{lead.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Lead.objects.filter(pk=lead.id).exists())


class LeadSourceAPITests(TestCase):

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_duplicate_name_case_insensitive(self):
        TestDataFactory.create_lead_source(self.agency, name='Website')
        response = self.client.post('/api/v1/crm/lead-sources/', {'name': 'website'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list(self):
        TestDataFactory.create_lead_source(self.agency, name='Website')
        TestDataFactory.create_lead_source(TestDataFactory.create_agency(), name='Trade show')
        response = self.client.get('/api/v1/crm/lead-sources/')
        self.assertEqual([source['name'] for source in response.data], ['Website'])


class ActivityAPITests(TestCase):
    """Test CRM activity endpoints"""

    def setUp(self):
        self.agency = TestDataFactory.create_agency()
        self.user = TestDataFactory.create_user(agency=self.agency)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.lead = TestDataFactory.create_lead(self.agency)

    def test_activity_needs_lead_or_client(self):
        response = self.client.post('/api/v1/crm/activities/', {'activity_type': 'call', 'subject': 'Intro'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_log_call(self):
        response = self.client.post('/api/v1/crm/activities/', {
            'lead': self.lead.id, 'activity_type': 'call', 'subject': 'Intro call',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNotNone(response.data['activity_date'])
        self.assertEqual(response.data['status'], 'pending')

    def test_completing_sets_completed_date(self):
        activity = TestDataFactory.create_activity(self.agency, lead=self.lead)
        response = self.client.patch(f'/api/v1/crm/activities/{activity.id}/', {'status': 'completed'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.data['completed_date'])

    def test_filter_by_lead(self):
        TestDataFactory.create_activity(self.agency, lead=self.lead)
        client = TestDataFactory.create_client(self.agency)
        TestDataFactory.create_activity(self.agency, client=client)
        response = self.client.get('/api/v1/crm/activities/', {'lead': self.lead.id})
        self.assertEqual(response.data['count'], 1)
