from decimal import Decimal

from django.db import models

from buildflow.agencies.models import AgencyScopedModel


class Client(AgencyScopedModel):
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('prospect', 'Prospect'),
    ]

    name = models.CharField(max_length=255)
    company_name = models.CharField(max_length=255, blank=True)
    contact_person = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    industry = models.CharField(max_length=100, blank=True)
    website = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    notes = models.TextField(blank=True)
    created_by_id = models.BigIntegerField(null=True, blank=True)

    def __str__(self):
        return self.company_name or self.name

    class Meta:
        db_table = 'clients'
        ordering = ['name']


class LeadSource(AgencyScopedModel):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'lead_sources'
        ordering = ['name']
        unique_together = [['agency_id', 'name']]


class Lead(AgencyScopedModel):
    """Sales opportunity moving through the pipeline"""
    PIPELINE = ['new', 'contacted', 'qualified', 'proposal', 'negotiation']
    CLOSED = ['won', 'lost']
    STATUS_CHOICES = [
        ('new', 'New'),
        ('contacted', 'Contacted'),
        ('qualified', 'Qualified'),
        ('proposal', 'Proposal'),
        ('negotiation', 'Negotiation'),
        ('won', 'Won'),
        ('lost', 'Lost'),
    ]
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]
    # Open leads move forward through the pipeline, may close as won only
    # from proposal or negotiation, and may be lost at any open stage.
    # A lost lead can be reopened as new.
    TRANSITIONS = {
        'new': {'contacted', 'qualified', 'proposal', 'negotiation', 'lost'},
        'contacted': {'qualified', 'proposal', 'negotiation', 'lost'},
        'qualified': {'proposal', 'negotiation', 'lost'},
        'proposal': {'negotiation', 'won', 'lost'},
        'negotiation': {'won', 'lost'},
        'won': set(),
        'lost': {'new'},
    }

    lead_number = models.CharField(max_length=100)
    company_name = models.CharField(max_length=255)
    contact_name = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    source = models.ForeignKey(LeadSource, on_delete=models.SET_NULL, null=True, blank=True, related_name='leads')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='new')
    priority = models.CharField(max_length=20, choices=PRIORITY_CHOICES, default='medium')
    estimated_value = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    probability = models.PositiveSmallIntegerField(default=0)
    expected_close_date = models.DateField(null=True, blank=True)
    follow_up_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    lost_reason = models.TextField(blank=True)
    assigned_to_id = models.BigIntegerField(null=True, blank=True)
    created_by_id = models.BigIntegerField(null=True, blank=True)
    converted_client = models.ForeignKey(Client, on_delete=models.SET_NULL, null=True, blank=True,
                                         related_name='source_leads')
    converted_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.lead_number} {self.company_name}"

    @property
    def is_open(self):
        return self.status in self.PIPELINE

    class Meta:
        db_table = 'leads'
        ordering = ['-created_at']
        unique_together = [['agency_id', 'lead_number']]
        indexes = [
            models.Index(fields=['agency_id', 'status'], name='leads_agency_status_idx'),
        ]


class CrmActivity(AgencyScopedModel):
    """Call, email, meeting or task logged against a lead or client"""
    TYPE_CHOICES = [
        ('call', 'Call'),
        ('email', 'Email'),
        ('meeting', 'Meeting'),
        ('note', 'Note'),
        ('task', 'Task'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    lead = models.ForeignKey(Lead, on_delete=models.CASCADE, null=True, blank=True, related_name='activities')
    client = models.ForeignKey(Client, on_delete=models.SET_NULL, null=True, blank=True, related_name='activities')
    activity_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    subject = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    activity_date = models.DateTimeField()
    due_date = models.DateTimeField(null=True, blank=True)
    completed_date = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    outcome = models.TextField(blank=True)
    assigned_to_id = models.BigIntegerField(null=True, blank=True)
    created_by_id = models.BigIntegerField(null=True, blank=True)

    def __str__(self):
        return self.subject

    class Meta:
        db_table = 'crm_activities'
        ordering = ['-activity_date']
        verbose_name_plural = 'CRM activities'
