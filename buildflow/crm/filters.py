import django_filters
from django.db.models import Q

from .models import Client, CrmActivity, Lead


class ClientFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.CharFilter(field_name='status')

    class Meta:
        model = Client
        fields = ['search', 'status']

    def filter_search(self, queryset, name, value):
        search = (value or '').strip()
        if not search:
            return queryset
        return queryset.filter(
            Q(name__icontains=search) | Q(company_name__icontains=search) |
            Q(email__icontains=search) | Q(phone__icontains=search)
        )


class LeadFilter(django_filters.FilterSet):
    """Filter leads by stage, source, owner and free text"""
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.CharFilter(field_name='status')
    priority = django_filters.CharFilter(field_name='priority')
    source = django_filters.NumberFilter(field_name='source_id')
    assigned_to = django_filters.NumberFilter(field_name='assigned_to_id')
    open = django_filters.CharFilter(method='filter_open', label='Open')

    class Meta:
        model = Lead
        fields = ['search', 'status', 'priority', 'source', 'assigned_to', 'open']

    def filter_search(self, queryset, name, value):
        search = (value or '').strip()
        if not search:
            return queryset
        return queryset.filter(
            Q(company_name__icontains=search) | Q(contact_name__icontains=search) |
            Q(email__icontains=search) | Q(lead_number__icontains=search)
        )

    def filter_open(self, queryset, name, value):
        if not value:
            return queryset
        if value.lower() == 'true':
            return queryset.filter(status__in=Lead.PIPELINE)
        return queryset.filter(status__in=Lead.CLOSED)


class CrmActivityFilter(django_filters.FilterSet):
    lead = django_filters.NumberFilter(field_name='lead_id')
    client = django_filters.NumberFilter(field_name='client_id')
    activity_type = django_filters.CharFilter(field_name='activity_type')
    status = django_filters.CharFilter(field_name='status')

    class Meta:
        model = CrmActivity
        fields = ['lead', 'client', 'activity_type', 'status']
