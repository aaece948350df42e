from django.utils import timezone
from rest_framework import serializers

from buildflow.agencies.fields import AgencyRelatedField, context_agency_id
from buildflow.core.numbering import next_document_number
from buildflow.core.workflow import check_transition

from .models import Client, CrmActivity, Lead, LeadSource


class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ['id', 'name', 'company_name', 'contact_person', 'email', 'phone', 'address', 'industry',
                  'website', 'status', 'notes', 'created_by_id', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_by_id', 'created_at', 'updated_at']


class LeadSourceSerializer(serializers.ModelSerializer):
    class Meta:
        model = LeadSource
        fields = ['id', 'name', 'description', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        queryset = LeadSource.objects.filter(agency_id=context_agency_id(self.context), name__iexact=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A lead source with this name already exists.')
        return value


class LeadSerializer(serializers.ModelSerializer):
    source = AgencyRelatedField(queryset=LeadSource.objects.all(), required=False, allow_null=True)
    source_name = serializers.CharField(source='source.name', read_only=True, default=None)
    converted_client_name = serializers.CharField(source='converted_client.name', read_only=True, default=None)

    class Meta:
        model = Lead
        fields = [
            'id', 'lead_number', 'company_name', 'contact_name', 'email', 'phone', 'source', 'source_name',
            'status', 'priority', 'estimated_value', 'probability', 'expected_close_date', 'follow_up_date',
            'notes', 'lost_reason', 'assigned_to_id', 'created_by_id', 'converted_client',
            'converted_client_name', 'converted_at', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'lead_number', 'created_by_id', 'converted_client', 'converted_at',
                            'created_at', 'updated_at']

    def validate_probability(self, value):
        if value > 100:
            raise serializers.ValidationError('Probability is a percentage between 0 and 100.')
        return value

    def validate_estimated_value(self, value):
        if value < 0:
            raise serializers.ValidationError('Must not be negative.')
        return value

    def validate_status(self, value):
        if self.instance is None:
            if value not in Lead.PIPELINE:
                raise serializers.ValidationError('New leads must start in an open stage.')
            return value
        if value == 'won':
            # Winning a lead goes through conversion so a client is created
            raise serializers.ValidationError('Use the convert endpoint to mark a lead as won.')
        check_transition(Lead.TRANSITIONS, self.instance.status, value)
        return value

    def create(self, validated_data):
        validated_data['lead_number'] = next_document_number(Lead, 'lead_number', 'LD', validated_data['agency_id'])
        return super().create(validated_data)

    def validate(self, attrs):
        if attrs.get('status') == 'lost' and not (attrs.get('lost_reason') or getattr(self.instance, 'lost_reason', '')):
            raise serializers.ValidationError({'lost_reason': 'A reason is required when a lead is lost.'})
        return attrs


class LeadConvertSerializer(serializers.Serializer):
    """Optional overrides for the client created from a lead"""
    name = serializers.CharField(max_length=255, required=False)
    company_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class CrmActivitySerializer(serializers.ModelSerializer):
    lead = AgencyRelatedField(queryset=Lead.objects.all(), required=False, allow_null=True)
    client = AgencyRelatedField(queryset=Client.objects.all(), required=False, allow_null=True)
    activity_date = serializers.DateTimeField(required=False)

    class Meta:
        model = CrmActivity
        fields = ['id', 'lead', 'client', 'activity_type', 'subject', 'description', 'activity_date', 'due_date',
                  'completed_date', 'status', 'outcome', 'assigned_to_id', 'created_by_id', 'created_at',
                  'updated_at']
        read_only_fields = ['id', 'created_by_id', 'created_at', 'updated_at']

    def validate(self, attrs):
        lead = attrs.get('lead', getattr(self.instance, 'lead', None))
        client = attrs.get('client', getattr(self.instance, 'client', None))
        if lead is None and client is None:
            raise serializers.ValidationError('An activity must belong to a lead or a client.')
        if attrs.get('status') == 'completed' and not attrs.get('completed_date'):
            if self.instance is None or self.instance.completed_date is None:
                attrs['completed_date'] = timezone.now()
        if self.instance is None:
            attrs.setdefault('activity_date', timezone.now())
        return attrs
