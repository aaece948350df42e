from rest_framework import serializers


def context_agency_id(context):
    """Agency id a serializer works for, from its context"""
    if context.get('agency_id') is not None:
        return context['agency_id']
    request = context.get('request')
    agency = getattr(request, 'agency', None) if request is not None else None
    return agency.id if agency is not None else None


class AgencyRelatedField(serializers.PrimaryKeyRelatedField):
    """Primary key field that only resolves rows of the serializer's agency"""

    def get_queryset(self):
        queryset = super().get_queryset()
        agency_id = context_agency_id(self.context)
        if agency_id is None:
            return queryset.none()
        return queryset.filter(agency_id=agency_id)
