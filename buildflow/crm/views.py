import logging

from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from buildflow.agencies.context import scoped, tenant_alias
from buildflow.agencies.permissions import RequireAgencyContext
from buildflow.core.pagination import paginated_response
from buildflow.core.permissions import role_denied
from buildflow.core.utils import create_audit_log

from .filters import ClientFilter, CrmActivityFilter, LeadFilter
from .models import Client, CrmActivity, Lead, LeadSource
from .serializers import (
    ClientSerializer, CrmActivitySerializer, LeadConvertSerializer, LeadSerializer, LeadSourceSerializer,
)
from .services import convert_lead

logger = logging.getLogger('buildflow.crm')


# Client endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def client_list_create(request):
    """List clients or create a new client"""
    if request.method == 'GET':
        filterset = ClientFilter(request.query_params, queryset=scoped(Client, request))
        return paginated_response(request, filterset.qs, ClientSerializer)

    serializer = ClientSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            client = serializer.save(agency_id=request.agency.id, created_by_id=request.user.id)
        create_audit_log(request=request, action='create', model_name='Client', object_id=client.id,
                         object_name=str(client))
        return Response(ClientSerializer(client).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def client_detail(request, pk):
    """Retrieve, update or delete a client"""
    client = get_object_or_404(scoped(Client, request), pk=pk)

    if request.method == 'GET':
        return Response(ClientSerializer(client).data)

    if request.method == 'PATCH':
        serializer = ClientSerializer(client, data=request.data, partial=True, context={'request': request})
        if serializer.is_valid():
            with transaction.atomic(using=tenant_alias()):
                serializer.save()
            create_audit_log(request=request, action='update', model_name='Client', object_id=client.id,
                             object_name=str(client), changes={'new': request.data})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    denied = role_denied(request, 'project_manager')
    if denied:
        return denied
    client_id, client_name = client.id, str(client)
    with transaction.atomic(using=tenant_alias()):
        client.delete()
    create_audit_log(request=request, action='delete', model_name='Client', object_id=client_id,
                     object_name=client_name)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Lead source endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def lead_source_list_create(request):
    """List lead sources or add one"""
    if request.method == 'GET':
        sources = scoped(LeadSource, request)
        is_active = request.query_params.get('is_active')
        if is_active is not None:
            sources = sources.filter(is_active=is_active.lower() == 'true')
        return Response(LeadSourceSerializer(sources, many=True).data)

    serializer = LeadSourceSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            source = serializer.save(agency_id=request.agency.id)
        create_audit_log(request=request, action='create', model_name='LeadSource', object_id=source.id,
                         object_name=source.name)
        return Response(LeadSourceSerializer(source).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def lead_source_detail(request, pk):
    source = get_object_or_404(scoped(LeadSource, request), pk=pk)

    if request.method == 'GET':
        return Response(LeadSourceSerializer(source).data)

    serializer = LeadSourceSerializer(source, data=request.data, partial=True, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Lead endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def lead_list_create(request):
    """List leads or create a new lead"""
    if request.method == 'GET':
        queryset = scoped(Lead, request).select_related('source', 'converted_client')
        filterset = LeadFilter(request.query_params, queryset=queryset)
        return paginated_response(request, filterset.qs, LeadSerializer)

    serializer = LeadSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            lead = serializer.save(agency_id=request.agency.id, created_by_id=request.user.id)
        create_audit_log(request=request, action='create', model_name='Lead', object_id=lead.id,
                         object_name=lead.company_name, object_reference=lead.lead_number)
        return Response(LeadSerializer(lead).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def lead_detail(request, pk):
    """Retrieve, update (including stage changes) or delete a lead"""
    lead = get_object_or_404(scoped(Lead, request).select_related('source', 'converted_client'), pk=pk)

    if request.method == 'GET':
        return Response(LeadSerializer(lead).data)

    if request.method == 'PATCH':
        old_status = lead.status
        serializer = LeadSerializer(lead, data=request.data, partial=True, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        with transaction.atomic(using=tenant_alias()):
            lead = serializer.save()
        action = 'status_change' if lead.status != old_status else 'update'
        if action == 'status_change':
            logger.info(f"Lead {lead.lead_number} moved from {old_status} to {lead.status}")
        create_audit_log(request=request, action=action, model_name='Lead', object_id=lead.id,
                         object_name=lead.company_name, object_reference=lead.lead_number,
                         changes={'old': {'status': old_status}, 'new': request.data})
        return Response(LeadSerializer(lead).data)

    denied = role_denied(request, 'project_manager')
    if denied:
        return denied
    lead_id, lead_number = lead.id, lead.lead_number
    with transaction.atomic(using=tenant_alias()):
        lead.delete()
    create_audit_log(request=request, action='delete', model_name='Lead', object_id=lead_id,
                     object_reference=lead_number)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def lead_convert(request, pk):
    """Create a client from a lead and mark the lead won"""
    lead = get_object_or_404(scoped(Lead, request), pk=pk)
    serializer = LeadConvertSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    client = convert_lead(lead, created_by_id=request.user.id, overrides=serializer.validated_data)
    create_audit_log(request=request, action='lead_convert', model_name='Lead', object_id=lead.id,
                     object_name=lead.company_name, object_reference=lead.lead_number,
                     changes={'client_id': client.id})
    return Response({
        'lead': LeadSerializer(lead).data,
        'client': ClientSerializer(client).data,
    }, status=status.HTTP_201_CREATED)


# Activity endpoints
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def activity_list_create(request):
    """List CRM activities or log a new one"""
    if request.method == 'GET':
        filterset = CrmActivityFilter(request.query_params, queryset=scoped(CrmActivity, request))
        return paginated_response(request, filterset.qs, CrmActivitySerializer)

    serializer = CrmActivitySerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic(using=tenant_alias()):
            activity = serializer.save(agency_id=request.agency.id, created_by_id=request.user.id)
        create_audit_log(request=request, action='create', model_name='CrmActivity', object_id=activity.id,
                         object_name=activity.subject)
        return Response(CrmActivitySerializer(activity).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def activity_detail(request, pk):
    activity = get_object_or_404(scoped(CrmActivity, request), pk=pk)

    if request.method == 'GET':
        return Response(CrmActivitySerializer(activity).data)

    if request.method == 'PATCH':
        serializer = CrmActivitySerializer(activity, data=request.data, partial=True, context={'request': request})
        if serializer.is_valid():
            with transaction.atomic(using=tenant_alias()):
                serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    with transaction.atomic(using=tenant_alias()):
        activity.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)
