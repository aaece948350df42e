import logging

from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from buildflow.core.permissions import IsSuperAdmin, user_role
from buildflow.core.responses import error_response
from buildflow.core.utils import create_audit_log, get_request_agency

from .models import Agency
from .provisioning import provision_agency_database
from .serializers import AgencyCreateSerializer, AgencySerializer

logger = logging.getLogger('buildflow.agencies')


@api_view(['GET'])
@permission_classes([AllowAny])
def check_domain(request):
    """Check whether an agency domain is still free"""
    domain = request.query_params.get('domain', '').strip().lower()
    if not domain:
        return error_response('VALIDATION_ERROR', 'domain is required', status.HTTP_400_BAD_REQUEST)
    taken = Agency.objects.filter(domain=domain).exists()
    return Response({'domain': domain, 'available': not taken})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def agency_list_create(request):
    """List all agencies or create and provision a new one"""
    if request.method == 'GET':
        agencies = Agency.objects.all()
        is_active = request.query_params.get('is_active')
        if is_active is not None:
            agencies = agencies.filter(is_active=is_active.lower() == 'true')
        serializer = AgencySerializer(agencies, many=True)
        return Response(serializer.data)

    serializer = AgencyCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    with transaction.atomic():
        agency = serializer.save()
    provisioning = provision_agency_database(agency)
    logger.info(f"Agency {agency.name} created with database {agency.database_name}")
    create_audit_log(
        request=request,
        action='agency_provision',
        model_name='Agency',
        object_id=agency.id,
        object_name=agency.name,
        object_reference=agency.database_name,
        changes=provisioning,
        agency=agency,
    )
    data = AgencySerializer(agency).data
    data['provisioning'] = provisioning
    return Response(data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def agency_detail(request, pk):
    """Retrieve or update an agency"""
    agency = get_object_or_404(Agency, pk=pk)
    is_super_admin = user_role(request.user) == 'super_admin'

    if not is_super_admin and request.user.agency_id != agency.id:
        return error_response('FORBIDDEN', 'You do not have access to this agency.', status.HTTP_403_FORBIDDEN)

    if request.method == 'GET':
        return Response(AgencySerializer(agency).data)

    if not is_super_admin:
        return error_response('FORBIDDEN', 'Super admin access required.', status.HTTP_403_FORBIDDEN)

    old_values = {'name': agency.name, 'is_active': agency.is_active,
                  'subscription_plan': agency.subscription_plan}
    serializer = AgencySerializer(agency, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        create_audit_log(
            request=request,
            action='update',
            model_name='Agency',
            object_id=agency.id,
            object_name=agency.name,
            changes={'old': old_values, 'new': request.data},
            agency=agency,
        )
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def current_agency(request):
    """Agency of the current request"""
    agency = get_request_agency(request)
    if agency is None:
        return error_response('RBAC_NO_AGENCY_CONTEXT', 'No agency context for this user.', status.HTTP_403_FORBIDDEN)
    if user_role(request.user) != 'super_admin' and request.user.agency_id != agency.id:
        return error_response('RBAC_AGENCY_MISMATCH', 'Agency database does not match the authenticated user.',
                              status.HTTP_403_FORBIDDEN)
    return Response(AgencySerializer(agency).data)
