import logging

from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from buildflow.agencies.permissions import RequireAgencyContext
from buildflow.core.responses import error_response

from . import queries

logger = logging.getLogger('buildflow.reports')


def _int_param(request, name):
    value = request.query_params.get(name)
    return int(value) if value and value.isdigit() else None


def _date_param(request, name):
    """Parsed date, None when absent, False when malformed"""
    value = request.query_params.get(name)
    if not value:
        return None
    try:
        return parse_date(value) or False
    except ValueError:
        return False


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def inventory_summary(request):
    """Stock totals, low/out of stock counts and recent movements"""
    warehouse_id = _int_param(request, 'warehouse')
    logger.info(f"User {request.user.email} requested inventory summary (warehouse={warehouse_id})")
    return Response(queries.inventory_summary(request.agency.id, warehouse_id=warehouse_id))


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def stock_value(request):
    """Stock value at unit cost"""
    warehouse_id = _int_param(request, 'warehouse')
    return Response(queries.stock_value(request.agency.id, warehouse_id=warehouse_id))


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def procurement_summary(request):
    """Purchase order totals by status and top suppliers"""
    date_from = _date_param(request, 'date_from')
    date_to = _date_param(request, 'date_to')
    if date_from is False or date_to is False:
        return error_response('VALIDATION_ERROR', 'Dates must use the YYYY-MM-DD format.', status.HTTP_400_BAD_REQUEST)
    logger.info(f"User {request.user.email} requested procurement summary ({date_from} to {date_to})")
    return Response(queries.procurement_summary(request.agency.id, date_from=date_from, date_to=date_to))


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def crm_pipeline(request):
    """Lead pipeline by stage"""
    assigned_to_id = _int_param(request, 'assigned_to')
    return Response(queries.crm_pipeline(request.agency.id, assigned_to_id=assigned_to_id))
