import json
import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from buildflow.agencies.permissions import RequireAgencyContext
from buildflow.core.responses import error_response
from buildflow.core.utils import create_audit_log

from .builder import QueryBuilderError
from .service import RecordService

logger = logging.getLogger('buildflow.records')

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 500


def _service(request):
    return RecordService(agency_id=request.agency.id)


def _json_param(request, name, expected_type):
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        raise QueryBuilderError(f'{name} must be valid JSON')
    if not isinstance(value, expected_type):
        raise QueryBuilderError(f'{name} has the wrong shape')
    return value


def _int_param(value, default, maximum=None):
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    if value < 1:
        return default
    return min(value, maximum) if maximum else value


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def record_list_create(request, table):
    """Paginated select, or insert one record / a list of records"""
    service = _service(request)

    if request.method == 'GET':
        result = service.get_paginated(
            table,
            page=_int_param(request.query_params.get('page'), 1),
            page_size=_int_param(request.query_params.get('page_size'), DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE),
            select=request.query_params.get('select', '*'),
            where=_json_param(request, 'where', dict),
            filters=_json_param(request, 'filters', list),
            order_by=request.query_params.get('order_by', ''),
        )
        return Response(result)

    data = request.data
    if isinstance(data, list):
        rows = service.batch_insert(table, data)
        create_audit_log(request=request, action='create', model_name=table,
                         object_id=','.join(str(row.get('id')) for row in rows)[:100],
                         changes={'count': len(rows)})
        return Response(rows, status=status.HTTP_201_CREATED)
    if not isinstance(data, dict) or not data:
        return error_response('VALIDATION_ERROR', 'Request body must be an object or a list of objects.',
                              status.HTTP_400_BAD_REQUEST)

    row = service.insert_record(table, dict(data))
    create_audit_log(request=request, action='create', model_name=table, object_id=row.get('id'))
    return Response(row, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def record_query(request, table):
    """Select with a JSON body {select, where, filters, order_by, limit, offset}"""
    body = request.data if isinstance(request.data, dict) else {}
    where = body.get('where')
    filters = body.get('filters')
    if where is not None and not isinstance(where, dict):
        raise QueryBuilderError('where must be an object')
    if filters is not None and not isinstance(filters, list):
        raise QueryBuilderError('filters must be a list')

    rows = _service(request).select_records(
        table,
        select=body.get('select', '*'),
        where=where,
        filters=filters,
        order_by=body.get('order_by', ''),
        limit=body.get('limit'),
        offset=body.get('offset'),
    )
    return Response(rows)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def record_count(request, table):
    count = _service(request).count_records(
        table,
        where=_json_param(request, 'where', dict),
        filters=_json_param(request, 'filters', list),
    )
    return Response({'count': count})


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def record_detail(request, table, record_id):
    """Update or delete one record by id"""
    service = _service(request)

    if request.method == 'PATCH':
        if not isinstance(request.data, dict) or not request.data:
            return error_response('VALIDATION_ERROR', 'Request body must be a non-empty object.',
                                  status.HTTP_400_BAD_REQUEST)
        row = service.update_record(table, dict(request.data), {'id': record_id})
        create_audit_log(request=request, action='update', model_name=table, object_id=record_id,
                         changes=request.data)
        return Response(row)

    deleted = service.delete_record(table, {'id': record_id})
    if not deleted:
        return error_response('NOT_FOUND', f'No {table} record with id {record_id}.', status.HTTP_404_NOT_FOUND)
    create_audit_log(request=request, action='delete', model_name=table, object_id=record_id)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequireAgencyContext])
def record_upsert(request, table):
    """Insert or update on conflict with {unique_key, data}"""
    body = request.data if isinstance(request.data, dict) else {}
    unique_key = body.get('unique_key')
    data = body.get('data')
    if not unique_key or not isinstance(data, dict) or not data:
        return error_response('VALIDATION_ERROR', 'unique_key and data are required.', status.HTTP_400_BAD_REQUEST)

    row = _service(request).upsert_record(table, data, unique_key)
    create_audit_log(request=request, action='update', model_name=table,
                     object_id=(row or {}).get('id', ''), changes={'upsert': unique_key})
    return Response(row)
