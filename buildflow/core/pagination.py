from django.core.paginator import Paginator
from django.utils import timezone
from rest_framework.response import Response

DEFAULT_PAGE_SIZE = 15
MAX_PAGE_SIZE = 200


def _positive_int(value, default):
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def paginated_response(request, queryset, serializer_class, context=None, default_limit=DEFAULT_PAGE_SIZE):
    """
    Paginate with ?page=&limit= and return the list shape used by every list
    endpoint: {results, count, next, previous, page, page_size, total_pages}
    """
    page = _positive_int(request.query_params.get('page'), 1)
    limit = min(_positive_int(request.query_params.get('limit'), default_limit), MAX_PAGE_SIZE)

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)

    serializer = serializer_class(page_obj, many=True, context=context or {'request': request})
    response = Response({
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })
    response['Cache-Control'] = 'private, max-age=10, must-revalidate'
    response['X-Data-Version'] = timezone.now().isoformat()
    return response
