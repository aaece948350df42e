from rest_framework.renderers import JSONRenderer

from .responses import default_error_code, error_body, is_envelope, success_body


class EnvelopeJSONRenderer(JSONRenderer):
    """
    Wraps every payload as {"success", "data", "error"}.

    Views keep returning plain data; errors that were not raised through the
    exception handler (e.g. ``Response(serializer.errors, status=400)``) are
    converted here.
    """

    def render(self, data, accepted_media_type=None, renderer_context=None):
        renderer_context = renderer_context or {}
        response = renderer_context.get('response')
        status_code = getattr(response, 'status_code', 200)

        if status_code == 204:
            return b''

        if not is_envelope(data):
            if status_code >= 400:
                data = self._wrap_error(data, status_code)
            else:
                data = success_body(data)

        return super().render(data, accepted_media_type, renderer_context)

    def _wrap_error(self, data, status_code):
        code = default_error_code(status_code)
        if isinstance(data, dict):
            error = data.get('error')
            if isinstance(error, dict):
                return error_body(error.get('code', code), error.get('message', ''), error.get('details'))
            if isinstance(error, str):
                details = {k: v for k, v in data.items() if k != 'error'} or None
                return error_body(code, error, details)
            if 'detail' in data and len(data) == 1:
                return error_body(code, str(data['detail']))
            return error_body(code, 'Invalid input.', data)
        if isinstance(data, list):
            return error_body(code, 'Invalid input.', data)
        return error_body(code, str(data) if data is not None else 'Request failed.')
