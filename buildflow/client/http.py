"""
HTTP transport for the BuildFlow API.

Adds the bearer token and X-Agency-Database headers, unwraps the response
envelope and turns failures into ApiError.
"""
import logging
import time

import requests

from .base import DEFAULT_REQUEST_TIMEOUT, ApiError
from .session import SessionStore

logger = logging.getLogger(__name__)

AGENCY_DATABASE_HEADER = 'X-Agency-Database'

MAX_RATE_LIMIT_RETRIES = 2
DEFAULT_RETRY_AFTER = 5.0
MAX_RETRY_AFTER = 10.0

DATABASE_MISSING_CODES = frozenset(['AGENCY_DB_NOT_FOUND', '3D000'])
# missing column, missing relation, bad ORDER BY with DISTINCT
SCHEMA_ERROR_CODES = frozenset(['42703', '42P01', '42P10'])


def retry_after_seconds(response):
    """Seconds from the Retry-After header, capped at MAX_RETRY_AFTER"""
    try:
        seconds = float(response.headers.get('Retry-After') or DEFAULT_RETRY_AFTER)
    except (TypeError, ValueError):
        seconds = DEFAULT_RETRY_AFTER
    return max(0.0, min(seconds, MAX_RETRY_AFTER))


def is_schema_error(code, message):
    if code in SCHEMA_ERROR_CODES:
        return True
    message = (message or '').lower()
    if 'does not exist' in message and ('column' in message or 'relation' in message):
        return True
    return 'select distinct, order by expressions' in message


def parse_error(response, payload):
    """(code, message) from an error response in any of the shapes the API returns"""
    code = None
    message = None
    if isinstance(payload, dict):
        error = payload.get('error')
        if isinstance(error, dict):
            code = error.get('code')
            message = error.get('message')
        elif isinstance(error, str):
            message = error
        code = code or payload.get('code')
        message = message or payload.get('message') or payload.get('detail')
    if not message:
        message = f'API error: {response.status_code} {response.text[:200]}'
    return code, message


class HttpTransport:
    def __init__(self, base_url, store=None, timeout=DEFAULT_REQUEST_TIMEOUT, session=None):
        self.base_url = base_url.rstrip('/')
        self.store = store or SessionStore()
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})

    def build_headers(self, use_main_database=False):
        headers = {}
        if self.store.token:
            headers['Authorization'] = f'Bearer {self.store.token}'
        # system level calls (agencies, auth) go to the main database
        if self.store.agency_database and not use_main_database:
            headers[AGENCY_DATABASE_HEADER] = self.store.agency_database
        return headers

    def request(self, method, path, params=None, json=None, use_main_database=False, timeout=None):
        url = f"{self.base_url}/{path.lstrip('/')}"
        retry_count = 0
        while True:
            try:
                response = self.session.request(
                    method, url,
                    params=params,
                    json=json,
                    headers=self.build_headers(use_main_database),
                    timeout=timeout or self.timeout,
                )
            except requests.RequestException as e:
                logger.error(f"Request to {url} failed: {str(e)}")
                raise ApiError(
                    f'Unable to reach the API server at {self.base_url}. '
                    'Check that the backend is running and reachable.',
                    code='NETWORK_ERROR',
                ) from e

            if response.status_code == 429 and retry_count < MAX_RATE_LIMIT_RETRIES:
                delay = retry_after_seconds(response)
                retry_count += 1
                logger.warning(f"Rate limited on {path}, retrying in {delay}s "
                               f"(attempt {retry_count}/{MAX_RATE_LIMIT_RETRIES})")
                time.sleep(delay)
                continue

            return self._handle_response(response)

    def _handle_response(self, response):
        if response.status_code == 204 or not response.content:
            if response.ok:
                return None
            payload = None
        else:
            try:
                payload = response.json()
            except ValueError:
                payload = {'error': response.text}

        failed = isinstance(payload, dict) and payload.get('success') is False
        if response.ok and not failed:
            if isinstance(payload, dict) and 'success' in payload and 'data' in payload:
                return payload['data']
            return payload

        code, message = parse_error(response, payload)
        if code in DATABASE_MISSING_CODES and not is_schema_error(code, message):
            logger.warning('Agency database not found, clearing the stored session')
            self.store.clear()
        elif is_schema_error(code, message):
            logger.warning(f"Schema error: {message}")

        details = payload.get('error') if isinstance(payload, dict) else None
        raise ApiError(message, code=code, status_code=response.status_code, data=details)

    def get(self, path, params=None, **kwargs):
        return self.request('GET', path, params=params, **kwargs)

    def post(self, path, json=None, **kwargs):
        return self.request('POST', path, json=json, **kwargs)

    def patch(self, path, json=None, **kwargs):
        return self.request('PATCH', path, json=json, **kwargs)

    def delete(self, path, **kwargs):
        return self.request('DELETE', path, **kwargs)
