"""
Base service for talking to the BuildFlow API: retries, timeouts and
the {success, data, error} result shape.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0

NETWORK_ERROR_MESSAGE = 'Network error. Please check your connection and try again.'
SERVER_ERROR_MESSAGE = 'Something went wrong on our end. Please try again later.'

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix='buildflow-client')


@dataclass
class ApiResponse:
    data: Any = None
    error: Optional[str] = None
    success: bool = False
    error_code: Optional[str] = None


class ApiError(Exception):
    """A failed API call. ``code`` is the envelope error code when there is one."""

    def __init__(self, message, code=None, status_code=None, data=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.data = data

    def __repr__(self):
        return f"ApiError({self.message!r}, code={self.code!r}, status_code={self.status_code!r})"


@dataclass
class RetryConfig:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2

    def delay_for(self, attempt):
        """Seconds to wait after the 0-based ``attempt`` failed"""
        return min(self.initial_delay * self.backoff_factor ** attempt, self.max_delay)


class BaseApiService:
    """
    Parent of the typed services.

    ``execute`` is the entry point services use: it runs an operation with
    retries inside a timeout and folds any failure into an ``ApiResponse``.
    """
    retry_config = RetryConfig()
    default_timeout = DEFAULT_REQUEST_TIMEOUT

    def __init__(self, transport):
        self.http = transport

    @property
    def session(self):
        return self.http.store

    def with_retry(self, operation: Callable[[], Any], retries: Optional[int] = None):
        max_retries = self.retry_config.max_attempts if retries is None else retries
        last_error = None

        for attempt in range(max_retries + 1):
            try:
                return operation()
            except Exception as e:
                # client errors will not change on a second try
                if isinstance(e, ApiError) and e.status_code and e.status_code < 500:
                    raise
                last_error = e
                if attempt == max_retries:
                    break
                delay = self.retry_config.delay_for(attempt)
                logger.warning(f"Attempt {attempt + 1} of {max_retries + 1} failed ({e}), retrying in {delay}s")
                time.sleep(delay)

        raise last_error

    def with_timeout(self, operation: Callable[[], Any], timeout: Optional[float] = None):
        future = _executor.submit(operation)
        try:
            return future.result(timeout=timeout or self.default_timeout)
        except FuturesTimeout:
            future.cancel()
            raise ApiError(NETWORK_ERROR_MESSAGE, code='TIMEOUT')

    def execute(self, operation: Callable[[], Any], retries: Optional[int] = None,
                timeout: Optional[float] = None) -> ApiResponse:
        try:
            result = self.with_timeout(lambda: self.with_retry(operation, retries), timeout)
        except ApiError as e:
            logger.error(f"{self.__class__.__name__} request failed: {e.code} {e.message}")
            return ApiResponse(data=None, error=e.message, success=False, error_code=e.code)
        except Exception as e:
            logger.exception(f"{self.__class__.__name__} request failed: {str(e)}")
            return ApiResponse(data=None, error=str(e) or SERVER_ERROR_MESSAGE, success=False)
        return ApiResponse(data=result, error=None, success=True)
