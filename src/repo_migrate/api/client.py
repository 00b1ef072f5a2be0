"""Shared HTTP client for the remote services."""

import math
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin

import requests
from loguru import logger
from pydantic import BaseModel
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config.config import ServiceConfig
from .exceptions import (
    APIError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    TransientAPIError,
    ValidationError,
)
from .rate_limiter import RateLimiter

MAX_RETRY_WAIT = 60


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


class APIClient:
    """HTTP client with authentication, rate limiting and bounded retries.

    Transient failures (connection errors, timeouts, HTTP 5xx and 429) are
    retried with exponential backoff up to ``config.max_retries`` times.
    Authentication failures surface immediately.
    """

    service_name = 'api'
    user_agent = 'repo-migrate/0.1.0'

    def __init__(
        self,
        config: ServiceConfig,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize API client.

        Args:
            config: Service configuration
            session: Optional pre-built session, mostly for tests
            sleep: Function used to wait between retries
        """
        self.config = config
        self.base_url = config.api_url.rstrip('/')
        self.session = session or requests.Session()
        self.session.headers.update(
            {'Accept': 'application/json', 'User-Agent': self.user_agent}
        )
        self._configure_auth(self.session)

        self.rate_limiter = RateLimiter(config.rate_limit_per_second)
        self._sleep = sleep
        self._backoff = wait_exponential(
            multiplier=config.retry_delay,
            min=config.retry_delay,
            max=MAX_RETRY_WAIT,
        )
        self.logger = logger.bind(component=self.__class__.__name__)

    def _configure_auth(self, session: requests.Session) -> None:
        """Attach credentials to the session. Implemented by each service."""
        raise NotImplementedError

    def _connection_endpoint(self) -> str:
        """Endpoint used by :meth:`test_connection`."""
        raise NotImplementedError

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Absolute URLs (pagination links) are returned unchanged.
        """
        if endpoint.startswith(('http://', 'https://')):
            return endpoint
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _error(self, error_cls, message: str, response=None, **kwargs) -> APIError:
        return error_cls(
            f'{self.service_name}: {message}',
            status_code=getattr(response, 'status_code', None),
            response_data=_json_or_none(response) if response is not None else None,
            service=self.service_name,
            **kwargs,
        )

    def _error_message(self, response: requests.Response) -> str:
        error_data = _json_or_none(response)
        if isinstance(error_data, dict):
            for key in ('message', 'error', 'detail'):
                value = error_data.get(key)
                if isinstance(value, dict):
                    value = value.get('message')
                if value:
                    return f'HTTP {response.status_code}: {value}'
        return f'HTTP {response.status_code}: {response.text}'

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Raises:
            APIError: For various API errors
        """
        status = response.status_code

        # response.headers is case-insensitive; GitHub sends lowercase names
        if status == 429 or (
            status == 403
            and (
                response.headers.get('X-RateLimit-Remaining') == '0'
                or 'Retry-After' in response.headers
            )
        ):
            retry_after = parse_retry_after(response.headers.get('Retry-After'))
            raise self._error(
                RateLimitError,
                f'Rate limit exceeded. Retry after {retry_after} seconds',
                response,
                retry_after=retry_after,
            )

        if status in (401, 403):
            raise self._error(
                AuthenticationError, f'Authentication failed ({status})', response
            )

        if status == 404:
            raise self._error(NotFoundError, 'Resource not found', response)

        if status == 422:
            raise self._error(ValidationError, self._error_message(response), response)

        if status >= 500:
            raise self._error(TransientAPIError, self._error_message(response), response)

        if status >= 400:
            raise self._error(
                APIError,
                f'API request failed: {self._error_message(response)}',
                response,
            )

        # Parse response data
        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        return APIResponse(
            status_code=status,
            data=data,
            headers=dict(response.headers),
            success=200 <= status < 300,
        )

    def _retry_wait(self, retry_state) -> float:
        exc = retry_state.outcome.exception()
        if isinstance(exc, RateLimitError) and exc.retry_after:
            return min(exc.retry_after, MAX_RETRY_WAIT)
        return self._backoff(retry_state)

    def _log_retry(self, retry_state) -> None:
        self.logger.warning(
            f'Transient failure on attempt {retry_state.attempt_number}: '
            f'{retry_state.outcome.exception()}; retrying'
        )

    def _send(self, method: str, url: str, **kwargs) -> APIResponse:
        self.rate_limiter.acquire()
        try:
            response = self.session.request(
                method, url, timeout=self.config.timeout, **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise self._error(TransientAPIError, f'Network error: {e}')
        except requests.RequestException as e:
            raise self._error(APIError, f'Request error: {e}')
        return self._handle_response(response)

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
    ) -> APIResponse:
        """Make an API request, retrying transient failures.

        Args:
            method: HTTP method
            endpoint: API endpoint or absolute URL
            params: Query parameters
            data: JSON request body

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        kwargs: Dict[str, Any] = {}
        if params:
            kwargs['params'] = params
        if data is not None:
            kwargs['json'] = data

        retrying = Retrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=self._retry_wait,
            retry=retry_if_exception_type(TransientAPIError),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            return retrying(self._send, method, url, **kwargs)
        except TransientAPIError as e:
            self.logger.error(
                f'{method} {url} failed after {self.config.max_retries + 1} attempts: {e}'
            )
            raise

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        """Make GET request."""
        return self.request('GET', endpoint, params=params)

    def post(self, endpoint: str, data: Optional[Any] = None) -> APIResponse:
        """Make POST request."""
        return self.request('POST', endpoint, data=data)

    def put(self, endpoint: str, data: Optional[Any] = None) -> APIResponse:
        """Make PUT request."""
        return self.request('PUT', endpoint, data=data)

    def patch(self, endpoint: str, data: Optional[Any] = None) -> APIResponse:
        """Make PATCH request."""
        return self.request('PATCH', endpoint, data=data)

    def get_paginated(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        per_page: int = 100,
    ) -> List[Dict[str, Any]]:
        """Get all pages of an endpoint paginated through ``Link`` headers.

        Args:
            endpoint: API endpoint
            params: Query parameters
            per_page: Items per page

        Returns:
            List of all items from all pages
        """
        all_items: List[Dict[str, Any]] = []
        params = dict(params or {})
        params['per_page'] = per_page
        page = 1

        while True:
            response = self.get(endpoint, params={**params, 'page': page})

            items = response.data
            if not items:
                break

            all_items.extend(items)

            link = next(
                (v for k, v in response.headers.items() if k.lower() == 'link'), ''
            )
            if 'rel="next"' not in link:
                break

            page += 1

        self.logger.debug(f'Retrieved {len(all_items)} items from {endpoint}')
        return all_items

    def test_connection(self) -> bool:
        """Test connection and credentials.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get(self._connection_endpoint())
            return response.success
        except APIError as e:
            self.logger.error(f'Connection test failed: {e}')
            return False

    def close(self):
        """Close the client session."""
        self.session.close()
        self.logger.debug(f'{self.service_name} client session closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def _json_or_none(response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def parse_retry_after(value: Optional[str], default: int = 60) -> int:
    """Seconds to wait according to a ``Retry-After`` header.

    The header holds either a number of seconds or an HTTP date. Values that
    are neither fall back to ``default``.
    """
    if value is None:
        return default
    try:
        return max(0, int(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0, math.ceil((retry_at - datetime.now(timezone.utc)).total_seconds()))
