# clients/base_http_client.py
import requests
import time
import re

from typing import Dict, Any, Optional
from urllib.parse import urljoin
from abc import ABC
from dashcache.utils.log import app_logger
from dashcache.schemas.mutation import APIErrorBody
from dashcache.core.exceptions.exceptions import (
    NetworkUnavailableError,
    RemoteAPIError,
    ServerError,
    UnauthorizedError,
    ValidationFailedError,
)

REQUEST_ID_HEADER = 'Chain-Request-Id'


class BaseHTTPClient(ABC):
    """Base HTTP client with common functionalities like GET, POST, retries, and error handling.

    Every failure leaves this class as a `RemoteAPIError` subclass; callers
    never see a `requests` exception. Only network-level failures are retried,
    an HTTP error status is always surfaced on the first attempt.
    """

    USER_AGENT = 'dashcache/0.1'

    def __init__(self,
                 base_url: str,
                 api_key: Optional[str] = None,
                 timeout: int = 30, max_retries: int = 0,
                 retry_delay: float = 1.5,
                 content_type: Optional[str] = 'application/json',
                 accept: Optional[str] = 'application/json',
                 require_request_id: bool = True,
                 ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.content_type = content_type
        self.accept = accept
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.require_request_id = require_request_id
        self.session = requests.Session()

        # setup default headers
        self._setup_default_headers()

    def _setup_default_headers(self):
        """setup default headers for the client"""
        self.session.headers.update({
            'User-Agent': self.USER_AGENT,
            'Accept': self.accept,
            'Content-Type': self.content_type,
        })

        # add authentication header if api_key is provided
        if self.api_key:
            self._setup_authentication()

    def _setup_authentication(self):
        """setup authentication with API key (can be overridden)"""
        pass

    def _build_url(self, endpoint: str) -> str:
        """build full URL"""
        return urljoin(f"{self.base_url}/", endpoint.lstrip('/'))

    @staticmethod
    def _sanitize(error: Exception) -> str:
        # remove memory addresses like <HTTPSConnection(...) at 0x...>
        return re.sub(r'0x[0-9a-fA-F]+', '<ptr>', str(error))

    def _raise_for_status(self, response: requests.Response, body: Any, request_id: Optional[str]) -> None:
        status = response.status_code
        if status < 400:
            return

        err = APIErrorBody.model_validate(body) if APIErrorBody.is_error(body) else APIErrorBody(
            message=f"HTTP {status}"
        )
        if status == 401:
            exc_type = UnauthorizedError
        elif status >= 500:
            exc_type = ServerError
        else:
            exc_type = ValidationFailedError

        # 429 is a request the server wants repeated later
        temporary = err.temporary or status == 429
        raise exc_type(
            err.message,
            code=err.code,
            detail=err.detail,
            status=status,
            request_id=request_id,
            temporary=temporary,
            data=err.data,
        )

    def _parse(self, response: requests.Response, url: str) -> Any:
        request_id = response.headers.get(REQUEST_ID_HEADER)
        if self.require_request_id and not request_id:
            raise ServerError(
                f"{REQUEST_ID_HEADER} header is missing. There may be an issue "
                "with your proxy or network configuration.",
                status=response.status_code,
            )

        if response.status_code == 204:
            return {}

        try:
            body = response.json()
        except ValueError:
            app_logger.debug("request.parse_text", url=url, length=len(response.text))
            if response.status_code >= 400:
                body = None
            else:
                raise ServerError(
                    "Could not parse JSON response",
                    status=response.status_code,
                    request_id=request_id,
                ) from None

        self._raise_for_status(response, body, request_id)
        return body

    def _make_request(self, method: str, endpoint: str,
                      params: Optional[Dict] = None,
                      data: Optional[Any] = None,
                      headers: Optional[Dict] = None) -> Any:
        """do HTTP request with retries"""
        url = self._build_url(endpoint)
        request_headers = headers or {}

        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=data,
                    headers=request_headers,
                    timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                sanitized = self._sanitize(e)
                exc_type = type(e).__name__
                app_logger.error("request.failed", method=method, url=url, attempt=attempt + 1,
                                 exc_type=exc_type, error=sanitized)

                if attempt == self.max_retries:
                    raise NetworkUnavailableError(f"Fetch error: {sanitized}", code=exc_type) from e

                # exponential backoff
                wait_time = self.retry_delay * (2 ** attempt)
                time.sleep(wait_time)
                continue

            # debug log for non-success status codes (we'll still raise below)
            if response.status_code >= 400:
                app_logger.debug("request.status", method=method, url=url, status_code=response.status_code)

            return self._parse(response, url)

        raise RemoteAPIError(f"Failed to make request after {self.max_retries} attempts")

    def get(self, endpoint: str, params: Optional[Dict] = None,
            headers: Optional[Dict] = None) -> Any:
        """do GET request"""
        return self._make_request('GET', endpoint, params=params, headers=headers)

    def post(self, endpoint: str, data: Optional[Any] = None,
             headers: Optional[Dict] = None) -> Any:
        """do POST request"""
        return self._make_request('POST', endpoint, data=data, headers=headers)

    def close(self):
        """close HTTP session"""
        self.session.close()
