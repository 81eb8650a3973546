"""
HTTP transport used by the storage backends.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

import httpx

from ..config.constants import DEFAULT_HTTP_TIMEOUT

logger = logging.getLogger(__name__)

RequestBody = Union[str, bytes, Dict[str, Any], None]


@dataclass
class HttpResponse:
    """Status, headers and decoded body of an accepted response."""
    status: int
    headers: httpx.Headers
    data: Any


class HttpTransportError(Exception):
    """Base class for transport failures."""


class HttpStatusError(HttpTransportError):
    """The server answered with a status the caller did not accept."""

    def __init__(self, status: int, data: Any = None, headers: Optional[httpx.Headers] = None):
        super().__init__(f"HTTP status {status}")
        self.status = status
        self.data = data
        self.headers = headers or httpx.Headers()


class HttpConnectionError(HttpTransportError):
    """No response was received."""

    def __init__(self, message: str, timeout: bool = False, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.timeout = timeout
        self.cause = cause


class HttpTransport:
    """
    Thin wrapper around httpx.AsyncClient.

    Response types:
    - "json": body decoded as JSON (None for an empty body)
    - "bytes": raw body
    - "text": body decoded as text
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT
    ):
        """
        Initialize transport.

        Args:
            client: Pre-built client (tests inject one with a MockTransport)
            timeout: Request timeout in seconds, used when building our own client
        """
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        data: RequestBody = None,
        data_type: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        statuses: Optional[Sequence[int]] = None,
        response_type: str = "json"
    ) -> HttpResponse:
        """
        Issue a request.

        Args:
            url: Absolute URL
            method: HTTP method
            headers: Request headers
            data: str/bytes sent as-is, a dict sent form-encoded
            data_type: Content-Type for str/bytes bodies
            params: Query string parameters
            statuses: Accepted status codes (default: 200)
            response_type: "json", "bytes" or "text"

        Returns:
            Decoded response

        Raises:
            HttpStatusError: Status not in statuses
            HttpConnectionError: Network failure or timeout
        """
        statuses = statuses or (200,)
        request_headers = dict(headers or {})
        kwargs: Dict[str, Any] = {}

        if isinstance(data, dict):
            kwargs["data"] = data
        elif data is not None:
            kwargs["content"] = data
            if data_type:
                request_headers["Content-Type"] = data_type

        try:
            response = await self.client.request(
                method,
                url,
                headers=request_headers,
                params=params,
                **kwargs
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {url} timed out")
            raise HttpConnectionError(f"Request timed out: {url}", timeout=True, cause=e)
        except httpx.TransportError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise HttpConnectionError(f"Network error: {e}", cause=e)

        if response.status_code not in statuses:
            raise HttpStatusError(
                response.status_code,
                self._decode_error(response),
                response.headers,
            )

        return HttpResponse(
            status=response.status_code,
            headers=response.headers,
            data=self._decode(response, response_type),
        )

    @staticmethod
    def _decode(response: httpx.Response, response_type: str) -> Any:
        if response_type == "bytes":
            return response.content
        if response_type == "text":
            return response.text
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _decode_error(response: httpx.Response) -> Any:
        """Error bodies are JSON for well-behaved APIs, text otherwise."""
        if not response.content:
            return None
        try:
            return json.loads(response.content)
        except ValueError:
            return response.text
