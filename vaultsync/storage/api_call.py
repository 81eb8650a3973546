"""
Authenticated API calls with uniform error normalization.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, Optional, Sequence

from .oauth import OAuthSession
from .transport import HttpConnectionError, HttpResponse, HttpStatusError, HttpTransport
from ..exceptions import (
    AuthenticationError,
    NetworkError,
    StorageApiError,
    StorageError,
    StorageFileNotFoundError,
    create_error_context,
)

logger = logging.getLogger(__name__)

ErrorClassifier = Callable[[str, HttpStatusError, str], Optional[StorageError]]
UrlBuilder = Callable[[str, Optional[str]], str]

_HEADER_UNSAFE = re.compile("[\u007f-\U0010ffff]")


def _escape_char(match: "re.Match[str]") -> str:
    code = ord(match.group())
    if code > 0xFFFF:
        # UTF-16 surrogate pair, as a JavaScript string would hold it
        code -= 0x10000
        return "\\u%04x\\u%04x" % (0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF))
    return "\\u%04x" % code


def encode_json_http_header(value: Any) -> str:
    """
    Serialize value as compact JSON that is safe for an HTTP header.

    Every character from U+007F up is written as a \\uXXXX escape.
    """
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return _HEADER_UNSAFE.sub(_escape_char, text)


def is_not_found_error(body: Any) -> bool:
    """True when an error body carries a path discriminator of not_found."""
    candidates = [body]
    if isinstance(body, dict):
        candidates.append(body.get("error"))

    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        for key in ("path", "path_lookup"):
            path_data = candidate.get(key)
            if isinstance(path_data, dict) and path_data.get(".tag") == "not_found":
                return True
    return False


class ApiCallExecutor:
    """
    Dispatches provider API calls on behalf of one backend.

    Ensures an access token first, retries once after a 401 with a
    refreshed token, and maps every failure onto the storage error classes.
    """

    def __init__(
        self,
        backend: str,
        session: OAuthSession,
        transport: HttpTransport,
        url_builder: Optional[UrlBuilder] = None,
        arg_header: Optional[str] = None,
        classify_error: Optional[ErrorClassifier] = None
    ):
        """
        Initialize executor.

        Args:
            backend: Backend name for logs and error context
            session: OAuth session providing access tokens
            transport: HTTP transport
            url_builder: Builds a URL from (method, host) when no url is given
            arg_header: Header carrying JSON-encoded call arguments
            classify_error: Provider hook mapping an error response to a
                specific storage error, or None to fall through
        """
        self.backend = backend
        self.session = session
        self.transport = transport
        self.url_builder = url_builder
        self.arg_header = arg_header
        self.classify_error = classify_error

    async def call(
        self,
        method: str,
        *,
        url: Optional[str] = None,
        host: Optional[str] = None,
        http_method: str = "POST",
        params: Optional[Dict[str, Any]] = None,
        data: Any = None,
        api_arg: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        statuses: Optional[Sequence[int]] = None,
        response_type: str = "json",
        path: str = ""
    ) -> HttpResponse:
        """
        Execute an API call.

        Args:
            method: Provider method identifier, e.g. "files/upload"
            url: Full URL; built from method and host when omitted
            host: Host hint passed to the url builder
            http_method: HTTP verb
            params: Query parameters
            data: dict (sent as JSON), str (JSON text) or bytes (raw)
            api_arg: Arguments sent in the arg header
            headers: Extra headers
            statuses: Accepted status codes
            response_type: "json", "bytes" or "text"
            path: Path the call concerns, for errors and logs

        Returns:
            Response payload and headers
        """
        if url is None:
            if self.url_builder is None:
                raise ValueError("Either url or url_builder is required")
            url = self.url_builder(method, host)

        request_headers = dict(headers or {})
        data_type = None
        if api_arg is not None:
            if not self.arg_header:
                raise ValueError(f"{self.backend} does not support header arguments")
            request_headers[self.arg_header] = encode_json_http_header(api_arg)
        if isinstance(data, dict):
            data = json.dumps(data)
        if isinstance(data, str):
            data_type = "application/json"
        elif isinstance(data, bytes):
            data_type = "application/octet-stream"

        request = dict(
            url=url,
            method=http_method,
            headers=request_headers,
            data=data,
            data_type=data_type,
            params=params,
            statuses=statuses,
            response_type=response_type,
        )

        token = await self.session.get_access_token()
        try:
            return await self._send(method, token, request, path)
        except HttpStatusError as e:
            if e.status != 401:
                raise self._normalize_error(method, e, path) from e

        # Exactly one retry, with a refreshed token
        token = await self.session.handle_unauthorized(token)
        try:
            return await self._send(method, token, request, path)
        except HttpStatusError as e:
            raise self._normalize_error(method, e, path) from e

    async def _send(self, method: str, token: str, request: Dict[str, Any], path: str) -> HttpResponse:
        headers = dict(request["headers"])
        headers["Authorization"] = f"Bearer {token}"
        try:
            return await self.transport.request(**{**request, "headers": headers})
        except HttpConnectionError as e:
            logger.error(f"{self.backend}: network error in {method}: {e}")
            raise NetworkError(
                str(e),
                context=create_error_context(operation=method, backend=self.backend, path=path),
                cause=e,
                timeout=e.timeout,
            )

    def _normalize_error(self, method: str, error: HttpStatusError, path: str) -> StorageError:
        context = create_error_context(
            operation=method,
            backend=self.backend,
            path=path,
            status=error.status,
        )

        if self.classify_error:
            classified = self.classify_error(method, error, path)
            if classified is not None:
                classified.context = context
                return classified

        if is_not_found_error(error.data):
            logger.info(f"{self.backend}: file not found in {method}")
            return StorageFileNotFoundError(path, context=context)

        if error.status == 401:
            logger.error(f"{self.backend}: {method} unauthorized after token refresh")
            return AuthenticationError("Access token rejected", context=context, cause=error)

        logger.error(f"{self.backend}: API error in {method}, status {error.status}: {error.data}")
        return StorageApiError(error.status, context=context)
