"""
HTTP Transport
==============

Thin aiohttp wrapper used by the provider adapters.

Adapters describe a call as an ``HttpRequest`` value (URL, headers, query
parameters, JSON or multipart body, timeout); the transport executes it and
returns the raw status and body. Network failures and timeouts are converted
into ``TransportError`` so callers never see aiohttp exceptions.

Usage:
    transport = HttpTransport()
    response = await transport.send(HttpRequest(url=..., json_body={...}))

    async with transport.stream(request) as stream:
        if stream.ok:
            async for chunk in stream.iter_chunks():
                ...
"""

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Union

import aiohttp

from loneless.llm.errors import DecodeError, TransportError
from loneless.utils.logger import get_logger
from loneless.utils.security import sanitize_for_logging

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestTimeout:
    """Total and optional connect timeout for one request, in seconds."""

    total: float
    connect: Optional[float] = None

    def to_client_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.total, connect=self.connect)


DEFAULT_TIMEOUT = RequestTimeout(total=60.0)
# Vision calls are slower than plain chat.
VISION_TIMEOUT = RequestTimeout(total=120.0, connect=60.0)


@dataclass(frozen=True)
class MultipartField:
    """One field of a multipart/form-data body."""

    name: str
    value: Union[str, bytes]
    filename: Optional[str] = None
    content_type: Optional[str] = None


@dataclass
class HttpRequest:
    """
    Description of an outbound HTTP call.

    Exactly one of ``json_body`` and ``form_fields`` is normally set.
    """

    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    json_body: Optional[dict[str, Any]] = None
    form_fields: Optional[list[MultipartField]] = None
    timeout: RequestTimeout = DEFAULT_TIMEOUT


@dataclass
class HttpResponse:
    """Status and raw body of a completed call."""

    status: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON, raising DecodeError on malformed content."""
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError) as e:
            raise DecodeError(f"Response is not valid JSON: {e}", raw_body=self.text) from e


class StreamResponse:
    """An open streaming response; the body is consumed chunk by chunk."""

    def __init__(self, response: aiohttp.ClientResponse) -> None:
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def read(self) -> bytes:
        """Read the remaining body at once (used for error responses)."""
        try:
            return await self._response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to read response body: {e}") from e

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield body chunks as they arrive."""
        try:
            async for chunk in self._response.content.iter_any():
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Stream interrupted: {e}") from e


class HttpTransport:
    """
    Async HTTP client for provider calls.

    The aiohttp session is created lazily on first use and can be injected
    for tests.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    @staticmethod
    def _request_kwargs(request: HttpRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "method": request.method,
            "url": request.url,
            "headers": request.headers,
            "timeout": request.timeout.to_client_timeout(),
        }
        if request.params:
            kwargs["params"] = request.params
        if request.form_fields is not None:
            form = aiohttp.FormData()
            for f in request.form_fields:
                form.add_field(
                    f.name,
                    f.value,
                    filename=f.filename,
                    content_type=f.content_type,
                )
            kwargs["data"] = form
        elif request.json_body is not None:
            kwargs["data"] = json.dumps(request.json_body, ensure_ascii=False).encode("utf-8")
        return kwargs

    async def send(self, request: HttpRequest) -> HttpResponse:
        """
        Execute a request and read the whole body.

        Raises:
            TransportError: On connection failures and timeouts.
        """
        session = await self._get_session()
        logger.debug(
            "HTTP request",
            method=request.method,
            url=request.url,
            params=sanitize_for_logging(request.params),
            headers=sanitize_for_logging(request.headers),
        )
        try:
            async with session.request(**self._request_kwargs(request)) as response:
                body = await response.read()
                return HttpResponse(status=response.status, body=body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "HTTP request failed",
                url=request.url,
                params=sanitize_for_logging(request.params),
                error=str(e),
            )
            raise TransportError(f"Request to {request.url} failed: {e}") from e

    @asynccontextmanager
    async def stream(self, request: HttpRequest) -> AsyncIterator[StreamResponse]:
        """
        Open a request whose body is read incrementally.

        Raises:
            TransportError: If the connection cannot be established.
        """
        session = await self._get_session()
        try:
            response = await session.request(**self._request_kwargs(request))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "HTTP stream failed to open",
                url=request.url,
                params=sanitize_for_logging(request.params),
                error=str(e),
            )
            raise TransportError(f"Request to {request.url} failed: {e}") from e
        try:
            yield StreamResponse(response)
        finally:
            response.release()

    async def close(self) -> None:
        """Close the underlying session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        logger.debug("HTTP transport closed")
