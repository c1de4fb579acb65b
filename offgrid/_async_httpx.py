from __future__ import annotations

import ssl
import types
import typing as t
from typing import AsyncIterable, AsyncIterator, Union, cast, overload

from offgrid._clients import Clients
from offgrid._config import CacheConfig
from offgrid._core._headers import Headers
from offgrid._core._storages._async_base import AsyncBaseStorage
from offgrid._core.models import Request, RequestMetadata, Response, extract_metadata_from_headers
from offgrid._exceptions import NetworkError
from offgrid._utils import filter_mapping, make_async_iterator
from offgrid._worker import AsyncCacheWorker

try:
    import httpx
except ImportError as e:
    raise ImportError(
        "httpx is required to use offgrid.httpx module. "
        "Please install offgrid with the 'httpx' extra, "
        "e.g., 'pip install offgrid[httpx]'."
    ) from e

if t.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self


@overload
def _internal_to_httpx(
    value: Request,
) -> httpx.Request: ...
@overload
def _internal_to_httpx(
    value: Response,
) -> httpx.Response: ...
def _internal_to_httpx(
    value: Union[Request, Response],
) -> Union[httpx.Request, httpx.Response]:
    """
    Convert internal Request/Response to httpx.Request/httpx.Response.
    """
    if isinstance(value, Request):
        return httpx.Request(
            method=value.method,
            url=value.url,
            headers=value.headers.multi_items(),
            stream=_IteratorStream(value.stream),
            extensions=dict(value.metadata),
        )
    return httpx.Response(
        status_code=value.status_code,
        headers=value.headers.multi_items(),
        stream=_IteratorStream(value._aiter_stream()),
        extensions=dict(value.metadata),
    )


@overload
def _httpx_to_internal(
    value: httpx.Request,
) -> Request: ...
@overload
def _httpx_to_internal(
    value: httpx.Response,
) -> Response: ...
def _httpx_to_internal(
    value: Union[httpx.Request, httpx.Response],
) -> Union[Request, Response]:
    """
    Convert httpx.Request/httpx.Response to internal Request/Response.
    """
    headers = Headers.from_pairs(
        (key, val) for key, val in value.headers.multi_items() if key.lower() != "transfer-encoding"
    )
    if isinstance(value, httpx.Request):
        metadata = extract_metadata_from_headers(headers)
        extension_metadata = RequestMetadata(
            offgrid_destination=value.extensions.get("offgrid_destination"),
            offgrid_mode=value.extensions.get("offgrid_mode"),
        )
        for key, val in extension_metadata.items():
            if key in value.extensions:
                metadata[key] = val  # type: ignore

        try:
            stream = make_async_iterator([value.content])
        except httpx.RequestNotRead:
            stream = cast(AsyncIterator[bytes], value.stream)

        return Request(
            method=value.method,
            url=str(value.url),
            headers=headers,
            stream=stream,
            metadata=metadata,
        )

    if "content-encoding" in headers:
        # The content is already decoded, so the stored copy must not claim an encoding.
        headers = Headers(
            {
                **filter_mapping(headers._headers, ["content-encoding", "content-length"]),
                "content-length": str(len(value.content)),
            }
        )
    return Response(
        status_code=value.status_code,
        headers=headers,
        stream=make_async_iterator([value.content]),
        metadata={},
    )


class _IteratorStream(httpx.AsyncByteStream):
    def __init__(self, iterator: AsyncIterator[bytes]) -> None:
        self.iterator = iterator

    async def __aiter__(self) -> AsyncIterator[bytes]:
        assert isinstance(self.iterator, (AsyncIterator, AsyncIterable))
        async for chunk in self.iterator:
            yield chunk


class AsyncCacheTransport(httpx.AsyncBaseTransport):
    """
    An HTTPX transport that routes every request through an AsyncCacheWorker.

    The worker starts passing requests through the cache once its generation is
    active, see :meth:`start`.
    """

    def __init__(
        self,
        next_transport: httpx.AsyncBaseTransport,
        config: CacheConfig | None = None,
        storage: AsyncBaseStorage | None = None,
        clients: Clients | None = None,
    ) -> None:
        self.next_transport = next_transport
        self.worker = AsyncCacheWorker(
            send_request=self.request_sender,
            config=config,
            storage=storage,
            clients=clients,
        )
        self.storage = self.worker.storage

    async def __aenter__(self) -> "Self":
        await self.next_transport.__aenter__()
        await self.worker.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: types.TracebackType | None = None,
    ) -> None:
        try:
            await self.worker.__aexit__(exc_type, exc_value, traceback)
        finally:
            await self.aclose()

    async def start(self) -> None:
        await self.worker.start()

    async def handle_async_request(
        self,
        request: httpx.Request,
    ) -> httpx.Response:
        internal_request = _httpx_to_internal(request)
        internal_response = await self.worker.handle_request(internal_request)
        return _internal_to_httpx(internal_response)

    async def aclose(self) -> None:
        await self.next_transport.aclose()
        await self.worker.aclose()

    async def request_sender(self, request: Request) -> Response:
        httpx_request = _internal_to_httpx(request)
        try:
            httpx_response = await self.next_transport.handle_async_request(httpx_request)
        except httpx.RequestError as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        try:
            await httpx_response.aread()
        except httpx.RequestError as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc
        finally:
            await httpx_response.aclose()
        return _httpx_to_internal(httpx_response)


class AsyncCacheClient(httpx.AsyncClient):
    def __init__(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.config: CacheConfig | None = kwargs.pop("config", None)
        self.storage: AsyncBaseStorage | None = kwargs.pop("storage", None)
        self.clients: Clients | None = kwargs.pop("clients", None)
        super().__init__(*args, **kwargs)

    def _init_transport(
        self,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        return AsyncCacheTransport(
            next_transport=transport
            if transport is not None
            else httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
            ),
            config=self.config,
            storage=self.storage,
            clients=self.clients,
        )

    @property
    def cache_transport(self) -> AsyncCacheTransport:
        return t.cast(AsyncCacheTransport, self._transport)

    async def start(self) -> None:
        await self.cache_transport.start()
