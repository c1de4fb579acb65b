from __future__ import annotations

import abc
import json
import logging
import typing as tp
from dataclasses import replace

from offgrid._config import CacheConfig
from offgrid._core._headers import Headers
from offgrid._core.models import Record, Request, RequestSender, Response, ResponseMetadata
from offgrid._exceptions import NetworkError, StorageError
from offgrid._registry import StoreRegistry
from offgrid._selector import Strategy
from offgrid._utils import generate_http_date, generate_key, make_async_iterator, path_extension, resolve_url

logger = logging.getLogger("offgrid.strategies")

Spawn = tp.Callable[..., None]
"""Starts a detached unit of work: ``spawn(async_fn, *args)``."""

PLACEHOLDER_IMAGE = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="200" height="200" viewBox="0 0 200 200">'
    b'<rect width="200" height="200" fill="#e5e7eb"/>'
    b'<text x="100" y="105" font-family="sans-serif" font-size="14" text-anchor="middle" fill="#6b7280">'
    b"Offline</text></svg>"
)

IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "svg", "ico", "avif", "bmp"})


def is_image_request(request: Request) -> bool:
    return request.destination == "image" or path_extension(request.url) in IMAGE_EXTENSIONS


def _synthetic_response(status_code: int, content_type: str, body: bytes, metadata: ResponseMetadata) -> Response:
    return Response(
        status_code=status_code,
        headers=Headers(
            {
                "Content-Type": content_type,
                "Content-Length": str(len(body)),
                "Cache-Control": "no-store",
                "Date": generate_http_date(),
            }
        ),
        stream=make_async_iterator([body]),
        metadata=metadata,
    )


def generate_placeholder_image() -> Response:
    """
    A stand-in for images that are neither stored nor reachable.

    Served with 203 (Non-Authoritative Information) so it can be told apart
    from the real image while still rendering.
    """
    return _synthetic_response(
        203,
        "image/svg+xml",
        PLACEHOLDER_IMAGE,
        {"offgrid_from_cache": False, "offgrid_stored": False, "offgrid_placeholder": True, "offgrid_offline": True},
    )


def generate_offline_response() -> Response:
    body = json.dumps({"error": "offline", "offline": True, "message": "Network unavailable"}).encode("utf-8")
    response = _synthetic_response(
        503,
        "application/json",
        body,
        {"offgrid_from_cache": False, "offgrid_stored": False, "offgrid_offline": True},
    )
    response.headers.set("X-Offgrid-Offline", "1")
    return response


def generate_504() -> Response:
    return _synthetic_response(
        504,
        "text/plain; charset=utf-8",
        b"Gateway Timeout",
        {"offgrid_from_cache": False, "offgrid_stored": False, "offgrid_offline": True},
    )


def _with_metadata(response: Response, metadata: ResponseMetadata) -> Response:
    response.metadata = {**response.metadata, **metadata}
    return response


class AsyncFetchStrategy(abc.ABC):
    """
    Base for the request -> response policies.

    Network and storage failures are resolved inside the strategy; ``handle``
    always returns a response.
    """

    strategy: tp.ClassVar[Strategy]

    def __init__(
        self,
        registry: StoreRegistry,
        send_request: RequestSender,
        config: CacheConfig,
        spawn: Spawn,
    ) -> None:
        self.registry = registry
        self.send_request = send_request
        self.config = config
        self.spawn = spawn

    @abc.abstractmethod
    async def handle(self, request: Request, store_name: tp.Optional[str]) -> Response:
        raise NotImplementedError()

    def _metadata(self, store_name: tp.Optional[str]) -> ResponseMetadata:
        metadata: ResponseMetadata = {"offgrid_strategy": self.strategy.value}
        if store_name is not None:
            metadata["offgrid_store"] = store_name
        return metadata

    async def _lookup(self, request: Request, store_name: str) -> tp.Optional[Record]:
        """
        The record for ``request`` in its own store, else in any store of the generation.
        """
        try:
            record = await self.registry.get(store_name, request.key)
            if record is None:
                record = await self.registry.match(request.key)
            return record
        except StorageError:
            logger.warning(f"Lookup of {request.url} failed, treating it as a miss", exc_info=True)
            return None

    async def _shell(self) -> tp.Optional[Record]:
        key = generate_key("GET", resolve_url(self.config.origin, self.config.shell_path))
        try:
            return await self.registry.match(key)
        except StorageError:
            logger.warning("Lookup of the application shell failed", exc_info=True)
            return None

    async def _store(self, request: Request, response: Response, store_name: str) -> Response:
        """
        Capture a network response, store it when it succeeded and return a fresh copy for the caller.
        """
        if not response.ok:
            return _with_metadata(response, {"offgrid_from_cache": False, "offgrid_stored": False})

        record = await Record.capture(request, response)
        stored = True
        try:
            await self.registry.put(store_name, request.key, record)
        except StorageError:
            logger.warning(f"Could not store {request.url}", exc_info=True)
            stored = False
        else:
            logger.debug(f"Stored {request.url} in {store_name}")

        return record.to_response({"offgrid_from_cache": False, "offgrid_stored": stored})

    async def _revalidate(self, request: Request, store_name: str) -> None:
        """Background refresh; its outcome is only visible through the store."""
        try:
            response = await self.send_request(request)
            if response.ok:
                record = await Record.capture(request, response)
                await self.registry.put(store_name, request.key, record)
                logger.debug(f"Revalidated {request.url} in {store_name}")
            else:
                await response.aread()
                logger.debug(f"Revalidation of {request.url} answered {response.status_code}, keeping stored copy")
        except Exception as exc:
            logger.debug(f"Revalidation of {request.url} failed: {exc!r}")


class CacheFirst(AsyncFetchStrategy):
    strategy = Strategy.CACHE_FIRST

    async def handle(self, request: Request, store_name: tp.Optional[str]) -> Response:
        assert store_name is not None
        metadata = self._metadata(store_name)

        record = await self._lookup(request, store_name)
        if record is not None:
            logger.debug(f"Serving {request.url} from {store_name}, revalidating in background")
            self.spawn(self._revalidate, request, store_name)
            return record.to_response(metadata)

        try:
            response = await self.send_request(request)
        except NetworkError as exc:
            logger.warning(f"Cache first fetch of {request.url} failed: {exc}")
            if is_image_request(request):
                return _with_metadata(generate_placeholder_image(), metadata)
            return _with_metadata(generate_offline_response(), metadata)

        return _with_metadata(await self._store(request, response, store_name), metadata)


class NetworkFirst(AsyncFetchStrategy):
    strategy = Strategy.NETWORK_FIRST

    force_no_cache: tp.ClassVar[bool] = True

    def _network_request(self, request: Request) -> Request:
        if not self.force_no_cache:
            return request
        headers = request.headers.copy()
        headers.set("Cache-Control", "no-cache")
        return replace(request, headers=headers)

    async def _fallback(self, request: Request, store_name: str) -> Response:
        record = await self._lookup(request, store_name)
        if record is not None:
            return record.to_response(self._metadata(store_name))

        if request.is_navigation:
            shell = await self._shell()
            if shell is not None:
                logger.debug(f"Serving application shell for {request.url}")
                return shell.to_response({**self._metadata(store_name), "offgrid_offline": True})

        return _with_metadata(self._failure_response(), self._metadata(store_name))

    def _failure_response(self) -> Response:
        return generate_offline_response()

    async def handle(self, request: Request, store_name: tp.Optional[str]) -> Response:
        assert store_name is not None
        try:
            response = await self.send_request(self._network_request(request))
        except NetworkError as exc:
            logger.warning(f"Network request for {request.url} failed, trying stores: {exc}")
            return await self._fallback(request, store_name)

        return _with_metadata(await self._store(request, response, store_name), self._metadata(store_name))


class NetworkWithFallback(NetworkFirst):
    strategy = Strategy.NETWORK_FALLBACK

    force_no_cache = False

    def _failure_response(self) -> Response:
        return generate_504()


class NetworkOnly(AsyncFetchStrategy):
    strategy = Strategy.NETWORK_ONLY

    async def handle(self, request: Request, store_name: tp.Optional[str]) -> Response:
        try:
            response = await self.send_request(request)
        except NetworkError as exc:
            logger.warning(f"Network only request for {request.url} failed: {exc}")
            return _with_metadata(generate_offline_response(), self._metadata(None))
        return _with_metadata(response, {**self._metadata(None), "offgrid_from_cache": False, "offgrid_stored": False})
