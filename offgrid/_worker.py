from __future__ import annotations

import logging
import types
import typing as tp

import anyio
from anyio.abc import TaskGroup

from offgrid._clients import Clients, Message
from offgrid._config import CacheConfig
from offgrid._core._storages._async_base import AsyncBaseStorage
from offgrid._core._storages._async_sqlite import AsyncSqliteStorage
from offgrid._core.models import Request, RequestSender, Response
from offgrid._exceptions import NetworkError, OffgridError
from offgrid._lifecycle import LifecycleManager
from offgrid._push import Notification, NotificationDisplay, parse_push_payload, route_click
from offgrid._registry import StoreRegistry
from offgrid._selector import Strategy, StrategySelector
from offgrid._strategies import (
    AsyncFetchStrategy,
    CacheFirst,
    NetworkFirst,
    NetworkOnly,
    NetworkWithFallback,
    generate_offline_response,
)

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("offgrid.worker")

SYNC_BROADCASTS = {
    "sync-donations": "SYNC_DONATIONS",
    "sync-messages": "SYNC_MESSAGES",
}


class AsyncCacheWorker:
    """
    Entry point for every outgoing request of the application.

    The worker must be used as an async context manager: the block hosts the
    background revalidations started by cache-first hits. Leaving it waits for
    those still running, unless the block raised, in which case they are
    cancelled and the exception propagates as is.

    ```python
    async with AsyncCacheWorker(send_request, config=CacheConfig(generation="seva-v2")) as worker:
        await worker.start()
        response = await worker.handle_request(Request("GET", "https://seva.app/"))
    ```

    Args:
        send_request: Network primitive; raises NetworkError when no response can be obtained.
        config: Deployment configuration. Defaults to CacheConfig().
        storage: Storage backend for the stores. Defaults to AsyncSqliteStorage().
        clients: Registry of connected application instances.
        selector: Strategy selector. Defaults to the table built from ``config``.
        display: Shows push notifications to the user.
    """

    def __init__(
        self,
        send_request: RequestSender,
        config: tp.Optional[CacheConfig] = None,
        storage: tp.Optional[AsyncBaseStorage] = None,
        clients: tp.Optional[Clients] = None,
        selector: tp.Optional[StrategySelector] = None,
        display: tp.Optional[NotificationDisplay] = None,
    ) -> None:
        self.send_request = send_request
        self.config = config if config is not None else CacheConfig()
        self.storage = storage if storage is not None else AsyncSqliteStorage()
        self.registry = StoreRegistry(self.storage, self.config.generation)
        self.clients = clients if clients is not None else Clients()
        self.selector = selector if selector is not None else StrategySelector(self.config)
        self.lifecycle = LifecycleManager(self.config, self.registry, send_request, self.clients)
        self.display = display
        self.strategies: tp.Dict[Strategy, AsyncFetchStrategy] = {
            strategy_class.strategy: strategy_class(self.registry, send_request, self.config, self._spawn)
            for strategy_class in (CacheFirst, NetworkFirst, NetworkWithFallback, NetworkOnly)
        }
        self._task_group: tp.Optional[TaskGroup] = None

    async def __aenter__(self) -> "Self":
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        assert self._task_group is not None
        if exc_value is not None:
            self._task_group.cancel_scope.cancel()
        try:
            # The body's exception propagates unchanged.
            await self._task_group.__aexit__(None, None, None)
        finally:
            self._task_group = None

    def _spawn(self, func: tp.Callable[..., tp.Awaitable[tp.Any]], *args: tp.Any) -> None:
        assert self._task_group is not None
        self._task_group.start_soon(func, *args)

    async def start(self) -> None:
        """Install and activate the configured generation."""
        await self.lifecycle.run()

    async def handle_request(self, request: Request) -> Response:
        if self._task_group is None:
            raise RuntimeError("AsyncCacheWorker must be entered with `async with` before handling requests")

        if not self.lifecycle.is_active:
            logger.debug(f"Not active yet, passing {request.url} through")
            return await self._passthrough(request)

        rule = self.selector.excluded_by(request)
        if rule is not None:
            logger.debug(f"Request {request.method} {request.url} excluded by {rule.name}")
            return await self._passthrough(request)

        try:
            route = self.selector.select(request)
        except LookupError:
            logger.warning(f"No route for {request.method} {request.url}, passing it through")
            return await self._passthrough(request)

        strategy = self.strategies[route.strategy]
        try:
            return await strategy.handle(request, self.selector.store_name(route))
        except Exception:
            logger.exception(f"Strategy {route.strategy.value} failed for {request.url}")
            return generate_offline_response()

    async def _passthrough(self, request: Request) -> Response:
        try:
            return await self.send_request(request)
        except NetworkError as exc:
            logger.warning(f"Network request for {request.url} failed: {exc}")
            return generate_offline_response()
        except Exception:
            logger.exception(f"Passthrough failed for {request.url}")
            return generate_offline_response()

    async def handle_message(self, message: Message) -> tp.Dict[str, tp.Any]:
        """
        Control channel.

        Commands: ``SKIP_WAITING``, ``CLEAR_CACHE``, ``GET_VERSION`` and
        ``CACHE_URLS`` (with ``urls``). Every command gets a reply.
        """
        command = message.get("type")
        logger.debug(f"Message received: {command}")

        if command == "SKIP_WAITING":
            self.lifecycle.skip_waiting()
            return {"type": command, "ok": True}

        if command == "GET_VERSION":
            return {"type": "VERSION", "version": self.config.generation, "state": self.lifecycle.state.value}

        if command == "CLEAR_CACHE":
            try:
                deleted = await self.lifecycle.clear_all()
            except OffgridError as exc:
                logger.error(f"Failed to clear stores: {exc}")
                return {"type": command, "ok": False, "error": str(exc)}
            return {"type": command, "ok": True, "deleted": deleted}

        if command == "CACHE_URLS":
            urls = [str(url) for url in message.get("urls") or []]
            try:
                records = await self.lifecycle.add_all(self.config.store_name("shared"), urls)
            except OffgridError as exc:
                logger.error(f"Failed to cache urls: {exc}")
                return {"type": command, "ok": False, "error": str(exc)}
            return {"type": command, "ok": True, "cached": len(records)}

        logger.warning(f"Unknown command: {command!r}")
        return {"type": "ERROR", "ok": False, "error": f"Unknown command: {command!r}"}

    async def handle_sync(self, tag: str) -> None:
        logger.info(f"Background sync: {tag}")
        try:
            if tag in SYNC_BROADCASTS:
                await self.clients.broadcast({"type": SYNC_BROADCASTS[tag]})
            elif tag == "update-content":
                await self.lifecycle.update_content()
            else:
                logger.warning(f"Unknown sync tag: {tag!r}")
        except OffgridError as exc:
            logger.error(f"Background sync {tag} failed: {exc}")

    async def handle_push(self, data: tp.Union[bytes, str, None]) -> Notification:
        notification = parse_push_payload(data)
        if self.display is not None:
            try:
                await self.display(notification)
            except Exception:
                logger.error("Failed to show notification", exc_info=True)
        return notification

    async def handle_notification_click(self, notification: Notification, action: tp.Optional[str] = None) -> None:
        logger.debug(f"Notification clicked: {action}")
        try:
            await route_click(notification, action, self.clients)
        except Exception:
            logger.error("Failed to handle notification click", exc_info=True)

    async def aclose(self) -> None:
        await self.registry.close()
