from __future__ import annotations

import logging
import typing as tp
from enum import Enum

import anyio

from offgrid._clients import Clients
from offgrid._config import STORE_CLASSES, CacheConfig
from offgrid._core.models import Record, Request, RequestSender
from offgrid._exceptions import InstallError, LifecycleError, NetworkError, PopulationError
from offgrid._registry import StoreRegistry
from offgrid._utils import resolve_url

logger = logging.getLogger("offgrid.lifecycle")


class LifecycleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"


class LifecycleManager:
    """
    Moves one generation from installation to active service.

    ``UNINITIALIZED -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVE``

    A failed installation raises :class:`InstallError` and leaves the manager in
    ``INSTALLING``; stores created by the failed attempt are removed and stores
    of other generations are not touched.

    Args:
        config: The deployment being installed.
        registry: Registry of the stores; the manager is the only component that deletes stores.
        send_request: Network primitive used to populate stores.
        clients: Connected application instances, claimed and notified on activation.
    """

    def __init__(
        self,
        config: CacheConfig,
        registry: StoreRegistry,
        send_request: RequestSender,
        clients: tp.Optional[Clients] = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.send_request = send_request
        self.clients = clients if clients is not None else Clients()
        self.state = LifecycleState.UNINITIALIZED
        self._skip_waiting_requested = False
        self._promotion: tp.Optional[anyio.Event] = None

    @property
    def generation(self) -> str:
        return self.config.generation

    @property
    def is_active(self) -> bool:
        return self.state is LifecycleState.ACTIVE

    async def run(self) -> None:
        """
        Install the generation, then activate it once promotion is allowed.
        """
        await self.install()
        if not (self.config.skip_waiting or self._skip_waiting_requested):
            logger.info(f"Generation {self.generation} installed, waiting for promotion")
            self._promotion = anyio.Event()
            await self._promotion.wait()
        await self.activate()

    def skip_waiting(self) -> None:
        """Promote the installed generation without waiting for previous instances to retire."""
        self._skip_waiting_requested = True
        if self._promotion is not None:
            self._promotion.set()

    async def install(self) -> None:
        if self.state in (LifecycleState.ACTIVATING, LifecycleState.ACTIVE):
            raise LifecycleError(f"Generation {self.generation} is already {self.state.value}")

        self.state = LifecycleState.INSTALLING
        logger.info(f"Installing generation {self.generation}")

        existing = set(await self.registry.list_store_names())
        for store_class in STORE_CLASSES:
            await self.registry.open(self.config.store_name(store_class))

        shared = self.config.store_name("shared")
        try:
            await self.add_all(shared, self.config.critical_assets)
        except PopulationError as exc:
            logger.error(f"Installation of generation {self.generation} failed: {exc}")
            await self._discard_new_stores(existing)
            raise InstallError(f"Could not populate critical asset {exc.url}") from exc

        await self._populate_optional(shared, self.config.optional_assets)

        self.state = LifecycleState.INSTALLED
        logger.info(f"Generation {self.generation} installed")

    async def activate(self) -> None:
        if self.state is not LifecycleState.INSTALLED:
            raise LifecycleError(f"Cannot activate generation {self.generation} from state {self.state.value}")

        self.state = LifecycleState.ACTIVATING
        logger.info(f"Activating generation {self.generation}")

        await self._delete_stale_stores()

        claimed = self.clients.claim()
        logger.debug(f"Claimed {claimed} clients")
        await self.clients.broadcast({"type": "SW_UPDATED", "version": self.generation})

        self.state = LifecycleState.ACTIVE
        logger.info(f"Generation {self.generation} active")

    async def add_all(self, store_name: str, urls: tp.Sequence[str]) -> tp.List[Record]:
        """
        Fetch every URL and store the responses, or store nothing at all.

        Raises:
            PopulationError: When any URL fails to fetch or answers with a non-2xx status.
        """
        records = [await self._fetch_record(url) for url in urls]
        store = await self.registry.open(store_name)
        for record in records:
            await store.put(record.key, record)
        return records

    async def update_content(self) -> int:
        """
        Refetch the critical assets and overwrite the stored copies that could be refreshed.
        """
        shared = await self.registry.open(self.config.store_name("shared"))
        updated = 0

        async def update(url: str) -> None:
            nonlocal updated
            try:
                record = await self._fetch_record(url)
                await shared.put(record.key, record)
            except Exception as exc:
                logger.warning(f"Failed to update {url}: {exc}")
            else:
                updated += 1

        async with anyio.create_task_group() as tg:
            for url in self.config.critical_assets:
                tg.start_soon(update, url)

        logger.info(f"Updated {updated} of {len(self.config.critical_assets)} assets")
        return updated

    async def clear_all(self) -> tp.List[str]:
        """Delete every store, of every generation."""
        deleted = []
        for name in await self.registry.list_store_names():
            if await self.registry.delete(name):
                deleted.append(name)
        logger.info(f"Cleared {len(deleted)} stores")
        return deleted

    async def _fetch_record(self, url: str) -> Record:
        request = Request(method="GET", url=resolve_url(self.config.origin, url))
        try:
            response = await self.send_request(request)
        except NetworkError as exc:
            raise PopulationError(f"Failed to fetch {request.url}: {exc}", request.url) from exc

        if not response.ok:
            await response.aread()
            raise PopulationError(f"{request.url} responded with status {response.status_code}", request.url)
        return await Record.capture(request, response)

    async def _populate_optional(self, store_name: str, urls: tp.Sequence[str]) -> None:
        store = await self.registry.open(store_name)

        async def populate(url: str) -> None:
            try:
                record = await self._fetch_record(url)
                await store.put(record.key, record)
            except Exception as exc:
                logger.warning(f"Failed to cache optional asset {url}: {exc}")

        async with anyio.create_task_group() as tg:
            for url in urls:
                tg.start_soon(populate, url)

    async def _discard_new_stores(self, existing: tp.Set[str]) -> None:
        for name in await self.registry.list_store_names():
            if name in existing or not self.registry.belongs_to_generation(name):
                continue
            try:
                await self.registry.delete(name)
            except Exception:
                logger.error(f"Failed to discard store {name}", exc_info=True)

    async def _delete_stale_stores(self) -> None:
        try:
            names = await self.registry.list_store_names()
        except Exception:
            logger.error("Failed to list stores, skipping cleanup", exc_info=True)
            return

        for name in names:
            if self.config.namespace is not None and not name.startswith(self.config.namespace):
                continue
            if self.registry.belongs_to_generation(name):
                continue
            logger.info(f"Deleting old store {name}")
            try:
                await self.registry.delete(name)
            except Exception:
                logger.error(f"Failed to delete old store {name}", exc_info=True)
