from __future__ import annotations

import logging
import typing as tp

from offgrid._config import generation_store_names
from offgrid._core._storages._async_base import AsyncBaseStorage
from offgrid._core.models import Record, Request
from offgrid._exceptions import StorageError

logger = logging.getLogger("offgrid.registry")

RequestOrKey = tp.Union[Request, str]


def _as_key(request_or_key: RequestOrKey) -> str:
    if isinstance(request_or_key, Request):
        return request_or_key.key
    return request_or_key


class Store:
    """A handle to one named store; holds no data of its own."""

    def __init__(self, registry: "StoreRegistry", name: str) -> None:
        self.registry = registry
        self.name = name

    async def get(self, request_or_key: RequestOrKey) -> tp.Optional[Record]:
        return await self.registry.get(self.name, _as_key(request_or_key))

    async def put(self, request_or_key: RequestOrKey, record: Record) -> None:
        await self.registry.put(self.name, _as_key(request_or_key), record)

    async def keys(self) -> tp.List[str]:
        return await self.registry.keys(self.name)

    def __repr__(self) -> str:
        return f"<Store {self.name!r}>"


class StoreRegistry:
    """
    Owns every named store of the cache.

    Failures of the underlying storage are raised as :class:`StorageError`.

    Args:
        storage: The blob store primitive records are persisted in.
        generation: The current generation. It owns exactly one store per store
            class: the generation itself and ``"<generation>-<class>"`` for the others.
    """

    def __init__(self, storage: AsyncBaseStorage, generation: str) -> None:
        self.storage = storage
        self.generation = generation

    def belongs_to_generation(self, name: str, generation: tp.Optional[str] = None) -> bool:
        generation = generation if generation is not None else self.generation
        return name in generation_store_names(generation)

    async def open(self, name: str) -> Store:
        try:
            created = await self.storage.create_store(name)
        except Exception as exc:
            raise StorageError(f"Could not open store {name}") from exc
        if created:
            logger.debug(f"Created store {name}")
        return Store(self, name)

    async def get(self, store_name: str, key: str) -> tp.Optional[Record]:
        try:
            return await self.storage.get_record(store_name, key)
        except Exception as exc:
            raise StorageError(f"Could not read {key} from {store_name}") from exc

    async def put(self, store_name: str, key: str, record: Record) -> None:
        if not 200 <= record.status_code < 300:
            raise ValueError(f"Refusing to store a response with status {record.status_code}")
        try:
            await self.storage.put_record(store_name, key, record)
        except Exception as exc:
            raise StorageError(f"Could not write {key} to {store_name}") from exc

    async def keys(self, store_name: str) -> tp.List[str]:
        try:
            return await self.storage.list_keys(store_name)
        except Exception as exc:
            raise StorageError(f"Could not list keys of {store_name}") from exc

    async def delete(self, store_name: str) -> bool:
        try:
            deleted = await self.storage.delete_store(store_name)
        except Exception as exc:
            raise StorageError(f"Could not delete store {store_name}") from exc
        if deleted:
            logger.debug(f"Deleted store {store_name}")
        return deleted

    async def list_store_names(self) -> tp.List[str]:
        try:
            return await self.storage.list_stores()
        except Exception as exc:
            raise StorageError("Could not list stores") from exc

    async def match(self, key: str) -> tp.Optional[Record]:
        """
        Look ``key`` up in every store of the current generation, oldest store first.
        """
        for name in await self.list_store_names():
            if not self.belongs_to_generation(name):
                continue
            record = await self.get(name, key)
            if record is not None:
                return record
        return None

    async def close(self) -> None:
        await self.storage.close()
