from __future__ import annotations

import typing as tp
from collections import OrderedDict

from offgrid._core._storages._async_base import AsyncBaseStorage
from offgrid._core._storages._packing import pack, unpack
from offgrid._core.models import Record


class AsyncInMemoryStorage(AsyncBaseStorage):
    """
    Process-local storage.

    Records are kept packed, so reads hand out independent copies exactly like a
    durable backend would.

    Args:
        max_entries: Optional per-store capacity, keyed by store name suffix
            (``"images"`` applies to ``seva-v2-images``) or ``"*"`` for every store.
            The shared store is named after the generation alone, so only ``"*"``
            bounds it. When a store is full the oldest inserted record is evicted.
    """

    def __init__(self, max_entries: tp.Optional[tp.Mapping[str, int]] = None) -> None:
        for name, capacity in (max_entries or {}).items():
            if capacity <= 0:
                raise ValueError(f"Capacity for {name!r} must be positive")
            if name == "shared":
                raise ValueError("The shared store has no suffix, bound it with \"*\" instead")
        self.max_entries = dict(max_entries or {})
        self._stores: tp.Dict[str, OrderedDict[str, bytes]] = {}

    async def create_store(self, name: str) -> bool:
        if name in self._stores:
            return False
        self._stores[name] = OrderedDict()
        return True

    async def delete_store(self, name: str) -> bool:
        return self._stores.pop(name, None) is not None

    async def list_stores(self) -> tp.List[str]:
        return list(self._stores)

    async def get_record(self, store: str, key: str) -> tp.Optional[Record]:
        records = self._stores.get(store)
        if records is None:
            return None
        return unpack(records.get(key))

    async def put_record(self, store: str, key: str, record: Record) -> None:
        packed = pack(record)
        records = self._stores.setdefault(store, OrderedDict())
        # Re-inserting moves the key to the end, so insertion order tracks recency.
        records.pop(key, None)
        records[key] = packed

        capacity = self._capacity_for(store)
        while capacity is not None and len(records) > capacity:
            records.popitem(last=False)

    async def list_keys(self, store: str) -> tp.List[str]:
        return list(self._stores.get(store, {}))

    def _capacity_for(self, store: str) -> tp.Optional[int]:
        for suffix, capacity in self.max_entries.items():
            if suffix != "*" and store.endswith(f"-{suffix}"):
                return capacity
        return self.max_entries.get("*")
