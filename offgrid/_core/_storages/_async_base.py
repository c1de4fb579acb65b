from __future__ import annotations

import abc
import typing as tp
from abc import ABC

from offgrid._core.models import Record


class AsyncBaseStorage(ABC):
    """
    Durable key-value primitive partitioned into named stores.

    Every operation must be safe to call from concurrent tasks. Writes to the
    same key resolve last-write-wins and a record is always replaced whole.
    """

    @abc.abstractmethod
    async def create_store(self, name: str) -> bool:
        """
        Create the store if it does not exist yet.

        Returns:
            True when the store was created by this call, False when it already existed.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def delete_store(self, name: str) -> bool:
        """
        Delete the store and every record in it.

        Returns:
            True when a store was deleted, False when no store had that name.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def list_stores(self) -> tp.List[str]:
        """
        Return the names of all stores, oldest first.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def get_record(self, store: str, key: str) -> tp.Optional[Record]:
        """
        Retrieve the record stored under ``key``.

        Missing stores, missing keys and undecodable records all return None.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def put_record(self, store: str, key: str, record: Record) -> None:
        """
        Store ``record`` under ``key``, replacing any previous record.

        The store is created when it does not exist.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def list_keys(self, store: str) -> tp.List[str]:
        """
        Return the keys of a store in insertion order.
        """
        raise NotImplementedError()

    async def close(self) -> None:
        return None
