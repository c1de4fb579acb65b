from __future__ import annotations

import logging
import typing as tp
import uuid

from typing_extensions import Protocol, runtime_checkable

logger = logging.getLogger("offgrid.clients")

Message = tp.Mapping[str, tp.Any]


@runtime_checkable
class Client(Protocol):
    """An open application instance that can receive messages."""

    id: str
    url: str

    async def post_message(self, message: Message) -> None: ...

    async def focus(self) -> None: ...


WindowOpener = tp.Callable[[str], tp.Awaitable[tp.Optional[Client]]]


class Clients:
    """
    Registry of the application instances currently connected to the cache worker.

    Delivery is best-effort: a client that fails to receive a message is logged
    and skipped, and nothing is retried.

    Args:
        open_window: Called with a URL when a new instance has to be opened.
    """

    def __init__(self, open_window: tp.Optional[WindowOpener] = None) -> None:
        self._clients: tp.Dict[str, Client] = {}
        self._controlled: tp.Set[str] = set()
        self._open_window = open_window

    def connect(self, client: Client) -> None:
        self._clients[client.id] = client

    def disconnect(self, client: tp.Union[Client, str]) -> None:
        client_id = client if isinstance(client, str) else client.id
        self._clients.pop(client_id, None)
        self._controlled.discard(client_id)

    def match_all(self) -> tp.List[Client]:
        return list(self._clients.values())

    def is_controlled(self, client: tp.Union[Client, str]) -> bool:
        client_id = client if isinstance(client, str) else client.id
        return client_id in self._controlled

    def claim(self) -> int:
        """Take control of every connected instance and return how many were claimed."""
        self._controlled.update(self._clients)
        return len(self._clients)

    async def broadcast(self, message: Message) -> int:
        delivered = 0
        for client in self.match_all():
            try:
                await client.post_message(message)
            except Exception:
                logger.warning(f"Failed to deliver {message.get('type')} to client {client.id}", exc_info=True)
            else:
                delivered += 1
        return delivered

    async def focus_or_open(self, url: str) -> tp.Optional[Client]:
        for client in self.match_all():
            if client.url == url:
                await client.focus()
                return client

        if self._open_window is None:
            logger.warning(f"No window opener configured, cannot open {url}")
            return None

        client = await self._open_window(url)
        if client is not None:
            self.connect(client)
        return client


class QueueClient:
    """
    A client that keeps the messages it receives, handy for embedding and tests.
    """

    def __init__(self, url: str = "/", id: tp.Optional[str] = None) -> None:
        self.id = id if id is not None else uuid.uuid4().hex
        self.url = url
        self.messages: tp.List[Message] = []
        self.focused = False

    async def post_message(self, message: Message) -> None:
        self.messages.append(dict(message))

    async def focus(self) -> None:
        self.focused = True
