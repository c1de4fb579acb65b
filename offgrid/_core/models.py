from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Mapping,
    TypedDict,
    cast,
)

from offgrid._core._headers import Headers
from offgrid._utils import generate_key, make_async_iterator


class AnyIterable:
    def __init__(self, content: bytes | None = None) -> None:
        self.consumed = False
        self.content = content

    async def __anext__(self) -> bytes:
        if self.content is not None and not self.consumed:
            self.consumed = True
            return self.content
        raise StopAsyncIteration()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    def __eq__(self, value: Any) -> bool:
        return isinstance(value, AnyIterable)


class RequestMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "offgrid_" to avoid collisions with user data
    offgrid_destination: str | None
    """Fetch destination of the request, e.g. "image", "document", "script"."""

    offgrid_mode: str | None
    """Request mode; "navigate" marks top-level document loads."""


def extract_metadata_from_headers(
    headers: Mapping[str, str],
) -> RequestMetadata:
    metadata: RequestMetadata = {}
    if "Sec-Fetch-Dest" in headers:
        metadata["offgrid_destination"] = headers["Sec-Fetch-Dest"].strip().lower()
    if "Sec-Fetch-Mode" in headers:
        metadata["offgrid_mode"] = headers["Sec-Fetch-Mode"].strip().lower()
    return metadata


@dataclass
class Request:
    method: str
    url: str
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=AnyIterable)
    metadata: RequestMetadata | Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return generate_key(self.method, self.url)

    @property
    def destination(self) -> str:
        return str(self.metadata.get("offgrid_destination") or "")

    @property
    def mode(self) -> str:
        return str(self.metadata.get("offgrid_mode") or "")

    @property
    def is_navigation(self) -> bool:
        return self.mode == "navigate"


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "offgrid_" to avoid collisions with user data
    offgrid_from_cache: bool
    """Indicates whether the response was served from a store."""

    offgrid_stored: bool
    """Indicates whether the response was written to a store."""

    offgrid_strategy: str
    """Name of the strategy that produced the response."""

    offgrid_store: str
    """Name of the store the strategy worked against."""

    offgrid_offline: bool
    """Set on responses synthesized because the network was unreachable."""

    offgrid_placeholder: bool
    """Set on generated substitute content, e.g. the image placeholder."""

    offgrid_created_at: float
    """Timestamp when the served record was stored."""


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=AnyIterable)
    metadata: ResponseMetadata | Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    async def _aiter_stream(self) -> AsyncIterator[bytes]:
        if hasattr(self, "collected_body"):
            yield getattr(self, "collected_body")
            return
        if isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            async for chunk in self.stream:
                yield chunk
        else:
            raise TypeError("Response stream is not an AsyncIterator")

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire response body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return cast(bytes, getattr(self, "collected_body"))

        if not isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            raise TypeError("Response stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected


@dataclass
class Record:
    """
    A captured successful response, stored and replaced as a single unit.
    """

    method: str
    url: str
    status_code: int
    headers: Headers
    body: bytes
    created_at: float = field(default_factory=time.time)

    @property
    def key(self) -> str:
        return generate_key(self.method, self.url)

    @classmethod
    async def capture(cls, request: Request, response: Response) -> "Record":
        body = await response.aread()
        return cls(
            method=request.method.upper(),
            url=request.url,
            status_code=response.status_code,
            headers=response.headers.copy(),
            body=body,
        )

    def to_response(self, metadata: ResponseMetadata | None = None) -> Response:
        response_metadata: ResponseMetadata = {
            "offgrid_from_cache": True,
            "offgrid_stored": False,
            "offgrid_created_at": self.created_at,
        }
        response_metadata.update(metadata or {})
        return Response(
            status_code=self.status_code,
            headers=self.headers.copy(),
            stream=make_async_iterator([self.body]),
            metadata=response_metadata,
        )


RequestSender = Callable[[Request], Awaitable[Response]]
"""Sends a request over the network; raises NetworkError when no response can be obtained."""
