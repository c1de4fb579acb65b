import os
import typing as tp

import pytest

from offgrid import AsyncInMemoryStorage, CacheConfig, Headers, NetworkError, Request, Response, StoreRegistry
from offgrid._utils import make_async_iterator, normalized_url

ORIGIN = "https://seva.app"


class FakeNetwork:
    """
    Network primitive answering from a fixed table of URLs.

    Unknown URLs answer 404; URLs marked as failing, or every URL while
    ``offline`` is set, raise NetworkError.
    """

    def __init__(self) -> None:
        self.routes: tp.Dict[str, tp.Tuple[int, bytes, tp.Dict[str, str]]] = {}
        self.failing: tp.Set[str] = set()
        self.offline = False
        self.calls: tp.List[Request] = []

    def add(
        self, url: str, status: int = 200, body: bytes = b"", headers: tp.Optional[tp.Dict[str, str]] = None
    ) -> None:
        self.routes[normalized_url(url)] = (status, body, headers or {"Content-Type": "text/plain"})
        self.failing.discard(normalized_url(url))

    def fail(self, url: str) -> None:
        self.failing.add(normalized_url(url))

    def calls_for(self, url: str) -> int:
        return len([request for request in self.calls if normalized_url(request.url) == normalized_url(url)])

    async def __call__(self, request: Request) -> Response:
        self.calls.append(request)
        url = normalized_url(request.url)
        if self.offline or url in self.failing:
            raise NetworkError(f"Failed to reach {url}")
        status, body, headers = self.routes.get(url, (404, b"Not Found", {"Content-Type": "text/plain"}))
        return Response(status_code=status, headers=Headers(headers), stream=make_async_iterator([body]))


@pytest.fixture()
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture()
def config() -> CacheConfig:
    return CacheConfig(
        generation="seva-v2",
        origin=ORIGIN,
        critical_assets=["/", "/index.html"],
        optional_assets=[],
    )


@pytest.fixture()
def storage() -> AsyncInMemoryStorage:
    return AsyncInMemoryStorage()


@pytest.fixture()
def registry(storage: AsyncInMemoryStorage, config: CacheConfig) -> StoreRegistry:
    return StoreRegistry(storage, config.generation)


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)
