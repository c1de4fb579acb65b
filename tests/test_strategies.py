import anyio
import pytest

from offgrid import (
    CacheConfig,
    CacheFirst,
    Headers,
    NetworkFirst,
    NetworkOnly,
    NetworkWithFallback,
    Record,
    Request,
    StoreRegistry,
)

from tests.conftest import ORIGIN, FakeNetwork

APP_CSS = f"{ORIGIN}/static/app.css"
DONATIONS = f"{ORIGIN}/donations"


def make_record(url: str, body: bytes, status_code: int = 200) -> Record:
    return Record(
        method="GET",
        url=url,
        status_code=status_code,
        headers=Headers({"Content-Type": "text/plain"}),
        body=body,
    )


@pytest.mark.anyio
async def test_cache_first_hit_serves_stored_copy_and_revalidates(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    await registry.put("seva-v2", f"GET {APP_CSS}", make_record(APP_CSS, b"old"))
    network.add(APP_CSS, body=b"new")

    async with anyio.create_task_group() as tg:
        strategy = CacheFirst(registry, network, config, tg.start_soon)
        response = await strategy.handle(Request("GET", APP_CSS), "seva-v2")

        assert await response.aread() == b"old"
        assert response.metadata["offgrid_from_cache"] is True
        assert response.metadata["offgrid_strategy"] == "cache_first"

    assert network.calls_for(APP_CSS) == 1
    stored = await registry.get("seva-v2", f"GET {APP_CSS}")
    assert stored is not None
    assert stored.body == b"new"


@pytest.mark.anyio
async def test_cache_first_failed_revalidation_keeps_stored_copy(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    await registry.put("seva-v2", f"GET {APP_CSS}", make_record(APP_CSS, b"old"))
    network.fail(APP_CSS)

    async with anyio.create_task_group() as tg:
        strategy = CacheFirst(registry, network, config, tg.start_soon)
        response = await strategy.handle(Request("GET", APP_CSS), "seva-v2")
        assert await response.aread() == b"old"

    assert network.calls_for(APP_CSS) == 1
    stored = await registry.get("seva-v2", f"GET {APP_CSS}")
    assert stored is not None
    assert stored.body == b"old"


@pytest.mark.anyio
async def test_cache_first_miss_stores_response(network: FakeNetwork, registry: StoreRegistry, config: CacheConfig):
    network.add(APP_CSS, body=b"body { }")

    async with anyio.create_task_group() as tg:
        strategy = CacheFirst(registry, network, config, tg.start_soon)
        response = await strategy.handle(Request("GET", APP_CSS), "seva-v2")

    assert await response.aread() == b"body { }"
    assert response.metadata["offgrid_from_cache"] is False
    assert response.metadata["offgrid_stored"] is True

    stored = await registry.get("seva-v2", f"GET {APP_CSS}")
    assert stored is not None
    assert stored.body == b"body { }"


@pytest.mark.anyio
async def test_cache_first_offline_image_gets_placeholder(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    network.offline = True
    url = f"{ORIGIN}/avatars/42"

    async with anyio.create_task_group() as tg:
        strategy = CacheFirst(registry, network, config, tg.start_soon)
        response = await strategy.handle(Request("GET", url, metadata={"offgrid_destination": "image"}), "seva-v2-images")

    assert response.status_code == 203
    assert response.headers["Content-Type"] == "image/svg+xml"
    assert b"<svg" in await response.aread()
    assert response.metadata["offgrid_placeholder"] is True
    assert await registry.keys("seva-v2-images") == []


@pytest.mark.anyio
async def test_cache_first_offline_non_image(network: FakeNetwork, registry: StoreRegistry, config: CacheConfig):
    network.offline = True

    async with anyio.create_task_group() as tg:
        strategy = CacheFirst(registry, network, config, tg.start_soon)
        response = await strategy.handle(Request("GET", APP_CSS), "seva-v2")

    assert response.status_code == 503
    assert response.headers["X-Offgrid-Offline"] == "1"
    assert b'"offline": true' in await response.aread()


@pytest.mark.anyio
async def test_cache_first_never_stores_failed_responses(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    network.add(APP_CSS, status=500, body=b"boom")

    async with anyio.create_task_group() as tg:
        strategy = CacheFirst(registry, network, config, tg.start_soon)
        response = await strategy.handle(Request("GET", APP_CSS), "seva-v2")

    assert response.status_code == 500
    assert response.metadata["offgrid_stored"] is False
    assert await registry.get("seva-v2", f"GET {APP_CSS}") is None


@pytest.mark.anyio
async def test_network_first_stores_and_bypasses_http_cache(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    url = f"{ORIGIN}/index.html"
    network.add(url, body=b"<html>v2</html>")

    strategy = NetworkFirst(registry, network, config, lambda *args: None)
    response = await strategy.handle(Request("GET", url), "seva-v2-runtime")

    assert await response.aread() == b"<html>v2</html>"
    assert network.calls[0].headers["Cache-Control"] == "no-cache"
    stored = await registry.get("seva-v2-runtime", f"GET {url}")
    assert stored is not None
    assert stored.body == b"<html>v2</html>"


@pytest.mark.anyio
async def test_network_first_falls_back_to_stored_copy(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    url = f"{ORIGIN}/manifest.json"
    network.add(url, body=b'{"name": "Seva"}')
    strategy = NetworkFirst(registry, network, config, lambda *args: None)
    await (await strategy.handle(Request("GET", url), "seva-v2-runtime")).aread()

    network.offline = True
    response = await strategy.handle(Request("GET", url), "seva-v2-runtime")

    assert await response.aread() == b'{"name": "Seva"}'
    assert response.metadata["offgrid_from_cache"] is True


@pytest.mark.anyio
async def test_network_first_offline_without_copy(network: FakeNetwork, registry: StoreRegistry, config: CacheConfig):
    network.offline = True
    strategy = NetworkFirst(registry, network, config, lambda *args: None)

    response = await strategy.handle(Request("GET", f"{ORIGIN}/data.json"), "seva-v2-runtime")

    assert response.status_code == 503
    assert response.metadata["offgrid_offline"] is True


@pytest.mark.anyio
async def test_navigation_falls_back_to_application_shell(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    shell_url = f"{ORIGIN}/index.html"
    await registry.put("seva-v2", f"GET {shell_url}", make_record(shell_url, b"<html>shell</html>"))
    network.offline = True
    strategy = NetworkWithFallback(registry, network, config, lambda *args: None)

    response = await strategy.handle(
        Request("GET", f"{ORIGIN}/donations/42", metadata={"offgrid_mode": "navigate"}), "seva-v2-runtime"
    )

    assert response.status_code == 200
    assert await response.aread() == b"<html>shell</html>"
    assert response.metadata["offgrid_offline"] is True


@pytest.mark.anyio
async def test_network_with_fallback_gateway_timeout(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    network.offline = True
    strategy = NetworkWithFallback(registry, network, config, lambda *args: None)

    response = await strategy.handle(Request("GET", DONATIONS), "seva-v2-runtime")

    assert response.status_code == 504
    assert await response.aread() == b"Gateway Timeout"


@pytest.mark.anyio
async def test_network_with_fallback_keeps_request_headers(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    network.add(DONATIONS, body=b"[]")
    strategy = NetworkWithFallback(registry, network, config, lambda *args: None)

    await strategy.handle(Request("GET", DONATIONS), "seva-v2-runtime")

    assert "Cache-Control" not in network.calls[0].headers


@pytest.mark.anyio
async def test_network_first_does_not_replace_good_copy_with_error(
    network: FakeNetwork, registry: StoreRegistry, config: CacheConfig
):
    await registry.put("seva-v2-runtime", f"GET {DONATIONS}", make_record(DONATIONS, b"[1]"))
    network.add(DONATIONS, status=502, body=b"bad gateway")
    strategy = NetworkWithFallback(registry, network, config, lambda *args: None)

    response = await strategy.handle(Request("GET", DONATIONS), "seva-v2-runtime")

    assert response.status_code == 502
    stored = await registry.get("seva-v2-runtime", f"GET {DONATIONS}")
    assert stored is not None
    assert stored.body == b"[1]"


@pytest.mark.anyio
async def test_network_only(network: FakeNetwork, registry: StoreRegistry, config: CacheConfig):
    url = f"{ORIGIN}/donations.api"
    network.add(url, body=b"live")
    strategy = NetworkOnly(registry, network, config, lambda *args: None)

    response = await strategy.handle(Request("GET", url), None)
    assert await response.aread() == b"live"
    assert await registry.list_store_names() == []

    network.offline = True
    response = await strategy.handle(Request("GET", url), None)
    assert response.status_code == 503
