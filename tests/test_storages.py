import anyio
import anysqlite
import pytest

from offgrid import AsyncBaseStorage, AsyncInMemoryStorage, AsyncSqliteStorage, Headers, Record, StoreRegistry
from offgrid._core._storages._packing import pack, unpack


def make_record(url: str = "https://seva.app/", body: bytes = b"hello", created_at: float = 1.0) -> Record:
    return Record(
        method="GET",
        url=url,
        status_code=200,
        headers=Headers({"Content-Type": "text/html"}),
        body=body,
        created_at=created_at,
    )


@pytest.fixture(params=["memory", "sqlite"])
async def any_storage(request):
    if request.param == "memory":
        yield AsyncInMemoryStorage()
        return
    storage = AsyncSqliteStorage(connection=await anysqlite.connect(":memory:"))
    yield storage
    await storage.close()


@pytest.mark.anyio
async def test_create_store_is_idempotent(any_storage: AsyncBaseStorage):
    assert await any_storage.create_store("seva-v2") is True
    assert await any_storage.create_store("seva-v2") is False
    assert await any_storage.list_stores() == ["seva-v2"]


@pytest.mark.anyio
async def test_put_overwrites_whole_record(any_storage: AsyncBaseStorage):
    record = make_record(body=b"first")
    await any_storage.put_record("seva-v2", record.key, record)
    await any_storage.put_record("seva-v2", record.key, make_record(body=b"second", created_at=2.0))

    stored = await any_storage.get_record("seva-v2", record.key)
    assert stored is not None
    assert stored.body == b"second"
    assert stored.created_at == 2.0
    assert await any_storage.list_keys("seva-v2") == [record.key]


@pytest.mark.anyio
async def test_put_creates_missing_store(any_storage: AsyncBaseStorage):
    record = make_record()
    await any_storage.put_record("seva-v2-images", record.key, record)

    assert await any_storage.list_stores() == ["seva-v2-images"]


@pytest.mark.anyio
async def test_missing_store_and_key_read_as_absent(any_storage: AsyncBaseStorage):
    assert await any_storage.get_record("nope", "GET https://seva.app/") is None
    await any_storage.create_store("seva-v2")
    assert await any_storage.get_record("seva-v2", "GET https://seva.app/") is None


@pytest.mark.anyio
async def test_delete_store_removes_records(any_storage: AsyncBaseStorage):
    record = make_record()
    await any_storage.put_record("seva-v1", record.key, record)
    await any_storage.create_store("seva-v2")

    assert await any_storage.delete_store("seva-v1") is True
    assert await any_storage.delete_store("seva-v1") is False
    assert await any_storage.list_stores() == ["seva-v2"]
    assert await any_storage.get_record("seva-v1", record.key) is None


@pytest.mark.anyio
async def test_keys_follow_insertion_order(any_storage: AsyncBaseStorage):
    for path in ("/a", "/b", "/c"):
        record = make_record(url=f"https://seva.app{path}")
        await any_storage.put_record("seva-v2", record.key, record)
    # Rewriting moves the key to the end.
    rewritten = make_record(url="https://seva.app/a")
    await any_storage.put_record("seva-v2", rewritten.key, rewritten)

    assert await any_storage.list_keys("seva-v2") == [
        "GET https://seva.app/b",
        "GET https://seva.app/c",
        "GET https://seva.app/a",
    ]


@pytest.mark.anyio
async def test_in_memory_capacity_evicts_oldest():
    storage = AsyncInMemoryStorage(max_entries={"images": 2})
    for name in ("a", "b", "c"):
        record = make_record(url=f"https://seva.app/{name}.png")
        await storage.put_record("seva-v2-images", record.key, record)
        await storage.put_record("seva-v2", record.key, record)

    assert await storage.list_keys("seva-v2-images") == [
        "GET https://seva.app/b.png",
        "GET https://seva.app/c.png",
    ]
    assert len(await storage.list_keys("seva-v2")) == 3


def test_in_memory_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        AsyncInMemoryStorage(max_entries={"*": 0})


@pytest.mark.anyio
async def test_sqlite_storage_survives_reconnect(use_temp_dir):
    storage = AsyncSqliteStorage(database_path="cache/offgrid.db")
    record = make_record()
    await storage.put_record("seva-v2", record.key, record)
    await storage.close()

    reopened = AsyncSqliteStorage(database_path="cache/offgrid.db")
    stored = await reopened.get_record("seva-v2", record.key)
    await reopened.close()

    assert stored is not None
    assert stored.body == b"hello"


def test_pack_roundtrip_keeps_repeated_headers():
    record = make_record()
    record.headers["Set-Cookie"] = "a=1"
    record.headers["Set-Cookie"] = "b=2"

    unpacked = unpack(pack(record))

    assert unpacked is not None
    assert unpacked.headers.get_list("set-cookie") == ["a=1", "b=2"]
    assert unpacked == record


def test_unpack_corrupt_data_reads_as_absent():
    assert unpack(b"\xc1not msgpack") is None
    assert unpack(None) is None


@pytest.mark.anyio
async def test_concurrent_writes_resolve_last_write_wins(any_storage: AsyncBaseStorage):
    registry = StoreRegistry(any_storage, "seva-v2")
    shared_key = "GET https://seva.app/index.html"
    bodies = [f"version {i}".encode() for i in range(10)]

    async with anyio.create_task_group() as tg:
        for i, body in enumerate(bodies):
            tg.start_soon(
                registry.put, "seva-v2", shared_key, make_record("https://seva.app/index.html", body, float(i))
            )
            url = f"https://seva.app/item/{i}"
            tg.start_soon(registry.put, "seva-v2-runtime", f"GET {url}", make_record(url, body, float(i)))

    stored = await registry.get("seva-v2", shared_key)
    assert stored is not None
    assert stored.body in bodies
    assert stored.created_at == float(bodies.index(stored.body))
    assert await registry.keys("seva-v2") == [shared_key]
    assert sorted(await registry.keys("seva-v2-runtime")) == sorted(f"GET https://seva.app/item/{i}" for i in range(10))


@pytest.mark.anyio
async def test_in_memory_wildcard_capacity_bounds_shared_store():
    storage = AsyncInMemoryStorage(max_entries={"*": 1, "images": 2})
    for name in ("a", "b"):
        record = make_record(url=f"https://seva.app/{name}.css")
        await storage.put_record("seva-v2", record.key, record)
        await storage.put_record("seva-v2-images", record.key, record)

    assert await storage.list_keys("seva-v2") == ["GET https://seva.app/b.css"]
    assert len(await storage.list_keys("seva-v2-images")) == 2


def test_in_memory_rejects_shared_capacity_key():
    with pytest.raises(ValueError, match="shared"):
        AsyncInMemoryStorage(max_entries={"shared": 10})
