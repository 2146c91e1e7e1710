"""
Shared fixtures: fakeredis-backed stores, an in-memory catalog, and a
started CartStore for one device.
"""
import fakeredis
import pytest
import redis

from cartsync.cart_store import CartStore
from cartsync.catalog import InMemoryCatalog
from cartsync.identity import IdentityFeed
from cartsync.local_cache import LocalCartCache
from cartsync.redis_client import AsyncRedisClient, RedisClient
from cartsync.remote_store import RemoteCartAdapter
from tests.factories import make_product


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog([
        make_product("A", "10.00", 5),
        make_product("B", "2.50", 3),
        make_product("C", "7.00", 4),
        make_product("P", "1.25", 2),
    ])


@pytest.fixture
def local_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def remote_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def local_storage(local_server) -> RedisClient:
    return RedisClient(
        client=fakeredis.FakeRedis(server=local_server, decode_responses=True),
        max_retries=1
    )


@pytest.fixture
def remote_redis(remote_server) -> AsyncRedisClient:
    return AsyncRedisClient(
        client=fakeredis.FakeAsyncRedis(server=remote_server, decode_responses=True),
        max_retries=1
    )


@pytest.fixture
def local_cache(local_storage) -> LocalCartCache:
    return LocalCartCache(local_storage, "device-1")


@pytest.fixture
def remote(remote_redis, catalog) -> RemoteCartAdapter:
    return RemoteCartAdapter(remote_redis, catalog)


@pytest.fixture
def identity() -> IdentityFeed:
    return IdentityFeed()


@pytest.fixture
async def store(identity, catalog, local_cache, remote):
    cart_store = CartStore(identity, catalog, local_cache, remote)
    await cart_store.start()
    yield cart_store
    cart_store.close()


class Outage:
    """Makes every command on a client fail with a connection error"""

    def __init__(self, client):
        self.client = client

    def start(self) -> None:
        async def unavailable(*args, **kwargs):
            raise redis.exceptions.ConnectionError("Connection refused")

        self.client.execute_command = unavailable

    def stop(self) -> None:
        del self.client.execute_command


@pytest.fixture
def remote_outage(remote_redis) -> Outage:
    return Outage(remote_redis.client)
