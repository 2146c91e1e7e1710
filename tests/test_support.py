"""
Tests for the catalog, identity feed, and redis wrappers.
"""
import pytest
import redis

from cartsync.catalog import InMemoryCatalog, RedisCatalog
from cartsync.config import Config
from cartsync.exceptions import RemoteUnavailableError, StorageUnavailableError
from cartsync.identity import IdentityFeed
from cartsync.models import SessionIdentity
from tests.factories import make_product


class TestRedisCatalog:

    @pytest.mark.asyncio
    async def test_reads_product_hash(self, remote_redis):
        # Arrange
        await remote_redis.client.hset("product:A", mapping={
            "name": "Lamp", "price": "19.90", "stock": "4", "category": "home"
        })
        catalog = RedisCatalog(remote_redis)

        # Act
        product = await catalog.get_product("A")

        # Assert
        assert product.id == "A"
        assert product.stock == 4
        assert str(product.price) == "19.90"

    @pytest.mark.asyncio
    async def test_missing_product_is_none(self, remote_redis):
        assert await RedisCatalog(remote_redis).get_product("nope") is None

    @pytest.mark.asyncio
    async def test_malformed_product_is_none(self, remote_redis):
        await remote_redis.client.hset("product:A", mapping={"price": "-1", "stock": "x"})

        assert await RedisCatalog(remote_redis).get_product("A") is None


class TestInMemoryCatalog:

    @pytest.mark.asyncio
    async def test_returned_products_are_copies(self):
        catalog = InMemoryCatalog([make_product("A", "1.00", 3)])

        product = await catalog.get_product("A")
        product.stock = 0

        assert (await catalog.get_product("A")).stock == 3


class TestIdentityFeed:

    @pytest.mark.asyncio
    async def test_publish_delivers_to_listeners_and_tracks_current(self):
        feed = IdentityFeed()
        received = []

        async def listener(identity):
            received.append(identity)

        unsubscribe = feed.on_change(listener)
        await feed.publish(SessionIdentity.authenticated("user-1"))
        unsubscribe()
        await feed.publish(SessionIdentity.anonymous())

        assert received == [SessionIdentity.authenticated("user-1")]
        assert not feed.current.is_authenticated

    def test_authenticated_identity_needs_user(self):
        with pytest.raises(ValueError):
            SessionIdentity.authenticated("")


class TestRedisWrappers:

    def test_sync_failures_raise_storage_unavailable(self, local_storage, monkeypatch):
        def refuse(*args, **kwargs):
            raise redis.exceptions.ConnectionError("Connection refused")

        monkeypatch.setattr(local_storage.client, "execute_command", refuse)

        with pytest.raises(StorageUnavailableError):
            local_storage.get("key")
        assert local_storage.ping() is False

    @pytest.mark.asyncio
    async def test_async_retries_before_giving_up(self, remote_redis, monkeypatch):
        remote_redis.max_retries = 3
        remote_redis.initial_backoff = 0.001
        calls = []

        async def flaky(*args, **kwargs):
            calls.append(args)
            if len(calls) < 3:
                raise redis.exceptions.ConnectionError("Connection reset")
            return "value"

        monkeypatch.setattr(remote_redis.client, "execute_command", flaky)

        assert await remote_redis.get("key") == "value"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_async_non_retryable_error(self, remote_redis, monkeypatch):
        remote_redis.max_retries = 3
        calls = []

        async def denied(*args, **kwargs):
            calls.append(args)
            raise redis.exceptions.AuthenticationError("invalid password")

        monkeypatch.setattr(remote_redis.client, "execute_command", denied)

        with pytest.raises(RemoteUnavailableError):
            await remote_redis.hgetall("key")
        assert len(calls) == 1


class TestConfig:

    def test_redis_url_plain(self, monkeypatch):
        monkeypatch.setattr(Config, "REDIS_AUTH_TOKEN", None)
        monkeypatch.setattr(Config, "REDIS_USE_TLS", False)
        monkeypatch.setattr(Config, "REDIS_HOST", "cache.local")
        monkeypatch.setattr(Config, "REDIS_PORT", 6380)
        monkeypatch.setattr(Config, "REDIS_DB", 2)

        assert Config.redis_url() == "redis://cache.local:6380/2"

    def test_redis_url_with_tls_and_token(self, monkeypatch):
        monkeypatch.setattr(Config, "REDIS_AUTH_TOKEN", "s3cret")
        monkeypatch.setattr(Config, "REDIS_USE_TLS", True)
        monkeypatch.setattr(Config, "REDIS_HOST", "cache.local")
        monkeypatch.setattr(Config, "REDIS_PORT", 6379)
        monkeypatch.setattr(Config, "REDIS_DB", 0)

        assert Config.redis_url() == "rediss://:s3cret@cache.local:6379/0"
