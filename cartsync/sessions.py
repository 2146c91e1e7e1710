"""
Per-device cart sessions for the HTTP surface.
"""
import asyncio
import logging
from typing import Dict

from pydantic import BaseModel, ConfigDict

from cartsync.cart_store import CartStore
from cartsync.catalog import Catalog
from cartsync.identity import IdentityFeed
from cartsync.local_cache import LocalCartCache
from cartsync.redis_client import AsyncRedisClient, RedisClient
from cartsync.remote_store import RemoteCartAdapter
from cartsync.utils import hash_identifier

logger = logging.getLogger(__name__)


class CartSession(BaseModel):
    """Identity feed and cart store of one device"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    identity: IdentityFeed
    store: CartStore


class SessionRegistry:
    """Creates and caches one started CartStore per device id"""

    def __init__(self, local_storage: RedisClient, remote_redis: AsyncRedisClient, catalog: Catalog):
        self.local_storage = local_storage
        self.remote_redis = remote_redis
        self.catalog = catalog
        self.remote = RemoteCartAdapter(remote_redis, catalog)
        self._sessions: Dict[str, CartSession] = {}
        self._lock = asyncio.Lock()

    async def get(self, device_id: str) -> CartSession:
        async with self._lock:
            session = self._sessions.get(device_id)
            if session is None:
                identity = IdentityFeed()
                store = CartStore(
                    identity=identity,
                    catalog=self.catalog,
                    local_cache=LocalCartCache(self.local_storage, device_id),
                    remote=self.remote
                )
                await store.start()
                session = CartSession(identity=identity, store=store)
                self._sessions[device_id] = session
                logger.info(f"Opened cart session for device {hash_identifier(device_id)}")
            return session

    def close(self) -> None:
        for session in self._sessions.values():
            session.store.close()
        self._sessions.clear()
