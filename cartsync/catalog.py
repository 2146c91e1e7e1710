"""
Catalog lookups (product id -> price/stock).

The catalog is owned elsewhere; the cart engine only reads it.
"""
import logging
from typing import Dict, Iterable, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from cartsync.config import Config
from cartsync.models import Product
from cartsync.redis_client import AsyncRedisClient

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    """Read-only product lookup; None means the product no longer exists"""

    async def get_product(self, product_id: str) -> Optional[Product]:
        ...


class InMemoryCatalog:
    """Dict-backed catalog for local runs and tests"""

    def __init__(self, products: Iterable[Product] = ()):
        self._products: Dict[str, Product] = {p.id: p for p in products}

    def put(self, product: Product) -> None:
        self._products[product.id] = product

    def remove(self, product_id: str) -> None:
        self._products.pop(product_id, None)

    def set_stock(self, product_id: str, stock: int) -> None:
        self._products[product_id] = self._products[product_id].model_copy(update={"stock": stock})

    async def get_product(self, product_id: str) -> Optional[Product]:
        product = self._products.get(product_id)
        return product.model_copy() if product else None


class RedisCatalog:
    """Catalog backed by product hashes in Redis"""

    def __init__(self, redis: AsyncRedisClient, prefix: str = Config.CATALOG_KEY_PREFIX):
        self.redis = redis
        self.prefix = prefix

    async def get_product(self, product_id: str) -> Optional[Product]:
        data = await self.redis.hgetall(f"{self.prefix}{product_id}")
        if not data:
            return None
        try:
            return Product(id=product_id, **{k: v for k, v in data.items() if k != "id"})
        except PydanticValidationError as e:
            logger.warning(f"Ignoring malformed catalog entry {product_id}: {e}")
            return None
