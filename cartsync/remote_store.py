"""
Asynchronous adapter for the remote cart store.

Scoped by user id: one ``cart`` header per user, one ``cart_item`` row per
(cart, product). A missing row is a normal outcome; connectivity and
authorization failures surface as RemoteUnavailableError from the redis
wrapper.
"""
import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from cartsync.atomic_scripts import AtomicScripts
from cartsync.catalog import Catalog
from cartsync.config import Config
from cartsync.models import CartLine
from cartsync.redis_client import AsyncRedisClient
from cartsync.utils import hash_identifier

logger = logging.getLogger(__name__)


class RemoteCartAdapter:
    """Client for the cart / cart_item relations"""

    def __init__(
        self,
        redis: AsyncRedisClient,
        catalog: Catalog,
        prefix: str = Config.REMOTE_KEY_PREFIX
    ):
        self.redis = redis
        self.catalog = catalog
        self.scripts = AtomicScripts(redis, prefix)

    async def ensure_cart(self, user_id: str) -> int:
        """Return the user's cart id, creating the header on first use"""
        return await self.scripts.ensure_cart(user_id)

    async def list_items(self, cart_id: int) -> List[CartLine]:
        """
        List the cart's rows joined with current catalog data.

        Rows whose product no longer resolves are left out.
        """
        flat = await self.scripts.list_items(cart_id)
        lines: List[CartLine] = []
        for i in range(0, len(flat), 3):
            row_id, product_id, quantity = flat[i:i + 3]
            product = await self.catalog.get_product(product_id)
            if product is None:
                logger.info(
                    f"Dropping row {row_id} from cart {hash_identifier(str(cart_id))}: "
                    f"product {product_id} no longer exists"
                )
                continue
            try:
                lines.append(CartLine(
                    product_id=product_id,
                    quantity=int(quantity),
                    remote_row_id=int(row_id),
                    product=product
                ))
            except (PydanticValidationError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed cart_item row {row_id}: {e}")
        return lines

    async def get_item(self, cart_id: int, product_id: str) -> Optional[CartLine]:
        """Look up one row; None when the cart has no row for the product"""
        row_id = await self.redis.hget(self.scripts.items_index_key(cart_id), product_id)
        if row_id is None:
            return None
        row = await self.redis.hgetall(f"{self.scripts.item_key_prefix()}{row_id}")
        if not row:
            return None
        return CartLine(
            product_id=product_id,
            quantity=int(row["quantity"]),
            remote_row_id=int(row_id)
        )

    async def upsert_item(self, cart_id: int, product_id: str, quantity: int) -> int:
        """Set the row's quantity, inserting the row if needed; returns the row id"""
        if quantity < 1:
            raise ValueError(f"cart_item quantity must be positive, got {quantity}")
        return await self.scripts.upsert_item(cart_id, product_id, quantity)

    async def delete_item(self, cart_id: int, product_id: str) -> None:
        """Delete the row for the product; a missing row is not an error"""
        await self.scripts.delete_item(cart_id, product_id)

    async def clear_items(self, cart_id: int) -> int:
        """Delete every row of the cart"""
        return await self.scripts.clear_items(cart_id)
