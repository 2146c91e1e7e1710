"""
Durable, synchronous cart cache for anonymous sessions.

One key per device holds a JSON list of
``{product_id, quantity, product}`` entries in line order. The product
snapshot lets an anonymous cart render without a catalog round trip; it is
never authoritative for stock.
"""
import json
import logging

from pydantic import ValidationError as PydanticValidationError

from cartsync.config import Config
from cartsync.exceptions import LocalCacheCorruptError
from cartsync.models import Cart, CartLine, LocalCartEntry
from cartsync.redis_client import RedisClient

logger = logging.getLogger(__name__)


def encode_cart(cart: Cart) -> str:
    entries = [
        LocalCartEntry(product_id=line.product_id, quantity=line.quantity, product=line.product)
        for line in cart.lines.values()
    ]
    return json.dumps([entry.model_dump(mode="json") for entry in entries])


def decode_cart(raw: str) -> Cart:
    """
    Decode a stored cart.

    Raises:
        LocalCacheCorruptError: If the payload is not a JSON list
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise LocalCacheCorruptError(f"Local cart is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise LocalCacheCorruptError(f"Local cart must be a list, got {type(data).__name__}")

    cart = Cart()
    for position, item in enumerate(data):
        try:
            entry = LocalCartEntry.model_validate(item)
        except PydanticValidationError as e:
            # Skip invalid entries
            logger.warning(f"Skipping malformed local cart entry at position {position}: {e}")
            continue
        if entry.product_id in cart.lines:
            logger.warning(f"Skipping duplicate local cart entry for product {entry.product_id}")
            continue
        cart.put(CartLine(product_id=entry.product_id, quantity=entry.quantity, product=entry.product))
    return cart


class LocalCartCache:
    """Anonymous cart scoped to one device"""

    def __init__(
        self,
        storage: RedisClient,
        device_id: str,
        prefix: str = Config.LOCAL_CART_KEY_PREFIX,
        ttl: int = Config.LOCAL_CART_TTL_SECONDS
    ):
        self.storage = storage
        self.key = f"{prefix}{device_id}"
        self.ttl = ttl

    def load(self) -> Cart:
        """Load the cart; a missing or malformed value is an empty cart"""
        try:
            raw = self.storage.get(self.key)
        except UnicodeDecodeError as e:
            logger.warning(f"Local cart cache is not valid UTF-8, starting empty: {e}")
            return Cart()
        if raw is None:
            return Cart()
        try:
            return decode_cart(raw)
        except LocalCacheCorruptError as e:
            logger.warning(f"Local cart cache is corrupt, starting empty: {e}")
            return Cart()

    def save(self, cart: Cart) -> None:
        if cart.is_empty():
            self.storage.delete(self.key)
            return
        self.storage.set(self.key, encode_cart(cart), ex=self.ttl)

    def clear(self) -> None:
        self.storage.delete(self.key)
