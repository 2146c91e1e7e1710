"""
Checkout hand-off: the order side consumes the cart once, then clears it.
"""
import logging
import uuid
from typing import Awaitable, Callable, Optional

from cartsync.cart_store import CartStore
from cartsync.exceptions import ValidationError
from cartsync.models import CartSnapshot, CheckoutResponse

logger = logging.getLogger(__name__)

OrderRecorder = Callable[[str, CartSnapshot], Awaitable[None]]


async def log_order(order_id: str, snapshot: CartSnapshot) -> None:
    """Default recorder; order persistence lives outside this service"""
    logger.info(f"[SIMULATED DB] Order created: {order_id}, Total: {snapshot.total}")


class CheckoutService:
    """Service for checkout operations"""

    def __init__(self, recorder: Optional[OrderRecorder] = None):
        self.recorder = recorder or log_order

    async def start_checkout(self, store: CartStore) -> CheckoutResponse:
        """
        Checkout process:
        1. Re-read the cart against the catalog
        2. Reject an empty cart
        3. Hand the snapshot to the order recorder
        4. Clear the cart exactly once, after the order is recorded
        """
        snapshot = await store.refresh()
        if not snapshot.lines:
            raise ValidationError("Cannot checkout empty cart")

        order_id = str(uuid.uuid4())
        await self.recorder(order_id, snapshot)
        await store.clear()

        return CheckoutResponse(
            order_id=order_id,
            total=snapshot.total,
            items=snapshot.lines,
            message="Order placed successfully. Cart has been cleared."
        )
