"""
Reconciliation of the anonymous cart with an authenticated cart at sign-in.

Per sign-in the engine is a one-shot: PENDING until the merge has run, then
DONE until sign-out. Duplicate sign-in notifications are therefore no-ops.

Merge policy:
    remote cart non-empty  -> remote wins, local cart discarded
    remote cart empty      -> local lines imported, reclamped to live stock
In both cases the local cache is cleared afterwards.
"""
import logging
from typing import Optional

from pydantic import BaseModel, Field

from cartsync.catalog import Catalog
from cartsync.local_cache import LocalCartCache
from cartsync.models import Cart, MergeOutcome, ReconciliationState
from cartsync.remote_store import RemoteCartAdapter
from cartsync.stock_guard import clamp
from cartsync.utils import hash_identifier

logger = logging.getLogger(__name__)


class ReconciliationResult(BaseModel):
    """Cart adopted after sign-in"""
    cart_id: int
    cart: Cart = Field(default_factory=Cart)
    outcome: MergeOutcome


class ReconciliationEngine:
    """Decides whether to import, discard, or ignore the local cart"""

    def __init__(self, local_cache: LocalCartCache, remote: RemoteCartAdapter, catalog: Catalog):
        self.local_cache = local_cache
        self.remote = remote
        self.catalog = catalog
        self.state = ReconciliationState.PENDING
        # Cart whose import was cut short by a remote failure
        self._interrupted_cart_id: Optional[int] = None

    async def sign_in(self, user_id: str) -> Optional[ReconciliationResult]:
        """
        Handle Anonymous -> Authenticated(user_id).

        Returns:
            The cart to adopt, or None when this sign-in was already reconciled

        Raises:
            RemoteUnavailableError: The local cache is kept and the state stays
                PENDING, so a redelivered sign-in retries the merge
        """
        if self.state is ReconciliationState.DONE:
            return None

        local_cart = self.local_cache.load()
        cart_id = await self.remote.ensure_cart(user_id)
        remote_lines = await self.remote.list_items(cart_id)
        resuming = self._interrupted_cart_id == cart_id

        if remote_lines and not resuming:
            outcome = MergeOutcome.REMOTE_WINS
            cart = Cart.from_lines(remote_lines)
            if not local_cart.is_empty():
                logger.info(
                    f"User {hash_identifier(user_id)} has a saved cart; "
                    f"discarding {len(local_cart.lines)} local lines"
                )
        elif local_cart.is_empty():
            outcome = MergeOutcome.NOTHING_TO_MERGE
            cart = Cart.from_lines(remote_lines)
        else:
            self._interrupted_cart_id = cart_id
            await self._import(cart_id, local_cart)
            cart = Cart.from_lines(await self.remote.list_items(cart_id))
            self._interrupted_cart_id = None
            outcome = MergeOutcome.IMPORTED

        self.local_cache.clear()
        self.state = ReconciliationState.DONE
        logger.info(f"Reconciled cart for user {hash_identifier(user_id)}: {outcome.value}")
        return ReconciliationResult(cart_id=cart_id, cart=cart, outcome=outcome)

    async def _import(self, cart_id: int, local_cart: Cart) -> None:
        for line in local_cart.lines.values():
            product = await self.catalog.get_product(line.product_id)
            if product is None:
                logger.info(f"Not importing product {line.product_id}: no longer in catalog")
                continue
            quantity = clamp(line.quantity, product.stock)
            if quantity == 0:
                logger.info(f"Not importing product {line.product_id}: out of stock")
                continue
            await self.remote.upsert_item(cart_id, line.product_id, quantity)

    def sign_out(self) -> None:
        """Handle Authenticated -> Anonymous"""
        self.state = ReconciliationState.PENDING
        self._interrupted_cart_id = None
        self.local_cache.clear()
