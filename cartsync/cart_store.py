"""
Public cart unit: in-memory cart, mutation routing, and state publishing.

Every mutation runs inside the store's queue (an asyncio.Lock, which grants
waiters in FIFO order), so for one cart a mutation's read phase never starts
before the previous mutation's write has landed and the in-memory cart has
been updated. Identity changes go through the same queue.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Callable, List, Optional

from cartsync.catalog import Catalog
from cartsync.exceptions import (
    ProductNotFoundError,
    StockExceededError,
    StorageUnavailableError,
)
from cartsync.identity import Identity
from cartsync.local_cache import LocalCartCache
from cartsync.models import (
    Cart,
    CartLine,
    CartSnapshot,
    Product,
    SessionIdentity,
    SnapshotLine,
)
from cartsync.reconciliation import ReconciliationEngine
from cartsync.remote_store import RemoteCartAdapter
from cartsync.stock_guard import clamp

logger = logging.getLogger(__name__)

CartListener = Callable[[CartSnapshot], None]


class _LocalBackend:
    """Routes mutations to the device cache; never suspends"""

    stores_snapshots = True

    def __init__(self, cache: LocalCartCache):
        self.cache = cache

    async def load(self) -> Cart:
        return self.cache.load()

    async def read(self, product_id: str) -> Optional[CartLine]:
        return self.cache.load().lines.get(product_id)

    async def write(self, product_id: str, quantity: int, product: Product) -> CartLine:
        cart = self.cache.load()
        line = CartLine(product_id=product_id, quantity=quantity, product=product)
        cart.put(line)
        self.cache.save(cart)
        return line

    async def delete(self, product_id: str) -> None:
        cart = self.cache.load()
        if cart.discard(product_id) is not None:
            self.cache.save(cart)

    async def clear(self) -> None:
        self.cache.clear()


class _RemoteBackend:
    """Routes mutations to the user's remote cart"""

    stores_snapshots = False

    def __init__(self, remote: RemoteCartAdapter, cart_id: int):
        self.remote = remote
        self.cart_id = cart_id

    async def load(self) -> Cart:
        return Cart.from_lines(await self.remote.list_items(self.cart_id))

    async def read(self, product_id: str) -> Optional[CartLine]:
        return await self.remote.get_item(self.cart_id, product_id)

    async def write(self, product_id: str, quantity: int, product: Product) -> CartLine:
        row_id = await self.remote.upsert_item(self.cart_id, product_id, quantity)
        return CartLine(product_id=product_id, quantity=quantity, remote_row_id=row_id, product=product)

    async def delete(self, product_id: str) -> None:
        await self.remote.delete_item(self.cart_id, product_id)

    async def clear(self) -> None:
        await self.remote.clear_items(self.cart_id)


class CartStore:
    """Holds the active cart and serializes every change to it"""

    def __init__(
        self,
        identity: Identity,
        catalog: Catalog,
        local_cache: LocalCartCache,
        remote: RemoteCartAdapter,
        engine: Optional[ReconciliationEngine] = None
    ):
        self.identity = identity
        self.catalog = catalog
        self.local_cache = local_cache
        self.remote = remote
        self.engine = engine or ReconciliationEngine(local_cache, remote, catalog)

        self._cart = Cart()
        self._active_identity = SessionIdentity.anonymous()
        self._cart_id: Optional[int] = None
        self._queue = asyncio.Lock()
        self._listeners: List[CartListener] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

    # Lifecycle

    async def start(self) -> None:
        """Subscribe to identity changes and load the cart for the current identity"""
        if self._unsubscribe is None:
            self._unsubscribe = self.identity.on_change(self.handle_identity)
        await self.handle_identity(self.identity.current)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def busy(self) -> bool:
        """True while a mutation or reconciliation holds the queue"""
        return self._queue.locked()

    @property
    def active_identity(self) -> SessionIdentity:
        return self._active_identity

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a snapshot listener; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Identity transitions

    async def handle_identity(self, identity: SessionIdentity) -> None:
        async with self._queue:
            previous = self._active_identity
            if previous.is_authenticated and identity != previous:
                # Sign-out, or a user switch treated as sign-out then sign-in
                self._reset_to_anonymous()

            if identity.is_authenticated:
                result = await self.engine.sign_in(identity.user_id)
                if result is not None:
                    self._cart_id = result.cart_id
                    self._cart = result.cart
                    self._active_identity = identity
                    self._publish()
                    self._cart = await self._settle(self._backend(), result.cart)
            else:
                self._active_identity = identity
                self._cart = await self._settle(self._backend(), self.local_cache.load())
            self._publish()

    def _reset_to_anonymous(self) -> None:
        self._cart = Cart()
        self._cart_id = None
        self._active_identity = SessionIdentity.anonymous()
        self.engine.sign_out()

    # Mutations

    async def add(self, product_id: str) -> CartSnapshot:
        """
        Add one unit of a product.

        Raises:
            StockExceededError: The line is already at the stock ceiling
            ProductNotFoundError: The catalog cannot resolve the product
            StorageUnavailableError: The backend write failed; nothing changed
        """
        async with self._queue:
            backend = self._backend()
            product = await self._require_product(product_id)
            current = await backend.read(product_id)
            current_quantity = current.quantity if current else 0
            quantity = clamp(current_quantity + 1, product.stock)
            if quantity <= current_quantity:
                raise StockExceededError(product_id, product.stock)
            await self._apply(backend, product, quantity)
        return self.view()

    async def update_quantity(self, product_id: str, requested: int) -> CartSnapshot:
        """Set a line's quantity, clamped to stock; zero or less removes the line"""
        if requested <= 0:
            return await self.remove(product_id)

        async with self._queue:
            backend = self._backend()
            current = await backend.read(product_id)
            product = await self.catalog.get_product(product_id)
            if product is None and current is None:
                raise ProductNotFoundError(product_id)

            quantity = clamp(requested, product.stock) if product else 0
            if quantity == 0:
                await self._delete(backend, product_id)
            elif current is None or quantity != current.quantity or product_id not in self._cart.lines:
                await self._apply(backend, product, quantity)
        return self.view()

    async def remove(self, product_id: str) -> CartSnapshot:
        """Delete a line; removing an absent line is a no-op"""
        async with self._queue:
            await self._delete(self._backend(), product_id)
        return self.view()

    async def clear(self) -> CartSnapshot:
        """Empty the active cart (used once an order has been recorded)"""
        async with self._queue:
            backend = self._backend()
            previous = self._cart
            self._cart = Cart()
            self._publish()
            try:
                await backend.clear()
            except StorageUnavailableError:
                logger.warning("Clearing cart failed; restoring previous contents")
                self._cart = previous
                self._publish()
                raise
        return self.view()

    async def refresh(self) -> CartSnapshot:
        """Re-read the active backend and reconcile every line with the catalog"""
        async with self._queue:
            backend = self._backend()
            self._cart = await self._settle(backend, await backend.load())
            self._publish()
        return self.view()

    # Reads

    async def total(self) -> Decimal:
        """Sum of quantity x current catalog price, recomputed on every call"""
        async with self._queue:
            await self._reprice(self._backend())
        return self._cart.total()

    def view(self) -> CartSnapshot:
        """Snapshot of the in-memory cart without touching the catalog"""
        lines = [
            SnapshotLine(
                product_id=line.product_id,
                name=line.product.name,
                image=line.product.image,
                price=line.product.price,
                stock=line.product.stock,
                quantity=line.quantity,
                subtotal=line.product.price * line.quantity
            )
            for line in self._cart.lines.values()
            if line.product is not None
        ]
        return CartSnapshot(
            lines=lines,
            total=self._cart.total(),
            item_count=self._cart.item_count(),
            user_id=self._active_identity.user_id
        )

    async def snapshot(self) -> CartSnapshot:
        """
        Render-ready cart with prices and stock fetched fresh from the catalog.

        Lines whose product no longer resolves are dropped from the presented cart.
        """
        async with self._queue:
            await self._reprice(self._backend())
        return self.view()

    # Internals

    def _backend(self):
        if self._active_identity.is_authenticated:
            return _RemoteBackend(self.remote, self._cart_id)
        return _LocalBackend(self.local_cache)

    async def _require_product(self, product_id: str) -> Product:
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def _apply(self, backend, product: Product, quantity: int) -> None:
        """Optimistically set a line, then persist it; roll back if the write fails"""
        previous = self._cart.lines.get(product.id)
        self._cart.put(CartLine(
            product_id=product.id,
            quantity=quantity,
            remote_row_id=previous.remote_row_id if previous else None,
            product=product
        ))
        self._publish()
        try:
            line = await backend.write(product.id, quantity, product)
        except StorageUnavailableError:
            logger.warning(f"Write for product {product.id} failed; rolling back")
            self._restore(product.id, previous)
            raise
        self._cart.put(line)
        self._publish()

    async def _delete(self, backend, product_id: str) -> None:
        previous = self._cart.discard(product_id)
        if previous is not None:
            self._publish()
        try:
            await backend.delete(product_id)
        except StorageUnavailableError:
            logger.warning(f"Delete for product {product_id} failed; rolling back")
            self._restore(product_id, previous)
            raise

    def _restore(self, product_id: str, previous: Optional[CartLine]) -> None:
        if previous is None:
            self._cart.discard(product_id)
        else:
            self._cart.put(previous)
        self._publish()

    async def _reprice(self, backend) -> None:
        """
        Refresh every in-memory line from the catalog.

        Lines whose product no longer resolves are dropped from memory. The
        device cache is rewritten when its display snapshot is stale.
        """
        for product_id, line in list(self._cart.lines.items()):
            product = await self.catalog.get_product(product_id)
            if product is None:
                logger.info(f"Dropping line for product {product_id}: no longer in catalog")
                self._cart.discard(product_id)
                continue
            if backend.stores_snapshots and product != line.product:
                line = await backend.write(product_id, line.quantity, product)
            self._cart.put(line.model_copy(update={"product": product}))

    async def _settle(self, backend, cart: Cart) -> Cart:
        """
        Bring loaded lines in line with the catalog.

        Lines whose product vanished or is out of stock are deleted, lines above
        the current stock are reclamped, and product snapshots are refreshed.
        """
        settled = Cart()
        for product_id, line in cart.lines.items():
            product = await self.catalog.get_product(product_id)
            quantity = clamp(line.quantity, product.stock) if product else 0
            if quantity == 0:
                logger.info(f"Removing line for product {product_id}: unavailable")
                await backend.delete(product_id)
                continue
            if quantity != line.quantity or (backend.stores_snapshots and product != line.product):
                line = await backend.write(product_id, quantity, product)
            settled.put(line.model_copy(update={"product": product}))
        return settled

    def _publish(self) -> None:
        snapshot = self.view()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Cart listener failed")
