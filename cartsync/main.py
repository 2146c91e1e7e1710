"""
FastAPI application exposing the cart engine to the storefront UI.
"""
import time
from typing import Optional
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from cartsync.catalog import Catalog, RedisCatalog
from cartsync.checkout_service import CheckoutService
from cartsync.config import Config
from cartsync.exceptions import (
    ProductNotFoundError,
    StockExceededError,
    StorageUnavailableError,
    ValidationError,
)
from cartsync.middleware import MetricsMiddleware
from cartsync.models import (
    AddItemRequest,
    CartSnapshot,
    CheckoutResponse,
    SessionIdentity,
    SignInRequest,
    UpdateQuantityRequest,
)
from cartsync.redis_client import AsyncRedisClient, RedisClient
from cartsync.sessions import CartSession, SessionRegistry


def build_registry(catalog: Optional[Catalog] = None) -> SessionRegistry:
    """Wire the registry against the configured Redis"""
    remote_redis = AsyncRedisClient()
    return SessionRegistry(
        local_storage=RedisClient(),
        remote_redis=remote_redis,
        catalog=catalog or RedisCatalog(remote_redis)
    )


def create_app(
    registry: Optional[SessionRegistry] = None,
    checkout_service: Optional[CheckoutService] = None
) -> FastAPI:
    registry = registry or build_registry()
    checkout_service = checkout_service or CheckoutService()

    app = FastAPI(
        title="Cart API",
        description="Shopping cart with anonymous/authenticated reconciliation",
        version="1.0.0"
    )
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)

    async def get_session(
        request: Request,
        device_id: str = Header(..., alias="X-Device-ID", description="Device identifier")
    ) -> CartSession:
        if not device_id.strip():
            raise HTTPException(status_code=400, detail="Device ID is required")
        session = await registry.get(device_id.strip())
        # Read by MetricsMiddleware once the response is ready
        request.state.cart_session = session
        return session

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint.
        Always returns HTTP 200; reports store connectivity separately.
        """
        ping_start = time.time()
        local_ok = registry.local_storage.ping()
        remote_ok = await registry.remote_redis.ping()
        latency_ms = round((time.time() - ping_start) * 1000, 2)

        return JSONResponse(
            status_code=200,
            content={
                "status": "healthy",
                "service": "cart-api",
                "redis": {
                    "local": "healthy" if local_ok else "unhealthy",
                    "remote": "healthy" if remote_ok else "unhealthy",
                    "latency_ms": latency_ms
                },
                "timestamp": time.time()
            }
        )

    @app.post("/session/sign-in", response_model=CartSnapshot)
    async def sign_in(request: SignInRequest, session: CartSession = Depends(get_session)):
        """Bind the device's session to a user and reconcile its cart"""
        await session.identity.publish(SessionIdentity.authenticated(request.user_id))
        return session.store.view()

    @app.post("/session/sign-out", response_model=CartSnapshot)
    async def sign_out(session: CartSession = Depends(get_session)):
        await session.identity.publish(SessionIdentity.anonymous())
        return session.store.view()

    @app.get("/cart", response_model=CartSnapshot)
    async def get_cart(session: CartSession = Depends(get_session)):
        return await session.store.snapshot()

    @app.post("/cart/items", response_model=CartSnapshot)
    async def add_cart_item(request: AddItemRequest, session: CartSession = Depends(get_session)):
        """Add one unit of a product, up to its stock"""
        return await session.store.add(request.product_id)

    @app.put("/cart/items/{product_id}", response_model=CartSnapshot)
    async def update_cart_item(
        product_id: str,
        request: UpdateQuantityRequest,
        session: CartSession = Depends(get_session)
    ):
        return await session.store.update_quantity(product_id, request.quantity)

    @app.delete("/cart/items/{product_id}", response_model=CartSnapshot)
    async def remove_cart_item(product_id: str, session: CartSession = Depends(get_session)):
        """Remove a line; removing an absent line succeeds"""
        return await session.store.remove(product_id)

    @app.delete("/cart", response_model=CartSnapshot)
    async def clear_cart(session: CartSession = Depends(get_session)):
        return await session.store.clear()

    @app.post("/checkout", response_model=CheckoutResponse)
    async def checkout(session: CartSession = Depends(get_session)):
        """Record the order and clear the cart"""
        return await checkout_service.start_checkout(session.store)

    # Error handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation error", "message": str(exc)}
        )

    @app.exception_handler(StockExceededError)
    async def stock_exceeded_handler(request: Request, exc: StockExceededError):
        return JSONResponse(
            status_code=409,
            content={"error": "Stock exceeded", "message": str(exc), "stock": exc.stock}
        )

    @app.exception_handler(ProductNotFoundError)
    async def product_not_found_handler(request: Request, exc: ProductNotFoundError):
        return JSONResponse(
            status_code=404,
            content={"error": "Product not found", "message": str(exc)}
        )

    @app.exception_handler(StorageUnavailableError)
    async def storage_error_handler(request: Request, exc: StorageUnavailableError):
        return JSONResponse(
            status_code=503,
            content={"error": "Service unavailable", "message": "Cart storage is unreachable, please retry"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
