"""
Middleware for FastAPI: request logging with hashed device and user ids, and latency.
"""
import time
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from cartsync.utils import hash_identifier

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging and latency headers"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        device_id = request.headers.get("X-Device-ID")
        hashed_device_id = hash_identifier(device_id) if device_id else None

        # Log request (no PII)
        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "hashed_device_id": hashed_device_id,
                "remote_addr": request.client.host if request.client else None
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Error: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "hashed_device_id": hashed_device_id
                },
                exc_info=True
            )
            # Let FastAPI's exception handlers produce the response
            raise

        latency_ms = (time.time() - start_time) * 1000

        # Session is attached by the route dependency; the user id is known only after sign-in
        session = getattr(request.state, "cart_session", None)
        user_id = session.store.active_identity.user_id if session is not None else None
        hashed_user_id = hash_identifier(user_id) if user_id else None

        logger.info(
            f"Response: {request.method} {request.url.path} {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_ms": round(latency_ms, 2),
                "hashed_device_id": hashed_device_id,
                "hashed_user_id": hashed_user_id
            }
        )

        response.headers["X-Response-Time-Ms"] = f"{latency_ms:.2f}"
        return response
