"""
Configuration management for the cart engine.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
import boto3
from typing import Optional

logger = logging.getLogger(__name__)


def _get_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration"""

    # Application settings
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "cartsync")
    REGION: str = os.getenv("REGION", "ap-southeast-2")

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USE_TLS: bool = _get_bool("REDIS_USE_TLS", "false")

    # Key layout
    LOCAL_CART_KEY_PREFIX: str = os.getenv("LOCAL_CART_KEY_PREFIX", "guest_cart:")
    LOCAL_CART_TTL_SECONDS: int = int(os.getenv("LOCAL_CART_TTL_SECONDS", str(30 * 24 * 60 * 60)))  # 30 days
    REMOTE_KEY_PREFIX: str = os.getenv("REMOTE_KEY_PREFIX", "store:")
    CATALOG_KEY_PREFIX: str = os.getenv("CATALOG_KEY_PREFIX", "product:")

    # Remote retry policy
    REMOTE_MAX_RETRIES: int = int(os.getenv("REMOTE_MAX_RETRIES", "3"))
    REMOTE_INITIAL_BACKOFF: float = float(os.getenv("REMOTE_INITIAL_BACKOFF", "0.1"))
    REMOTE_MAX_BACKOFF: float = float(os.getenv("REMOTE_MAX_BACKOFF", "2.0"))

    # Redis connection settings
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_RETRY_ON_TIMEOUT: bool = True
    REDIS_MAX_CONNECTIONS: int = 50

    @classmethod
    def redis_url(cls) -> str:
        """Build the connection URL, rediss:// when TLS is enabled"""
        scheme = "rediss" if cls.REDIS_USE_TLS else "redis"
        auth = f":{cls.REDIS_AUTH_TOKEN}@" if cls.REDIS_AUTH_TOKEN else ""
        return f"{scheme}://{auth}{cls.REDIS_HOST}:{cls.REDIS_PORT}/{cls.REDIS_DB}"

    @classmethod
    def load_redis_secrets(cls) -> None:
        """Load Redis authentication token from AWS Secrets Manager"""
        if cls.REDIS_AUTH_TOKEN:
            return  # Already loaded from environment

        secret_name = os.getenv("REDIS_SECRET_NAME")
        if not secret_name:
            return  # No secret name provided, use no auth

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=secret_name)
            secret_data = json.loads(response["SecretString"])

            cls.REDIS_AUTH_TOKEN = secret_data.get("auth_token")
            if "endpoint" in secret_data:
                cls.REDIS_HOST = secret_data["endpoint"]
            cls.REDIS_USE_TLS = True
        except Exception as e:
            logger.warning(f"Could not load Redis secrets from Secrets Manager: {e}")
            # Continue without auth token (may fail on connection)


# Load secrets at module import
Config.load_redis_secrets()
