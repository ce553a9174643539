import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me")

    # Admin credentials (single admin account)
    ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "admin@example.com")
    ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "")

    # Database (SQLite by default)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:///./storefront.db")
    SEED_ON_STARTUP: bool = _get_bool("SEED_ON_STARTUP", False)

    # Redis
    REDIS_ENABLED: bool = _get_bool("REDIS_ENABLED", True)
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)
    REDIS_STOCK_CHANNEL: str = os.getenv("REDIS_STOCK_CHANNEL", "stock-updates")

    # Cart
    CART_BACKEND: str = os.getenv("CART_BACKEND", "redis")
    CART_TTL_SECONDS: int = int(os.getenv("CART_TTL_SECONDS", str(7 * 24 * 3600)))
    CART_COOKIE_NAME: str = os.getenv("CART_COOKIE_NAME", "cart-id")
    CART_EVICT_INTERVAL_SECONDS: float = float(os.getenv("CART_EVICT_INTERVAL_SECONDS", "300"))

    # Kafka
    KAFKA_ENABLED: bool = _get_bool("KAFKA_ENABLED", True)
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    KAFKA_CONNECT_ATTEMPTS: int = int(os.getenv("KAFKA_CONNECT_ATTEMPTS", "3"))
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "order-events")

    # Orders
    RESERVE_STOCK_ON_ORDER: bool = _get_bool("RESERVE_STOCK_ON_ORDER", True)
    ORDER_NUMBER_PREFIX: str = os.getenv("ORDER_NUMBER_PREFIX", "ORD")

    # Shop defaults, used until the settings row is edited
    DEFAULT_COMPANY_NAME: str = os.getenv("DEFAULT_COMPANY_NAME", "Storefront")
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "INR")
    DEFAULT_CURRENCY_SYMBOL: str = os.getenv("DEFAULT_CURRENCY_SYMBOL", "₹")

    @property
    def cart_backend(self) -> str:
        if not self.REDIS_ENABLED:
            return "memory"
        return self.CART_BACKEND.strip().lower()


settings = Settings()
