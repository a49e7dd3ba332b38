from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    APP_TITLE: str = Field("Storefront Realtime")
    APP_VERSION: str = Field("1.0.0")
    LOG_LEVEL: str = Field("INFO")
    CORS_ALLOW_ORIGINS: str = Field("http://localhost:3000,*")

    # Database (document store)
    DATABASE_URL: str = Field("sqlite+aiosqlite:///./storefront.db")

    # Redis (presence store)
    REDIS_URL: str = Field("redis://localhost:6379/0")

    # JWT
    JWT_SECRET_KEY: str = Field("replace-me-with-strong-secret")
    JWT_ALGORITHM: str = Field("HS256")
    ACCESS_TOKEN_EXPIRE_SECONDS: int = Field(60 * 60 * 24 * 7)

    # Presence
    PRESENCE_BACKEND: str = Field("redis")  # redis | memory
    PRESENCE_TTL_SECONDS: int = Field(5 * 60)
    PRESENCE_REAP_INTERVAL_SECONDS: int = Field(30)

    # Broadcast rules
    LOW_STOCK_THRESHOLD: int = Field(10)

    # Periodic emitter
    PERIODIC_UPDATES_ENABLED: bool = Field(True)
    STATS_INTERVAL_SECONDS: float = Field(30)
    VISITOR_INTERVAL_SECONDS: float = Field(10)
    HEARTBEAT_INTERVAL_SECONDS: float = Field(5)

    # Simulated traffic ranges (min inclusive, max exclusive)
    VISITOR_MIN: int = Field(10)
    VISITOR_MAX: int = Field(60)
    PAGE_VIEWS_MIN: int = Field(50)
    PAGE_VIEWS_MAX: int = Field(150)


settings = Settings()


STATUS_MESSAGES = {
    "pending": "Your order is being processed",
    "confirmed": "Your order has been confirmed",
    "processing": "Your order is being prepared",
    "shipped": "Your order has been shipped",
    "delivered": "Your order has been delivered",
    "cancelled": "Your order has been cancelled",
}
DEFAULT_STATUS_MESSAGE: str = "Order status updated"

ANNOUNCEMENTS = [
    {"id": "1", "message": "Welcome to Fragransia", "type": "info"},
]
