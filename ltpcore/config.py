from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App
    APP_ENV: str = "local"
    CORS_ORIGINS: str = "*"  # comma-separated. Use * for local

    # Vendor
    MASSIVE_API_KEY: str = ""
    MARKET_BASE_URL: str = "https://api.massive.com"
    HTTP_TIMEOUT_S: float = 10.0

    # Cache: "redis" uses Redis as the shared tier, "memory" keeps only the local tier
    CACHE_BACKEND: str = "redis"
    CACHE_NAMESPACE: str = "market"
    REDIS_URL: str = "redis://localhost:6379/0"
    HOT_CACHE_FRESHNESS_MS: int = 5000

    # Streaming client
    STREAM_URL: str = "ws://localhost:8080/market-stream"
    QUOTE_REST_URL: str = "http://localhost:8000/api/market/quote"
    STREAM_MAX_RECONNECT_ATTEMPTS: int = 10
    STREAM_BASE_DELAY_S: float = 1.0
    STREAM_MAX_DELAY_S: float = 30.0
    STREAM_THROTTLE_S: float = 0.2
    STREAM_POLL_INTERVAL_S: float = 5.0


settings = Settings()
