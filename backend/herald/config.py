from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    CORS_ORIGINS: list[str] = ["*"]
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis - intent queues between the registration API and the dispatcher.
    # Set to empty string to disable Redis (publishing then fails with 503).
    REDIS_URL: str = "redis://localhost:6379/0"

    # Used to namespace Redis keys when several deployments share a cluster.
    SERVER_DOMAIN: str = "localhost"

    # Web Push (VAPID) - generate with: npx web-push generate-vapid-keys
    # VAPID_KEYS_FILE points at a JSON document {"publicKey", "privateKey", "subject"}
    # and wins over the individual fields when set.
    VAPID_PRIVATE_KEY: str = ""
    VAPID_PUBLIC_KEY: str = ""
    VAPID_CLAIMS_EMAIL: str = "mailto:admin@localhost"
    VAPID_KEYS_FILE: str = ""

    # Fan-out
    PUSH_BATCH_SIZE: int = 100  # concurrent deliveries per batch
    PUSH_PAGE_SIZE: int = 500  # rows per broadcast scan page
    PUSH_TTL_SECONDS: int = 86_400  # 24 h, how long the push service holds a message
    PUSH_DELIVERY_TIMEOUT: float = 10.0  # seconds per delivery attempt
    PUSH_DEFAULT_ICON: str = "/favicon.svg"
    PUSH_DEFAULT_BADGE: str = "/favicon.svg"

    # Subscriptions not renewed within this window are purged.
    SUBSCRIPTION_TTL_DAYS: int = 365

    # Dispatcher worker
    WORKER_POLL_TIMEOUT: int = 5  # seconds per blocking pop
    WORKER_PURGE_INTERVAL: int = 3600  # seconds between expired-subscription purges

    model_config = {"env_file": ".env"}


settings = Settings()
