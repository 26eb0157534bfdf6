from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    DB_POOL_DISABLED: bool = False
    DB_ECHO: bool = False

    REDIS_URL: str

    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    RATE_LIMIT: int = 100
    RATE_LIMIT_WINDOW: int = 600  # 10 minutes

    IDEMPOTENCY_TTL: int = 300  # 5 minutes

    ORDER_NUMBER_MAX_RETRIES: int = 5
    ORDER_NUMBER_RETRY_DELAY: float = 0.1  # seconds, multiplied by attempt

    NOTIFICATION_TIMEOUT: float = 5.0

    PUSH_GATEWAY_URL: str
    WEBHOOK_TIMEOUT: int = 10
    WEBHOOK_RETRIES: int = 3

    CELERY_BROKER_URL: str
    CELERY_BACKEND: str

    API_TITLE: str = "LaundryOps Order Service"
    API_DESCRIPTION: str = "Order lifecycle, workshop routing, delivery and payments for laundry businesses"
    API_VERSION: str = "1.0.0"

    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
