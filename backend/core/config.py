from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "CreditOdds API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Firebase ID tokens
    FIREBASE_PROJECT_ID: str = "creditodds"
    FIREBASE_CERTS_URL: str = "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
    FIREBASE_CERTS_TIMEOUT: int = 10

    # Subject ids treated as admin even without the custom claim
    ADMIN_FALLBACK_IDS: List[str] = []

    # MySQL store
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_POOL_TIMEOUT: int = 10
    DB_CONNECT_TIMEOUT: int = 10
    DB_PRE_PING: bool = True

    ALLOWED_ORIGINS: List[str] = ["*"]

    # Static card catalog on the CDN
    CARDS_JSON_URL: str = "https://d2hxvzw7msbtvt.cloudfront.net/cards.json"
    CATALOG_TIMEOUT_SECONDS: int = 10
    # max-age for public card responses; 0 sends no-store instead
    PUBLIC_CACHE_SECONDS: int = 60

    # When true, new records wait for moderation before counting in statistics
    RECORDS_REQUIRE_REVIEW: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7
    # Handlers slower than this are logged as warnings; 0 disables
    SLOW_CALL_MS: int = 1000

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

if not settings.DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is required")

if not settings.FIREBASE_PROJECT_ID:
    raise ValueError("FIREBASE_PROJECT_ID environment variable is required")
