import os
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Environment setting (development | production)
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
    PORT = int(os.getenv("PORT", "8000"))

    # Shared API key for every non-webhook route
    API_KEY = os.getenv("API_KEY")

    # Master secret for destination signing keys at rest
    ENCRYPTION_MASTER_KEY = os.getenv("ENCRYPTION_MASTER_KEY")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    INBOUND_REPROCESS_BATCH = int(os.getenv("INBOUND_REPROCESS_BATCH", "50"))

    # db creds
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_NAME = os.getenv("DB_NAME", "eventrelay")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_SSL = _as_bool(os.getenv("DB_SSL"), False)

    # Redis cache
    CACHE_ENABLED = _as_bool(os.getenv("CACHE_ENABLED"), True)
    REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT = os.getenv("REDIS_PORT", "6379")

    # CORS
    CLIENT_ORIGIN = os.getenv("CLIENT_ORIGIN", "http://localhost:3000")
    CORS_ALLOW_ALL = _as_bool(os.getenv("CORS_ALLOW_ALL"), False)

    @property
    def IS_DEVELOPMENT(self) -> bool:
        return self.ENVIRONMENT == "development"

    def _build_database_url(self):
        override = os.getenv("DATABASE_URL")
        if override:
            return override
        base_url = f"postgresql+asyncpg://{self.DB_USER}:{quote_plus(self.DB_PASSWORD)}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        if self.DB_SSL:
            return f"{base_url}?ssl=require"
        return base_url

    @property
    def DATABASE_URL(self):
        return self._build_database_url()

    @property
    def REDIS_URL(self):
        return os.getenv("REDIS_URL") or f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"

    @property
    def CORS_ORIGINS(self):
        if self.CORS_ALLOW_ALL:
            return ["*"]
        return [origin.strip() for origin in self.CLIENT_ORIGIN.split(",") if origin.strip()]


settings = Settings()
