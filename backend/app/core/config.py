from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite+pysqlite:///./mostrador.db"
    DB_ECHO: bool = False

    # CORS origins, comma-separated list
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    LOG_LEVEL: str = "INFO"

    # Settlement unit of work
    SETTLEMENT_MAX_ATTEMPTS: int = 3
    SETTLEMENT_RETRY_BACKOFF: float = 0.05
    SETTLEMENT_LOCK_TIMEOUT_MS: int = 30000
    MONEY_TOLERANCE: Decimal = Decimal("0.01")  # a gap this large is a mismatch

    # Largest register withdrawal per role; admins have no cap
    CASHIER_WITHDRAWAL_LIMIT: Decimal = Decimal("500")
    MANAGER_WITHDRAWAL_LIMIT: Decimal = Decimal("5000")

    # AFIP electronic invoicing (provider master certificate)
    AFIP_MODE: str = "homologacion"  # "homologacion" or "produccion"
    AFIP_PROVIDER_CUIT: str = ""
    AFIP_MASTER_CERT: str = ""
    AFIP_MASTER_KEY: str = ""
    AFIP_TIMEOUT_SECONDS: float = 30.0
    AFIP_TOKEN_REFRESH_MARGIN_SECONDS: int = 300
    INVOICE_RETRY_LOOKBACK_DAYS: int = 7

    # Redis / Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"


settings = Settings()
