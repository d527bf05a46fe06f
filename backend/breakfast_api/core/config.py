from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    env: str = "dev"
    secret_key: str = "change_me_super_secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    database_url: str = "postgresql+psycopg2://bfuser:bfpass@db:5432/breakfast"
    backend_cors_origins: str = "http://localhost:5173"
    log_level: str = "INFO"

    # Bounded handler time; exceeding it is reported as a transient failure
    request_timeout_seconds: float = 30.0

    # Credit ledger
    credit_term_days: int = 30
    deferred_payment_methods: str = "credit"

    # Listing
    default_page_size: int = 10
    max_page_size: int = 100

    low_stock_threshold: int = 5

    # Railway specific - use PORT env var if available
    port: int = int(os.getenv("PORT", "8000"))

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    @property
    def deferred_methods(self) -> List[str]:
        return [m.strip().lower() for m in self.deferred_payment_methods.split(",") if m.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
