"""
Configuración del relay de firma.
Se carga desde variables de entorno (o .env) con pydantic-settings.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ======================
    # Server
    # ======================
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # ======================
    # Documents
    # ======================
    MAX_PAYLOAD_MB: int = 50
    STORAGE_DIR: str = "uploads"
    SPILL_THRESHOLD_KB: int = 1024  # documentos mayores van a disco
    VALIDATE_PDF: bool = False
    SIGNED_SUFFIX: str = "_firmado"

    # ======================
    # Retention
    # ======================
    SESSION_TTL_MINUTES: int = 60
    PRESTORAGE_TTL_MINUTES: int = 30
    DOWNLOAD_GRACE_SECONDS: int = 10
    SWEEP_INTERVAL_MINUTES: int = 30
    PRESTORAGE_SWEEP_INTERVAL_MINUTES: int = 10

    # ======================
    # CORS & Logging
    # ======================
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    @property
    def max_payload_bytes(self) -> int:
        return self.MAX_PAYLOAD_MB * 1024 * 1024

    @property
    def spill_threshold_bytes(self) -> int:
        return self.SPILL_THRESHOLD_KB * 1024


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
