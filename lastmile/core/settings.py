# lastmile/core/settings.py
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "lastmile-rates"

    # --- Database ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./lastmile.db"
    DATABASE_ECHO: bool = False

    # --- OCR gateway (PDF / image rate sheets) ---
    OCR_PROVIDER: str = "tencent"
    OCR_ENDPOINT: Optional[str] = None
    OCR_API_KEY: Optional[str] = None
    OCR_TIMEOUT_SECONDS: float = 60.0

    # --- Import ---
    max_upload_mb: int = 20
    PREVIEW_TTL_SECONDS: int = 30 * 60
    PREVIEW_MAX_ENTRIES: int = 200
    PREVIEW_LIMIT: int = 100

    # --- Pricing ---
    VOLUMETRIC_FACTOR: Decimal = Decimal("5000")  # cm³ per kg, 1 m³ = 200 kg
    DEFAULT_CURRENCY: str = "EUR"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def ocr_configured(self) -> bool:
        return bool(self.OCR_ENDPOINT and self.OCR_API_KEY)


settings = Settings()  # leest .env
