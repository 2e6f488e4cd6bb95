from decimal import Decimal
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field
from typing import List


class Settings(BaseSettings):
    # Bot Configuration
    bot_token: str = Field(..., env="BOT_TOKEN")
    admin_ids_str: str = Field(default="", validation_alias="ADMIN_IDS")

    # Database
    database_url: str = Field(..., env="DATABASE_URL")

    # Redis (FSM storage)
    redis_url: str = Field(default="redis://localhost:6379/0", env="REDIS_URL")

    # Деньги
    currency: str = Field(default="MAD", env="CURRENCY")
    # 0 = точное сравнение ручной и расчетной цены
    price_override_tolerance: Decimal = Field(default=Decimal("0"), env="PRICE_OVERRIDE_TOLERANCE")

    # OCR распознавание документов
    ocr_api_url: str = Field(default="", env="OCR_API_URL")
    ocr_api_key: str = Field(default="", env="OCR_API_KEY")
    ocr_timeout: float = Field(default=30.0, env="OCR_TIMEOUT")
    ocr_confidence_threshold: float = Field(default=0.8, env="OCR_CONFIDENCE_THRESHOLD")

    # Таймаут сохранения аренды
    submission_timeout: float = Field(default=30.0, env="SUBMISSION_TIMEOUT")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    @computed_field
    @property
    def admin_ids(self) -> List[int]:
        """Parse comma-separated admin IDs from environment variable"""
        if not self.admin_ids_str.strip():
            return []
        return [int(id.strip()) for id in self.admin_ids_str.split(",") if id.strip()]

    class Config:
        # Порядок важен: сначала .env.local (разработка), затем .env (сервер), затем test.env
        env_file = [".env.local", ".env", "config/test.env"]
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
