"""Configuration management using Pydantic Settings"""

from enum import Enum
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class FeePolicy(str, Enum):
    INFORMATIONAL = "informational"
    COLLECT = "collect"


class CardGeneratorKind(str, Enum):
    LOCAL = "local"
    GROQ = "groq"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    service_name: str = "campus-bank"
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Settlement
    fee_policy: FeePolicy = FeePolicy.INFORMATIONAL
    fee_account_id: str = "mainAdminAccount"
    enforce_card_controls: bool = True

    # Card-detail generator
    card_generator: CardGeneratorKind = CardGeneratorKind.LOCAL
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.3-70b-versatile"

    # Security
    bcrypt_rounds: int = 12

    # Demo bootstrap for the HTTP app
    seed_demo_data: bool = True


settings = Settings()
