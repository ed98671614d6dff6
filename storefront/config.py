from decimal import Decimal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Настройки витрины, переопределяются переменными STOREFRONT_* или .env"""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_", env_file=".env", extra="ignore"
    )

    seed_path: str = "data/seed.json"
    log_level: str = "INFO"
    currency_symbol: str = "$"
    default_tax_rate: Decimal = Decimal("0.07")
    fallback_zone: str = "National"
    analytics_days: int = 7


settings = Settings()
