# torkalk/config.py
import os
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === Allgemeine App-Settings ===
    app_env: str = "local"  # local | development | production

    # === Kalkulation ===
    vat_rate: Decimal = Field(Decimal("0.19"), description="MwSt-Satz als Bruch (0.19 = 19%)")
    markup_max_percent: Optional[Decimal] = Field(
        None, description="Obergrenze fuer den Aufschlag in %, None = unbegrenzt"
    )
    catalog_path: Optional[str] = Field(None, description="YAML-Katalog, sonst der mitgelieferte")

    # === Datenbank ===
    database_url: str = "sqlite:///./torkalk.db"
    owner_id: str = "local-user"

    # === Logging ===
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_rotation: str = "1 day"
    log_retention: str = "30 days"
    log_to_file: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("vat_rate")
    @classmethod
    def _check_vat_rate(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v < 0 or v >= 1:
            raise ValueError("vat_rate must be a fraction in [0, 1)")
        return v

    @field_validator("markup_max_percent")
    @classmethod
    def _check_markup_max(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and (not v.is_finite() or v < 0):
            raise ValueError("markup_max_percent must be >= 0")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance with simple env overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
        s.log_to_file = True
    elif env == "development":
        s.log_level = "DEBUG"

    return s
