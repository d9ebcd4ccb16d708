from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    starting_balance: Decimal = Field(default=Decimal("100000"), description="Cash deposited into a new paper account")
    default_account_id: str = Field(default="default", description="Account used when the caller names none")
    allow_negative_balance: bool = Field(default=False, description="Permit trades that take cash below zero")
    fractional_symbols: list[str] = Field(
        default_factory=lambda: ["BTC", "ETH", "BTCUSD", "ETHUSD"],
        description="Symbols whose spot quantity may be fractional",
    )

    store_backend: str = Field(default="sqlite", description="Account store backend: sqlite | memory")
    store_path: str = Field(default="data/paper_trading.db", description="SQLite account store path")

    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=5000, description="HTTP port")

    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/paper_trading.log", description="Log file path")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore", "env_prefix": "PAPER_"}


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
