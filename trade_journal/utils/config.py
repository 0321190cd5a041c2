from __future__ import annotations

from datetime import time
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    db_path: str = Field(default="data/trade_journal.db", description="SQLite journal database path")

    morning_cutoff: time = Field(default=time(11, 0), description="Buys strictly before this count as morning buys")
    evening_cutoff: time = Field(default=time(15, 0), description="Sales at or after this count as evening sells")

    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/trade_journal.log", description="Log file path")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


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
