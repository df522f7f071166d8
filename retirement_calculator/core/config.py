from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    PROJECT_NAME: str = "Retirement Withdrawal Calculator"

    # Historical market data (year, equity return, bond return, inflation)
    HISTORICAL_DATA_PATH: Path = PACKAGE_ROOT / "data" / "historical_market_data.json"

    # Planning horizon. Every retirement duration is LIFE_EXPECTANCY - retirementAge.
    LIFE_EXPECTANCY: int = 95
    DEFAULT_STOCK_ALLOCATION: float = 0.60

    # Sweep fan-out
    MAX_CONCURRENT_SWEEPS: int = 8
    SWEEP_TIMEOUT_SECONDS: Optional[float] = None

    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("LIFE_EXPECTANCY")
    @classmethod
    def check_life_expectancy(cls, v: int) -> int:
        if not 18 <= v <= 120:
            raise ValueError("LIFE_EXPECTANCY must be between 18 and 120")
        return v

    @field_validator("DEFAULT_STOCK_ALLOCATION")
    @classmethod
    def check_allocation(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("DEFAULT_STOCK_ALLOCATION must be between 0 and 1")
        return v

    @field_validator("MAX_CONCURRENT_SWEEPS")
    @classmethod
    def check_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_CONCURRENT_SWEEPS must be at least 1")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


settings = Settings()
