"""Configuration management for SplitLedger."""

from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITLEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database path
    database_path: Path = Path.home() / ".splitledger" / "splitledger.db"

    # Display
    currency_symbol: str = "$"

    # Splitting
    split_tolerance: Decimal = Decimal("0.01")  # Max exact-split mismatch
    remainder_order: Literal["first", "last"] = "first"  # Who gets leftover cents

    # Settlement suggestions
    settlement_strategy: Literal["greedy", "exact"] = "greedy"
    exact_strategy_max_participants: int = 12  # Above this, exact falls back to greedy

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check the SPLITLEDGER_* environment "
            f"variables and your .env file.\n"
            f"Error: {e}"
        ) from e
