"""Configuration management for SpendSense."""

from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDSENSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Display
    currency_symbol: str = "₹"

    # Split rules
    custom_split_tolerance: Decimal = Decimal("0.5")  # max |sum(shares) - amount|

    # Settle-up default target: first member owed more than this
    creditor_threshold: Decimal = Decimal("0.5")

    # Storage
    database_path: Path = Path.home() / ".spendsense" / "spendsense.db"
    export_dir: Path = Path(".")

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
            f"Failed to load settings. Check your SPENDSENSE_* environment "
            f"variables or .env file.\n"
            f"Error: {e}"
        ) from e
