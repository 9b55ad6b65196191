from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_revisions: int = Field(
        default=3,
        ge=0,
        description="Number of times a buyer may reject a delivery and ask for changes",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_dir: str = Field(
        default="data/logs",
        description="Directory for the rotating JSON log file",
    )
    db_path: str = Field(
        default="data/promptmarket.db",
        description="Path to the SQLite database file",
    )
    conflict_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="How many times the CLI re-reads and retries an action that lost a write race",
    )

    @property
    def base_dir(self) -> Path:
        """Return the project root directory."""
        return Path(__file__).resolve().parent.parent

    @property
    def abs_db_path(self) -> Path:
        """Return the absolute path to the database file."""
        if self.db_path == ":memory:":
            return Path(self.db_path)
        return self.base_dir / self.db_path

    @property
    def abs_log_dir(self) -> Path:
        """Return the absolute path to the log directory."""
        return self.base_dir / self.log_dir


settings = Settings()
