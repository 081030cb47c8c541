"""
Application settings.

Loaded from SAFETYSEC_* environment variables (or a .env file) with
pydantic-settings. File locations default to paths under data_dir.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    Attributes:
        data_dir: Base directory for local state (default: ~/.safetysec)
        database_path: SQLite database for accounts, sessions and documents
        token_file: Stored session token, used to resume sessions
        secret_file: Generated session signing secret
        preferences_file: Theme and other preferences
        jwt_secret: Signing secret; overrides secret_file when set
        session_ttl_minutes: Session lifetime (default: 30 days)
        log_level: Loguru level for the terminal client
    """

    model_config = SettingsConfigDict(
        env_prefix="SAFETYSEC_",
        env_file=".env",
        extra="ignore",
    )

    data_dir: Path = Path.home() / ".safetysec"
    database_path: Optional[Path] = None
    token_file: Optional[Path] = None
    secret_file: Optional[Path] = None
    preferences_file: Optional[Path] = None

    jwt_secret: Optional[str] = None
    session_ttl_minutes: int = 60 * 24 * 30

    log_level: str = "INFO"

    @field_validator("session_ttl_minutes")
    @classmethod
    def _positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("session_ttl_minutes must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _derive_paths(self) -> "Settings":
        data_dir = self.data_dir.expanduser()
        self.data_dir = data_dir
        if self.database_path is None:
            self.database_path = data_dir / "safetysec.db"
        if self.token_file is None:
            self.token_file = data_dir / "session.json"
        if self.secret_file is None:
            self.secret_file = data_dir / ".session_secret"
        if self.preferences_file is None:
            self.preferences_file = data_dir / "settings.json"
        return self


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
