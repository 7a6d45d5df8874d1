# logwarden/core/config.py
"""
Configuration management for LogWarden
All settings in one place, can be overridden via environment variables
"""

from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator


class Settings(BaseSettings):
    """
    Global application settings
    Can be overridden with LOGWARDEN_* environment variables
    """

    # ===== APP METADATA =====
    app_name: str = "LogWarden"
    version: str = "0.1.0"

    # ===== STORAGE PATHS =====
    data_dir: Path = Field(default=Path.home() / ".logwarden")
    db_path: Optional[Path] = Field(default=None)
    upload_dir: Optional[Path] = Field(default=None)

    # ===== UPLOADS =====
    max_upload_size_mb: int = 10
    allowed_extensions: List[str] = Field(default=[".csv"])

    # ===== AUTH =====
    session_ttl_hours: int = 24  # Bearer tokens expire after this
    password_iterations: int = 390_000  # PBKDF2-SHA256 rounds
    min_password_length: int = 6

    # ===== LLM SETTINGS =====
    # Which backend writes the file narrative: gemini, ollama or openrouter
    llm_provider: str = "gemini"

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "llama3:8b"

    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "meta-llama/llama-3.3-70b-instruct:free"

    llm_temperature: float = 0.3  # Low = factual, High = creative
    llm_max_tokens: int = 1024
    llm_timeout: int = 30  # Seconds before timeout
    llm_max_attempts: int = 3

    # ===== API =====
    cors_origins: List[str] = Field(default=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ])
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    model_config = SettingsConfigDict(
        env_prefix="LOGWARDEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v):
        """Expand ~ and resolve path"""
        if isinstance(v, str):
            return Path(v).expanduser().resolve()
        return v

    @field_validator("llm_provider")
    @classmethod
    def check_provider(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("gemini", "ollama", "openrouter"):
            raise ValueError(f"Unknown LLM provider: {v}")
        return v

    @model_validator(mode="after")
    def init_paths(self):
        """Initialize derived paths after all fields are set"""
        if self.db_path is None:
            self.db_path = self.data_dir / "logwarden.db"

        if self.upload_dir is None:
            self.upload_dir = self.data_dir / "uploads"

        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)
        if isinstance(self.upload_dir, str):
            self.upload_dir = Path(self.upload_dir)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

        return self

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    def is_supported_file(self, filename: str) -> bool:
        """Check if an uploaded filename has an accepted extension"""
        return Path(filename).suffix.lower() in self.allowed_extensions

    def __repr__(self):
        return f"<Settings(app={self.app_name} v{self.version}, data_dir={self.data_dir})>"


# ===== GLOBAL SETTINGS INSTANCE =====
# This is imported throughout the app
settings = Settings()


# ===== HELPER FUNCTIONS =====

def get_settings() -> Settings:
    """
    Get the global settings instance
    Useful for dependency injection in tests
    """
    return settings


def reload_settings():
    """
    Reload settings from environment
    Useful if env vars change during runtime
    """
    global settings
    settings = Settings()
    return settings
