from pathlib import Path
from functools import lru_cache

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from pydantic import SecretStr, Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Keys (empty => provider registered but unavailable)
    google_api_key: SecretStr = SecretStr("")
    openai_api_key: SecretStr = SecretStr("")
    anthropic_api_key: SecretStr = SecretStr("")

    # Optional default model per provider
    gemini_model: str = ""
    openai_model: str = ""
    anthropic_model: str = ""

    # Database
    database_url: str = "./data/generations.db"

    # Server
    log_level: str = "INFO"

    # Deployment
    allowed_origins: str = ""

    # Streaming
    stream_queue_size: int = Field(default=32, ge=1)

    # Loaded from YAML
    yaml_config: dict = {}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        yaml_path = Path(__file__).parent.parent / "config" / "settings.yaml"
        if yaml_path.exists():
            with open(yaml_path, "r", encoding="utf-8") as f:
                self.yaml_config = yaml.safe_load(f) or {}

    @property
    def providers_config(self) -> dict:
        return self.yaml_config.get("providers", {}) or {}

    def api_key_for(self, provider: str) -> str:
        keys = {
            "gemini": self.google_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }
        key = keys.get(provider)
        return key.get_secret_value() if key else ""

    def default_model_for(self, provider: str) -> str | None:
        """Env setting wins over the YAML overlay; None means provider default."""
        env_model = getattr(self, f"{provider}_model", "")
        if env_model:
            return env_model
        return self.providers_config.get(provider, {}).get("default_model") or None


@lru_cache
def get_settings() -> Settings:
    return Settings()
