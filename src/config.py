"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Server configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-sonnet-4-5-20250929")
    max_response_tokens: int = Field(default=4096)

    # Mem0: when set, conversation memory lives in Mem0 instead of in-process
    mem0_api_key: str = Field(default="")

    # Database
    database_path: Path = Field(default=Path("data/chat.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Uploads
    upload_dir: Path = Field(default=Path("data/uploads"))
    max_upload_size: int = Field(default=10 * 1024 * 1024)

    # Context window (estimated tokens forwarded to the model per turn)
    context_token_budget: int = Field(default=3000)

    # HTTP server
    http_host: str = Field(default="0.0.0.0")
    http_port: int = Field(default=8080)

    # Webhooks
    webhook_secret: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def memory_backend(self) -> str:
        """Name of the memory backend selected by the credentials present."""
        return "mem0" if self.mem0_api_key.strip() else "in-process"


settings = Settings()
