"""Application configuration using pydantic-settings."""

import warnings
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Sentinel values that indicate unconfigured credentials
_UNCONFIGURED_API_KEY = "CHANGE_ME"

# Find .env file: check backend dir first, then project root
_BACKEND_DIR = Path(__file__).parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _BACKEND_DIR / ".env" if (_BACKEND_DIR / ".env").exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    OPENAI_API_KEY is the only credential the consultation layer needs. When it
    is empty the orchestrator runs in fallback-only mode instead of failing.
    """

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Authentication for the HTTP surface
    api_key: str = _UNCONFIGURED_API_KEY

    # OpenAI
    openai_api_key: str = ""
    ai_model: str = "gpt-4o-mini"
    ai_timeout_seconds: float = 15.0
    ai_max_output_tokens: int = 2048

    # In-memory session store
    session_max_sessions: int = 500
    session_ttl_seconds: float = 4 * 60 * 60

    # Application
    cors_origins: str = "http://localhost:3000"
    debug: bool = False

    def model_post_init(self, __context) -> None:
        """Warn about unconfigured credentials."""
        if self.api_key == _UNCONFIGURED_API_KEY:
            warnings.warn(
                "API_KEY not configured! Set API_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        if not self.openai_api_key:
            warnings.warn(
                "OPENAI_API_KEY not configured! AI calls will use fallback responses.",
                UserWarning,
                stacklevel=2,
            )


settings = Settings()
