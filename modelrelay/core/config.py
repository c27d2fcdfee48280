"""Application configuration settings."""

from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict
from dotenv import load_dotenv
from typing import List

# Load environment variables from .env file
load_dotenv()


# Values shipped in example .env files that must be treated as "not configured"
PLACEHOLDER_API_KEYS = frozenset({
    "",
    "your-api-key-here",
    "your-openrouter-api-key-here",
    "sk-or-v1-your-api-key-here",
})


class Settings(BaseSettings):
    """API server and upstream provider configuration."""

    model_config = ConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # API Settings
    api_port: int = Field(default=8000, description="API server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    # CORS Settings
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed CORS origins"
    )

    # Upstream LLM provider (OpenRouter-compatible)
    openrouter_api_key: str = Field(default="", description="API key for the chat-completions provider")
    llm_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL of the OpenAI-compatible chat-completions API"
    )
    site_url: str = Field(
        default="http://localhost:3000",
        description="Sent as HTTP-Referer so the provider can attribute traffic"
    )
    app_title: str = Field(default="AI Chat Assistant", description="Sent as X-Title")
    max_tokens: int = Field(default=4000, description="max_tokens for chat completions")

    # Timeouts (hard wall-clock, seconds)
    stream_timeout_seconds: float = Field(default=60.0, description="Streaming attempt timeout")
    request_timeout_seconds: float = Field(default=30.0, description="Non-streaming attempt timeout")

    # Retry / failover
    max_same_model_retries: int = Field(
        default=0,
        description="Extra attempts on the same model for busy/network/timeout failures"
    )
    retry_base_delay: float = Field(default=1.0, description="Backoff base delay in seconds")
    retry_cap_delay: float = Field(default=10.0, description="Backoff ceiling in seconds")
    service_busy_delay: float = Field(
        default=1.0, description="Fixed wait before switching models after a busy response"
    )
    failover_delay: float = Field(
        default=0.5, description="Fixed wait before switching models after other failures"
    )

    # Rate limiting
    rate_limit_max_requests: int = Field(default=20, description="Requests per window per client")
    rate_limit_window_seconds: int = Field(default=60, description="Fixed window length")
    rate_limit_sweep_interval: int = Field(default=300, description="Expired-window sweep period")

    # Web search / weather
    brave_api_key: str = Field(default="", description="Brave Search API key (optional)")
    search_provider_timeout: float = Field(default=8.0, description="Per-provider search timeout")
    weather_timeout_seconds: float = Field(default=10.0, description="Open-Meteo request timeout")
    default_weather_location: str = Field(
        default="Baghdad", description="Location used when a weather query names no place"
    )

    # Code generation
    code_temperature: float = Field(default=0.7, description="Temperature for coding agents")
    code_max_tokens: int = Field(default=4000, description="max_tokens for coding agents")

    @property
    def has_api_key(self) -> bool:
        """True when a real (non-placeholder) provider key is configured."""
        return self.openrouter_api_key.strip() not in PLACEHOLDER_API_KEYS


def get_settings() -> Settings:
    """Load settings from environment variables and .env."""
    return Settings()


settings = get_settings()
