"""Configuration settings for the application."""

import json
from typing import (
    Annotated,
    Any,
    List,
)

from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # These will be loaded from environment variables or a .env file if not provided
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    API_PORT: int = 8000
    DEBUG: bool = False
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Model transport
    MODEL_BACKEND: str = "openai"  # Options: openai, anthropic
    AGENT_MODEL: str = "gpt-4o-mini"
    OPENAI_API_KEY: str | None = None
    ANTHROPIC_API_KEY: str | None = None

    # Agent loop
    AGENT_MAX_ITERATIONS: int = 5
    AGENT_TIMEOUT_MS: int = 240_000
    AGENT_CONTEXT_MEMORY_ENABLED: bool = False
    MAX_PARALLEL_TOOLS: int = 8

    # Planner
    PLANNER: str = "llm"  # Options: llm, single
    PLANNER_MODEL: str = "gpt-4o-mini"
    MULTI_STEP_MAX_ITERATIONS: int = 15
    MULTI_STEP_MIN_TIMEOUT_MS: int = 360_000

    # Context memory
    CONTEXT_STORE: str = "json"  # Options: memory, json
    CONTEXT_MAX_TOOL_CALLS: int = 50
    CONTEXT_MAX_ASSETS: int = 20

    # Conversation history
    HISTORY_BACKEND: str = "none"  # Options: none, chroma
    VECTOR_DB_HOST: str = "chroma"  # Service name in docker-compose
    VECTOR_DB_PORT: int = 8000

    # Providers
    PROVIDER_GATEWAY_URL: str = "http://localhost:9000"
    PROVIDER_API_KEY: str | None = None
    PROVIDER_POLL_INTERVAL: float = 2.0
    PROVIDER_MAX_WAIT: float = 300.0
    IMAGE_PROVIDERS: Annotated[List[str], NoDecode] = ["gemini", "openai", "grok"]
    VIDEO_PROVIDERS: Annotated[List[str], NoDecode] = ["veo3", "sora", "kling"]
    AUDIO_PROVIDERS: Annotated[List[str], NoDecode] = ["elevenlabs"]
    FALLBACK_SPLIT_THRESHOLD: int = 200

    # Other API Keys
    SERPER_API_KEY: str | None = None

    @field_validator("IMAGE_PROVIDERS", "VIDEO_PROVIDERS", "AUDIO_PROVIDERS", mode="before")
    @classmethod
    def _split_provider_list(cls, value: Any) -> Any:
        """Accept a comma-separated list (`gemini,openai`) as well as a JSON array."""
        if not isinstance(value, str):
            return value
        text = value.strip()
        if text.startswith("["):
            return json.loads(text)
        return [name.strip() for name in text.split(",") if name.strip()]


settings = Settings()
