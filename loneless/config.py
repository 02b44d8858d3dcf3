"""
Configuration Management
========================

Centralized configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from loneless.llm.models import GEMINI_HOST_MARKER, ProviderKind


# Shared config that all settings classes use to load .env
_shared_config = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    env_prefix="",
    extra="ignore",
)

DEFAULT_SYSTEM_PROMPT = (
    "You are a close friend chatting with the user. Talk naturally and briefly, "
    "like a real person with changing moods. Never mention that you are an AI or "
    "a language model. Do not use **bold** text or lists. Do not invent facts "
    "about the past, plans or promises; rely only on the current conversation. "
    "Do not narrate actions such as 'hugs you' or 'smiles', speak only in words."
)


def _split_pool(raw: str) -> list[str]:
    """Split a comma-separated pool into a de-duplicated, order-preserving list."""
    seen: set[str] = set()
    items: list[str] = []
    for item in raw.split(","):
        item = item.strip()
        if item and item not in seen:
            seen.add(item)
            items.append(item)
    return items


class ProviderSettings(BaseSettings):
    """AI provider configuration: endpoint, key pool and model pool."""

    model_config = _shared_config

    # Provider selection: "openai" or "gemini". Derived from the base URL when unset.
    provider_kind: Optional[Literal["openai", "gemini"]] = Field(
        default=None,
        description="Wire protocol of the provider; inferred from provider_base_url when empty",
    )
    provider_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the provider API",
    )

    provider_api_key: str = Field(
        default="",
        description="Single provider API key",
    )
    provider_api_keys: str = Field(
        default="",
        description="Comma-separated list of API keys for rotation on quota errors",
    )
    provider_models: str = Field(
        default="gemini-2.0-flash,gemini-2.0-flash-lite",
        description="Comma-separated list of model ids for rotation on quota errors",
    )

    llm_temperature: float = Field(default=0.8, description="Sampling temperature")
    request_timeout: float = Field(default=60.0, description="Total timeout for chat requests (s)")
    vision_connect_timeout: float = Field(default=60.0, description="Connect timeout for vision requests (s)")
    vision_total_timeout: float = Field(default=120.0, description="Total timeout for vision requests (s)")

    transcription_enabled: bool = Field(
        default=True,
        description="Whether the OpenAI-compatible provider exposes /audio/transcriptions",
    )
    transcription_model: str = Field(
        default="whisper-1",
        description="Model id sent to the OpenAI-compatible transcription endpoint",
    )

    rotation_cooldown_seconds: float = Field(
        default=300.0,
        description="Seconds a quota-exhausted key or model stays marked as failed",
    )

    @field_validator("provider_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so endpoints can be appended with '/'."""
        return v.rstrip("/")

    def get_all_api_keys(self) -> list[str]:
        """
        Return the API key pool as a de-duplicated, order-preserving list.

        Merges ``provider_api_keys`` (comma-separated) with the single
        ``provider_api_key``. Empty when no key is configured at all.
        """
        keys = _split_pool(self.provider_api_keys)
        single = self.provider_api_key.strip()
        if single and single not in keys:
            keys.append(single)
        return keys

    def get_all_models(self) -> list[str]:
        """Return the model pool as a de-duplicated, order-preserving list."""
        return _split_pool(self.provider_models)

    def get_provider_kind(self) -> ProviderKind:
        """Resolve the provider kind once, at configuration time."""
        if self.provider_kind:
            return ProviderKind(self.provider_kind)
        if GEMINI_HOST_MARKER in self.provider_base_url:
            return ProviderKind.GEMINI
        return ProviderKind.OPENAI


class ChatSettings(BaseSettings):
    """Conversation behaviour settings."""

    model_config = _shared_config

    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="Base system prompt")
    enable_voice_responses: bool = Field(default=False, description="Speak every assistant reply")
    enable_notifications: bool = Field(default=True, description="Notify on every assistant reply")
    enable_mood: bool = Field(default=True, description="Inject a random mood fragment per turn")
    use_streaming: bool = Field(default=True, description="Stream text replies when the provider supports it")

    thinking_delay_min: float = Field(default=2.0, description="Lower bound of the pre-call delay (s)")
    thinking_delay_max: float = Field(default=5.0, description="Upper bound of the pre-call delay (s)")
    typing_delay_min: float = Field(default=0.5, description="Lower bound of the post-call delay (s)")
    typing_delay_max: float = Field(default=1.5, description="Upper bound of the post-call delay (s)")

    random_messages_enabled: bool = Field(default=False, description="Run the random message scheduler")
    random_message_initial_delay: float = Field(default=60.0, description="Delay before the first random message (s)")
    random_message_min_minutes: int = Field(default=60, description="Minimum pause between random messages")
    random_message_max_minutes: int = Field(default=180, description="Maximum pause between random messages")
    random_message_history: int = Field(default=3, description="Messages of context for random messages")

    transport_retry_delay: float = Field(
        default=2.0,
        description="Pause before retrying a random message after a transport error (s)",
    )


class ServerSettings(BaseSettings):
    """Server configuration settings."""

    model_config = _shared_config

    server_host: str = Field(default="0.0.0.0", description="Server host")
    server_port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=True, description="Debug mode")
    environment: str = Field(default="development", description="Environment name (development, staging, production)")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    cors_origins: str = Field(default="*", description="CORS origins")

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]


class Settings(BaseSettings):
    """
    Main settings class combining all configuration sections.

    Usage:
        from loneless.config import get_settings
        settings = get_settings()
        print(settings.provider.get_all_api_keys())
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nested settings
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    def __init__(self, **kwargs):
        """Initialize settings with nested configuration."""
        super().__init__(**kwargs)
        # Re-initialize nested settings to pick up env vars
        self.provider = kwargs.get("provider") or ProviderSettings()
        self.chat = kwargs.get("chat") or ChatSettings()
        self.server = kwargs.get("server") or ServerSettings()


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings loaded from environment.
    """
    return Settings()
