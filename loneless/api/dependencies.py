"""
API Dependencies
================

Process-wide singletons wired from the settings and injected into routes
with ``Depends``. Tests replace them through ``app.dependency_overrides``.
"""

from functools import lru_cache

from loneless.chat.orchestrator import ChatOrchestrator
from loneless.chat.scheduler import RandomMessageScheduler
from loneless.chat.store import InMemoryConversationStore
from loneless.config import get_settings
from loneless.llm.base import ProviderAdapter, create_adapter
from loneless.llm.errors import ConfigurationError
from loneless.llm.models import ProviderConfig
from loneless.llm.rotation import RotationPolicy
from loneless.llm.transport import HttpTransport, RequestTimeout


@lru_cache
def get_transport() -> HttpTransport:
    return HttpTransport()


@lru_cache
def get_store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@lru_cache
def get_rotation() -> RotationPolicy:
    provider = get_settings().provider
    return RotationPolicy(
        api_keys=provider.get_all_api_keys(),
        models=provider.get_all_models(),
        cooldown=provider.rotation_cooldown_seconds,
    )


@lru_cache
def get_adapter() -> ProviderAdapter:
    provider = get_settings().provider
    return create_adapter(
        provider.get_provider_kind(),
        get_transport(),
        temperature=provider.llm_temperature,
        timeout=RequestTimeout(total=provider.request_timeout),
        vision_timeout=RequestTimeout(
            total=provider.vision_total_timeout,
            connect=provider.vision_connect_timeout,
        ),
        transcription_model=provider.transcription_model,
        audio_enabled=provider.transcription_enabled,
    )


def get_provider_config() -> ProviderConfig:
    """Template config; the rotation policy fills in key and model per call."""
    settings = get_settings()
    models = settings.provider.get_all_models()
    if not models:
        raise ConfigurationError("PROVIDER_MODELS must list at least one model")
    return ProviderConfig(
        api_key="",
        model=models[0],
        system_prompt=settings.chat.system_prompt,
        base_url=settings.provider.provider_base_url,
        kind=settings.provider.get_provider_kind(),
    )


@lru_cache
def get_orchestrator() -> ChatOrchestrator:
    return ChatOrchestrator(
        store=get_store(),
        adapter=get_adapter(),
        rotation=get_rotation(),
        provider=get_provider_config(),
        chat_settings=get_settings().chat,
    )


@lru_cache
def get_scheduler() -> RandomMessageScheduler:
    return RandomMessageScheduler(get_orchestrator(), get_store(), get_settings().chat)
