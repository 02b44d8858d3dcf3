"""
LLM Integration Module
======================

Provider-agnostic access to generative AI HTTP APIs.

This package contains:
    - models: provider configuration, messages and attachments
    - errors: exception hierarchy for provider calls
    - transport: aiohttp-based HTTP transport
    - base / openai_adapter / gemini_adapter: wire protocol adapters
    - streaming: incremental server-sent-event decoder
    - rotation: key/model rotation on quota errors
    - response_parser: markdown cleanup and speech preparation of replies

Supports two wire protocols:
    - ``openai``: OpenAI-compatible chat completions (OpenAI, Groq, OpenRouter, ...)
    - ``gemini``: Google Gemini generateContent
"""

from loneless.llm.base import ProviderAdapter, create_adapter
from loneless.llm.errors import (
    CapabilityError,
    ConfigurationError,
    DecodeError,
    LLMError,
    ProviderError,
    QuotaExceededError,
    TransportError,
)
from loneless.llm.gemini_adapter import GeminiAdapter
from loneless.llm.models import (
    Attachment,
    AttachmentKind,
    Message,
    ProviderConfig,
    ProviderKind,
    Role,
)
from loneless.llm.openai_adapter import OpenAIAdapter
from loneless.llm.response_parser import clean_response_text, prepare_speech_text
from loneless.llm.rotation import RotationPolicy, RotationSnapshot
from loneless.llm.streaming import StreamDecoder, decode_stream
from loneless.llm.transport import HttpRequest, HttpResponse, HttpTransport

__all__ = [
    "ProviderAdapter",
    "OpenAIAdapter",
    "GeminiAdapter",
    "create_adapter",
    "LLMError",
    "ConfigurationError",
    "ProviderError",
    "QuotaExceededError",
    "TransportError",
    "DecodeError",
    "CapabilityError",
    "Attachment",
    "AttachmentKind",
    "Message",
    "ProviderConfig",
    "ProviderKind",
    "Role",
    "RotationPolicy",
    "RotationSnapshot",
    "StreamDecoder",
    "decode_stream",
    "HttpRequest",
    "HttpResponse",
    "HttpTransport",
    "clean_response_text",
    "prepare_speech_text",
]
