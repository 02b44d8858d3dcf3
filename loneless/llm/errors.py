"""
LLM Errors
==========

Exception hierarchy raised by the provider adapters and the rotation policy.

    LLMError
    ├── ConfigurationError   no usable API key
    ├── ProviderError        non-2xx response (raw vendor body preserved)
    │   └── QuotaExceededError   HTTP 429
    ├── TransportError       network failure or timeout
    ├── DecodeError          response body does not have the expected shape
    └── CapabilityError      modality unsupported by the configured provider/model
"""

from typing import Optional

HTTP_TOO_MANY_REQUESTS = 429


class LLMError(Exception):
    """Base class for all provider-related errors."""

    pass


class ConfigurationError(LLMError):
    """Raised when no API key is available for a call."""

    pass


class ProviderError(LLMError):
    """Raised when a provider answers with a status outside [200, 300)."""

    def __init__(self, status_code: int, raw_body: str = "") -> None:
        super().__init__(f"Provider returned HTTP {status_code}: {raw_body[:500]}")
        self.status_code = status_code
        self.raw_body = raw_body


class QuotaExceededError(ProviderError):
    """Raised on HTTP 429: the key or model ran out of quota."""

    def __init__(self, raw_body: str = "") -> None:
        super().__init__(HTTP_TOO_MANY_REQUESTS, raw_body)


class TransportError(LLMError):
    """Raised on connection failures and timeouts."""

    pass


class DecodeError(LLMError):
    """Raised when a response body cannot be decoded into the expected shape."""

    def __init__(self, message: str, raw_body: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_body = raw_body


class CapabilityError(LLMError):
    """Raised when a modality is requested from a provider that lacks it."""

    def __init__(self, user_message: str) -> None:
        super().__init__(user_message)
        self.user_message = user_message


def raise_for_status(status_code: int, raw_body: str) -> None:
    """Raise the matching ProviderError for a non-2xx status."""
    if 200 <= status_code < 300:
        return
    if status_code == HTTP_TOO_MANY_REQUESTS:
        raise QuotaExceededError(raw_body)
    raise ProviderError(status_code, raw_body)
