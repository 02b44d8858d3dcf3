"""
API Error Mapping
=================

Converts provider errors into HTTP errors for the API surface. Only the
fixed user-facing wording is returned; the raw vendor body stays in the logs.
"""

from fastapi import HTTPException, status

from loneless.chat.prompts import CONNECTION_TROUBLE_MESSAGE, KEYS_EXHAUSTED_MESSAGE
from loneless.llm.errors import (
    CapabilityError,
    ConfigurationError,
    DecodeError,
    LLMError,
    ProviderError,
    QuotaExceededError,
    TransportError,
)
from loneless.utils.logger import get_logger

logger = get_logger(__name__)


def http_error_for(error: LLMError) -> HTTPException:
    """Map an ``LLMError`` to the matching ``HTTPException``."""
    if isinstance(error, ConfigurationError):
        code, detail = status.HTTP_503_SERVICE_UNAVAILABLE, "No API key configured"
    elif isinstance(error, CapabilityError):
        code, detail = status.HTTP_422_UNPROCESSABLE_ENTITY, error.user_message
    elif isinstance(error, QuotaExceededError):
        code, detail = status.HTTP_429_TOO_MANY_REQUESTS, KEYS_EXHAUSTED_MESSAGE
    elif isinstance(error, TransportError):
        code, detail = status.HTTP_504_GATEWAY_TIMEOUT, CONNECTION_TROUBLE_MESSAGE
    elif isinstance(error, (ProviderError, DecodeError)):
        code, detail = status.HTTP_502_BAD_GATEWAY, CONNECTION_TROUBLE_MESSAGE
    else:
        code, detail = status.HTTP_500_INTERNAL_SERVER_ERROR, CONNECTION_TROUBLE_MESSAGE

    logger.warning(
        "Provider error returned to client",
        error_type=type(error).__name__,
        error=str(error),
        status_code=code,
    )
    return HTTPException(status_code=code, detail={"error": type(error).__name__, "message": detail})
