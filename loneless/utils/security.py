"""
Security Utilities
==================

Keeps API keys and other credentials out of logs and error messages.

Usage:
    from loneless.utils.security import mask_api_key, sanitize_for_logging

    mask_api_key("AIzaSyD-1234567890")        # 'AIzaSyD-...'
    sanitize_for_logging({"api_key": "sk-123456"})  # {'api_key': 'sk-********'}
"""

import re
from typing import Any

_SENSITIVE_FIELD = re.compile(
    r"password|secret|token|api[_-]?key|access[_-]?key|auth|credential|^key$",
    re.IGNORECASE,
)


def mask_api_key(key: str, visible_chars: int = 8) -> str:
    """
    Mask an API key for logging, keeping only a short prefix.

    Keys that are too short to keep a prefix safely are fully masked.

    Examples:
        >>> mask_api_key("AIzaSyD-1234567890")
        'AIzaSyD-...'
        >>> mask_api_key("short")
        '*****'
    """
    if not key:
        return ""
    if len(key) <= visible_chars:
        return "*" * len(key)
    return f"{key[:visible_chars]}..."


def mask_sensitive(value: str, visible_chars: int = 3) -> str:
    """
    Mask a sensitive string, showing only first few characters.

    Examples:
        >>> mask_sensitive("password123")
        'pas********'
    """
    if not value:
        return ""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return f"{value[:visible_chars]}{'*' * 8}"


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """
    Sanitize a dictionary for safe logging.

    Masks values whose key looks like a credential (api_key, token, ...),
    recursing into nested dictionaries.
    """
    result: dict[str, Any] = {}
    for key, value in data.items():
        if _SENSITIVE_FIELD.search(key):
            result[key] = mask_sensitive(value) if isinstance(value, str) else "********"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value)
        else:
            result[key] = value
    return result
