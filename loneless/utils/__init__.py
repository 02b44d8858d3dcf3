"""
Utility modules for the Loneless backend.

This package contains:
    - logger: Structured logging with structlog
    - security: Credential masking for logs
"""

from loneless.utils.logger import get_logger, setup_logging
from loneless.utils.security import mask_api_key, mask_sensitive, sanitize_for_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "mask_api_key",
    "mask_sensitive",
    "sanitize_for_logging",
]
