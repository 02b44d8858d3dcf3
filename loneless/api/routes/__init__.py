"""
API Routes Package
==================

REST API route definitions.
"""

from loneless.api.routes.conversations import router as conversations_router
from loneless.api.routes.health import router as health_router
from loneless.api.routes.media import router as media_router

__all__ = [
    "health_router",
    "conversations_router",
    "media_router",
]
