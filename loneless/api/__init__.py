"""
API Module
==========

FastAPI routes for the Loneless backend.

This package contains:
    - routes/: REST API endpoints
    - dependencies: shared service instances injected into routes
    - schemas: request/response models
    - errors: provider error to HTTP status mapping
"""

from loneless.api.routes import conversations, health, media

__all__ = [
    "health",
    "conversations",
    "media",
]
