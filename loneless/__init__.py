"""
Loneless Backend
================

Companion chat backend whose replies come from third-party generative AI APIs.

This package provides the request orchestration layer that talks to
OpenAI-compatible and Gemini-compatible providers, plus a FastAPI surface
for the mobile client.

Modules:
    - llm: Provider adapters, streaming decoder, key/model rotation
    - chat: Conversation models, in-memory store, turn orchestrator
    - api: FastAPI routes
    - utils: Logging and credential masking
"""

__version__ = "1.0.0"
__author__ = "Loneless Team"
