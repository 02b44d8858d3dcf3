"""
Media Routes
============

One-off media calls outside a conversation: voice message transcription
and image descriptions.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from loneless.api.dependencies import get_orchestrator
from loneless.api.errors import http_error_for
from loneless.api.schemas import decode_media
from loneless.chat.orchestrator import ChatOrchestrator
from loneless.llm.errors import LLMError
from loneless.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/media", tags=["Media"])


class TranscriptionRequest(BaseModel):
    data: str = Field(..., description="Base64-encoded audio")
    mime_type: str = Field(default="audio/m4a")


class TranscriptionResponse(BaseModel):
    text: str


class ImageDescriptionRequest(BaseModel):
    data: str = Field(..., description="Base64-encoded image")
    mime_type: str = Field(default="image/jpeg")
    prompt: str = Field(default="", max_length=4000)


class ImageDescriptionResponse(BaseModel):
    text: str


@router.post(
    "/transcriptions",
    response_model=TranscriptionResponse,
    summary="Transcribe a voice message",
)
async def transcribe(
    request: TranscriptionRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> TranscriptionResponse:
    audio = decode_media(request.data)
    try:
        text = await orchestrator.transcribe(audio, request.mime_type)
    except LLMError as e:
        raise http_error_for(e)
    return TranscriptionResponse(text=text)


@router.post(
    "/image-descriptions",
    response_model=ImageDescriptionResponse,
    summary="Describe an image",
)
async def describe_image(
    request: ImageDescriptionRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ImageDescriptionResponse:
    image = decode_media(request.data)
    logger.info("Image description requested", bytes=len(image), mime_type=request.mime_type)
    try:
        text = await orchestrator.describe_image(image, request.mime_type, request.prompt)
    except LLMError as e:
        raise http_error_for(e)
    return ImageDescriptionResponse(text=text)
